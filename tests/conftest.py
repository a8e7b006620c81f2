"""
Shared fixtures for the API tests.

MongoDB is replaced with mongomock before the application is imported, and
outbound mail, Cloudinary uploads and Expo push calls are captured instead of
leaving the process.
"""

import os

os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("MONGO_DB_NAME", "globalconnect_test")

import mongomock
import pymongo

pymongo.MongoClient = mongomock.MongoClient

import uuid
from datetime import timedelta

import cloudinary.uploader
import pytest
import requests
from fastapi.testclient import TestClient

from globalconnect import config
from globalconnect.core import mailer
from globalconnect.core.dates import utcnow
from globalconnect.core.security import create_access_token
from globalconnect.main import app
from globalconnect.routers import notifications
from globalconnect.routers.auth import new_user_document
from globalconnect.websockets.manager import ws_manager


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def befriend(first, second):
    """Make two users follow each other."""
    for a, b in ((first, second), (second, first)):
        config.user_collection.update_one({"_id": a["_id"]}, {"$addToSet": {"following": b["_id"]}})
        config.user_collection.update_one({"_id": b["_id"]}, {"$addToSet": {"followers": a["_id"]}})


@pytest.fixture(autouse=True)
def clean_database():
    """Empty every collection and forget live sockets and scheduled tasks between tests."""
    for collection in config.ALL_COLLECTIONS:
        collection.delete_many({})
    ws_manager.active_connections.clear()
    notifications._scheduled_tasks.clear()
    yield
    ws_manager.active_connections.clear()
    notifications._scheduled_tasks.clear()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing mail."""
    outbox = []

    def fake_send_email(to_email, subject, html_body, text_body=None):
        outbox.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    return outbox


class FakePushResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return {"data": self.payload}


@pytest.fixture(autouse=True)
def push_requests(monkeypatch):
    """Capture Expo push requests."""
    calls = []

    def fake_post(url, json=None, timeout=None, **kwargs):
        calls.append({"url": url, "json": json})
        return FakePushResponse(json)

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


@pytest.fixture(autouse=True)
def uploads(monkeypatch):
    """Capture Cloudinary uploads."""
    uploaded = []

    def fake_upload(data, folder=None, **kwargs):
        uploaded.append({"folder": folder, "size": len(data)})
        return {"secure_url": f"https://res.cloudinary.com/demo/{folder}/{len(uploaded)}.png"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    return uploaded


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user():
    """Factory that inserts a user and attaches a valid access token."""

    def factory(name="Test User", email=None, role="user", password="secret123", **fields):
        email = email or f"{uuid.uuid4().hex[:10]}@example.com"
        document = new_user_document(name, email, password, role=role, **fields)
        config.user_collection.insert_one(document)
        document["id"] = str(document["_id"])
        document["token"] = create_access_token(document["id"], role)
        document["headers"] = auth_headers(document["token"])
        return document

    return factory


@pytest.fixture
def user(make_user):
    return make_user(name="Alice", email="alice@example.com")


@pytest.fixture
def other_user(make_user):
    return make_user(name="Bob", email="bob@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", email="admin@example.com", role="admin")


@pytest.fixture
def category():
    document = {"name": "Travel", "active": True, "fields": [], "createdAt": utcnow(), "updatedAt": utcnow()}
    config.categories_collection.insert_one(document)
    return document


@pytest.fixture
def report_category():
    document = {"report_title": "Spam", "description": "Unwanted content", "createdAt": utcnow(), "updatedAt": utcnow()}
    config.report_categories_collection.insert_one(document)
    return document


@pytest.fixture
def make_post(category):
    """Factory that inserts a post directly, newest last unless ``age_minutes`` says otherwise."""
    counter = {"n": 0}

    def factory(author, text="Hello world", age_minutes=None, **overrides):
        counter["n"] += 1
        created = utcnow() - timedelta(minutes=age_minutes if age_minutes is not None else 1000 - counter["n"])
        post = {
            "user_id": author["_id"],
            "category_id": category["_id"],
            "text_content": text,
            "media": [],
            "tags": [],
            "location": None,
            "visibility": "public",
            "comments": [],
            "likes": [],
            "views": 0,
            "shares": 0,
            "status": "Active",
            "isSuspended": False,
            "isBlocked": False,
            "isUnderReview": False,
            "suspended_from": None,
            "suspended_until": None,
            "suspension_reason": "",
            "reports": [],
            "reported_count": 0,
            "moderation_history": [],
            "edited": False,
            "is_deleted": False,
            "createdAt": created,
            "updatedAt": created,
        }
        post.update(overrides)
        config.posts_collection.insert_one(post)
        return post

    return factory
