"""
Tests for posts: creation, the mixed feed, likes, sharing and moderation.
"""

from datetime import timedelta

import pytest

from globalconnect.config import (
    user_collection,
    posts_collection,
    categories_collection,
    messages_collection,
    suspensions_collection,
    blocked_posts_collection,
    user_notifications_collection,
)
from globalconnect.core.dates import utcnow
from globalconnect.routers.posts import visible_posts_query


def feed(client, viewer, **params):
    response = client.get("/api/post/all", params=params, headers=viewer["headers"])
    assert response.status_code == 200
    return response.json()["data"]


def contents(posts):
    return [post["content"] for post in posts]


class TestCreatePost:
    def test_text_post(self, client, user, category):
        data = {"category_id": str(category["_id"]), "text_content": "  Landed in Toronto  ", "tags": "travel, canada"}
        response = client.post("/api/post/create", data=data, headers=user["headers"])
        assert response.status_code == 201
        post = response.json()["data"]
        assert post["content"] == "Landed in Toronto"
        assert post["tags"] == ["travel", "canada"]
        assert post["type"] == "Travel"
        assert user_collection.find_one({"_id": user["_id"]})["posts_count"] == 1

    def test_media_post(self, client, user, category, uploads):
        files = [
            ("media", ("one.png", b"\x89PNG one", "image/png")),
            ("media", ("two.jpg", b"\xff\xd8 two", "image/jpeg")),
        ]
        response = client.post(
            "/api/post/create", data={"category_id": str(category["_id"])}, files=files, headers=user["headers"]
        )
        assert response.status_code == 201
        assert len(response.json()["data"]["media"]) == 2
        assert [upload["folder"] for upload in uploads] == ["globalconnect/posts", "globalconnect/posts"]

    def test_too_many_media_files(self, client, user, category, uploads):
        files = [("media", (f"{i}.png", b"\x89PNG", "image/png")) for i in range(6)]
        response = client.post(
            "/api/post/create", data={"category_id": str(category["_id"])}, files=files, headers=user["headers"]
        )
        assert response.status_code == 400
        assert uploads == []

    def test_empty_post_rejected(self, client, user, category):
        response = client.post("/api/post/create", data={"category_id": str(category["_id"])}, headers=user["headers"])
        assert response.status_code == 400

    def test_text_limit(self, client, user, category):
        data = {"category_id": str(category["_id"]), "text_content": "x" * 501}
        response = client.post("/api/post/create", data=data, headers=user["headers"])
        assert response.status_code == 400

    def test_inactive_category_rejected(self, client, user, category):
        categories_collection.update_one({"_id": category["_id"]}, {"$set": {"active": False}})
        data = {"category_id": str(category["_id"]), "text_content": "hello"}
        response = client.post("/api/post/create", data=data, headers=user["headers"])
        assert response.status_code == 400

    def test_admin_cannot_post(self, client, admin, category):
        data = {"category_id": str(category["_id"]), "text_content": "hello"}
        response = client.post("/api/post/create", data=data, headers=admin["headers"])
        assert response.status_code == 403


class TestFeedVisibility:
    def test_hidden_posts_are_excluded(self, client, user, other_user, make_post):
        make_post(other_user, text="visible")
        make_post(other_user, text="blocked", isBlocked=True, status="Blocked")
        make_post(other_user, text="review", isUnderReview=True, status="Under Review")
        make_post(other_user, text="deleted", is_deleted=True, status="Deleted")
        make_post(
            other_user, text="suspended", isSuspended=True, status="Suspended",
            suspended_until=utcnow() + timedelta(days=1),
        )
        make_post(
            other_user, text="suspension over", isSuspended=True, status="Suspended",
            suspended_until=utcnow() - timedelta(days=1),
        )
        assert sorted(contents(feed(client, user, limit=20))) == ["suspension over", "visible"]

    def test_blocked_authors_are_excluded(self, client, user, other_user, make_user, make_post):
        banned = make_user(name="Blocked Author", is_blocked=True)
        blocker = make_user(name="Blocker", blocked_users=[user["_id"]])
        make_post(other_user, text="ok")
        make_post(banned, text="from blocked account")
        make_post(blocker, text="from someone who blocked me")
        assert contents(feed(client, user, limit=20)) == ["ok"]

    def test_visibility_levels(self, client, user, other_user, make_user, make_post):
        stranger = make_user(name="Stranger")
        make_post(other_user, text="public")
        make_post(other_user, text="friends", visibility="friends")
        make_post(other_user, text="private", visibility="private")
        make_post(user, text="my private", visibility="private")

        assert sorted(contents(feed(client, stranger, limit=20))) == ["public"]

        user_collection.update_one({"_id": user["_id"]}, {"$set": {"following": [other_user["_id"]]}})
        assert sorted(contents(feed(client, user, limit=20))) == ["friends", "my private", "public"]

    def test_query_is_an_and_of_conditions(self, user):
        query = visible_posts_query(user)
        assert list(query) == ["$and"]


class TestFeedMixing:
    def test_seventy_thirty_split(self, client, user, other_user, make_post, category):
        other_category = {"name": "Jobs", "active": True, "fields": [], "createdAt": utcnow()}
        categories_collection.insert_one(other_category)
        user_collection.update_one({"_id": user["_id"]}, {"$set": {"preferred_categories": [category["_id"]]}})

        for i in range(10):
            make_post(other_user, text=f"preferred {i}", age_minutes=100 + i)
        for i in range(10):
            make_post(other_user, text=f"general {i}", age_minutes=i, category_id=other_category["_id"])

        posts = feed(client, user, limit=10)
        assert len(posts) == 10
        assert sum(1 for post in posts if post["content"].startswith("preferred")) == 7
        assert sum(1 for post in posts if post["content"].startswith("general")) == 3
        times = [post["time"] for post in posts]
        assert times == sorted(times, reverse=True)

    def test_plain_feed_without_interests(self, client, user, other_user, make_post):
        for i in range(7):
            make_post(other_user, text=f"post {i}")
        first = feed(client, user, limit=5, page=1)
        second = feed(client, user, limit=5, page=2)
        assert len(first) == 5 and len(second) == 2
        assert contents(first)[0] == "post 6"

    def test_category_filter(self, client, user, other_user, make_post):
        other_category = {"name": "Jobs", "active": True, "fields": []}
        categories_collection.insert_one(other_category)
        make_post(other_user, text="travel")
        make_post(other_user, text="jobs", category_id=other_category["_id"])
        assert contents(feed(client, user, category=str(other_category["_id"]))) == ["jobs"]

    def test_destination_filter(self, client, make_user, make_post):
        viewer = make_user(name="Viewer", destination_country="Canada")
        canadian = make_user(name="Canadian", destination_country="Canada")
        other = make_user(name="Other", destination_country="Japan")
        make_post(canadian, text="toronto")
        make_post(other, text="tokyo")
        assert contents(feed(client, viewer, destination="true")) == ["toronto"]

    def test_liked_flag_is_per_viewer(self, client, user, other_user, make_post):
        make_post(other_user, likes=[user["_id"]])
        assert feed(client, user)[0]["liked"] is True
        assert feed(client, other_user)[0]["liked"] is False


class TestPostInteractions:
    def test_search(self, client, user, other_user, make_post):
        make_post(other_user, text="Visa tips for Canada")
        make_post(other_user, text="Cooking")
        make_post(other_user, text="Hidden visa", isBlocked=True)
        response = client.get("/api/post/search", params={"query": "visa"}, headers=user["headers"])
        assert contents(response.json()["data"]) == ["Visa tips for Canada"]

    def test_like_toggle(self, client, user, other_user, make_post):
        post = make_post(other_user)
        response = client.put(f"/api/post/like-unlike/{post['_id']}", headers=user["headers"])
        assert response.json() == {"message": "Post liked/unliked successfully", "likesCount": 1, "likedByUser": True}
        assert user_collection.find_one({"_id": other_user["_id"]})["likes_received"] == 1
        assert user_notifications_collection.find_one({"userId": other_user["_id"]})["type"] == "like"

        likers = client.get(f"/api/post/liked/{post['_id']}", headers=user["headers"]).json()["data"]
        assert [liker["name"] for liker in likers] == ["Alice"]

        response = client.put(f"/api/post/like-unlike/{post['_id']}", headers=user["headers"])
        assert response.json()["likedByUser"] is False
        assert response.json()["likesCount"] == 0
        assert user_collection.find_one({"_id": other_user["_id"]})["likes_received"] == 0

    def test_get_post_counts_views(self, client, user, other_user, make_post):
        post = make_post(other_user)
        response = client.get(f"/api/post/{post['_id']}", headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["data"]["comments"] == []
        assert posts_collection.find_one({"_id": post["_id"]})["views"] == 1

    def test_blocked_post_hidden_from_users_not_admins(self, client, user, admin, other_user, make_post):
        post = make_post(other_user, isBlocked=True, status="Blocked")
        assert client.get(f"/api/post/{post['_id']}", headers=user["headers"]).status_code == 404
        assert client.get(f"/api/post/{post['_id']}", headers=admin["headers"]).status_code == 200

    def test_invalid_post_id(self, client, user):
        assert client.get("/api/post/not-an-id", headers=user["headers"]).status_code == 400

    def test_edit_own_post(self, client, user, other_user, make_post):
        post = make_post(user)
        response = client.put(f"/api/post/edit/{post['_id']}", json={"text_content": "changed"}, headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["data"]["edited"] is True
        assert response.json()["data"]["content"] == "changed"

        response = client.put(f"/api/post/edit/{post['_id']}", json={"text_content": "x"}, headers=other_user["headers"])
        assert response.status_code == 403

    def test_delete_is_soft(self, client, user, make_post):
        user_collection.update_one({"_id": user["_id"]}, {"$set": {"posts_count": 1}})
        post = make_post(user)
        response = client.delete(f"/api/post/delete/{post['_id']}", headers=user["headers"])
        assert response.status_code == 200
        stored = posts_collection.find_one({"_id": post["_id"]})
        assert stored["is_deleted"] is True
        assert stored["status"] == "Deleted"
        assert user_collection.find_one({"_id": user["_id"]})["posts_count"] == 0
        assert client.delete(f"/api/post/delete/{post['_id']}", headers=user["headers"]).status_code == 404


class TestShare:
    def test_share_requires_following(self, client, user, other_user, make_post):
        post = make_post(other_user)
        body = {"postId": str(post["_id"]), "recipientId": other_user["id"]}
        assert client.post("/api/post/share", json=body, headers=user["headers"]).status_code == 403

    def test_share_sends_message(self, client, user, other_user, make_user, make_post):
        author = make_user(name="Author")
        post = make_post(author, text="Worth reading")
        user_collection.update_one({"_id": user["_id"]}, {"$set": {"following": [other_user["_id"]]}})

        body = {"postId": str(post["_id"]), "recipientId": other_user["id"]}
        response = client.post("/api/post/share", json=body, headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "stored"

        message = messages_collection.find_one()
        assert message["messageType"] == "post"
        assert message["post"] == post["_id"]
        assert posts_collection.find_one({"_id": post["_id"]})["shares"] == 1
        assert user_notifications_collection.find_one({"userId": other_user["_id"]})["type"] == "share"


class TestAdminPosts:
    def test_listing_and_stats(self, client, admin, user, make_post):
        make_post(user, text="a")
        make_post(user, text="b", status="Blocked", isBlocked=True)
        make_post(user, text="c", status="Suspended", isSuspended=True)
        make_post(user, text="d", reported_count=2, reports=[{"reason": "spam"}])

        response = client.get("/api/post/admin/all", params={"limit": 10}, headers=admin["headers"])
        assert response.json()["totalCount"] == 4

        stats = client.get("/api/post/admin/stats", headers=admin["headers"]).json()
        assert stats["total"] == 4
        assert stats["active"] == 2
        assert stats["blocked"] == 1
        assert stats["suspended"] == 1

        reported = client.get("/api/post/admin/reported", headers=admin["headers"]).json()["data"]
        assert [post["text_content"] for post in reported] == ["d"]
        assert reported[0]["user"]["name"] == "Alice"

        blocked = client.get("/api/post/admin/blocked", headers=admin["headers"]).json()["data"]
        assert [post["text_content"] for post in blocked] == ["b"]

    def test_admin_routes_require_admin(self, client, user):
        assert client.get("/api/post/admin/stats", headers=user["headers"]).status_code == 403

    def test_status_update_keeps_flags_in_step(self, client, admin, user, make_post):
        post = make_post(user)
        body = {"status": "Blocked", "reason": "Hate speech"}
        response = client.put(f"/api/post/status/{post['_id']}", json=body, headers=admin["headers"])
        assert response.status_code == 200
        stored = posts_collection.find_one({"_id": post["_id"]})
        assert stored["isBlocked"] is True and stored["isSuspended"] is False
        assert stored["suspension_reason"] == "Hate speech"
        assert stored["moderation_history"][0]["action"] == "status:Blocked"

        response = client.put(f"/api/post/status/{post['_id']}", json={"status": "Active"}, headers=admin["headers"])
        stored = posts_collection.find_one({"_id": post["_id"]})
        assert stored["isBlocked"] is False
        assert stored["status"] == "Active"

    @pytest.mark.parametrize("body", [
        {"status": "Sleeping"},
        {"status": "Blocked"},
        {"status": "Suspended", "reason": "spam"},
    ])
    def test_invalid_status_updates(self, client, admin, user, make_post, body):
        post = make_post(user)
        response = client.put(f"/api/post/status/{post['_id']}", json=body, headers=admin["headers"])
        assert response.status_code == 400

    def test_suspension_dates_must_be_future(self, client, admin, user, make_post):
        post = make_post(user)
        body = {
            "status": "Suspended",
            "reason": "spam",
            "suspended_from": (utcnow() - timedelta(days=1)).isoformat(),
            "suspended_until": (utcnow() + timedelta(days=1)).isoformat(),
        }
        response = client.put(f"/api/post/status/{post['_id']}", json=body, headers=admin["headers"])
        assert response.status_code == 400

    def test_suspend_action_records_suspension(self, client, admin, user, make_post):
        post = make_post(user)
        body = {
            "postId": str(post["_id"]),
            "action": "suspend",
            "reason": "spam",
            "suspended_until": (utcnow() + timedelta(days=3)).isoformat(),
        }
        response = client.put("/api/post/admin/action", json=body, headers=admin["headers"])
        assert response.json()["updatedStatus"] == "Suspended"
        assert suspensions_collection.count_documents({"post_id": post["_id"]}) == 1

        body = {"postId": str(post["_id"]), "action": "unsuspend"}
        response = client.put("/api/post/admin/action", json=body, headers=admin["headers"])
        assert response.json()["updatedStatus"] == "Active"
        assert suspensions_collection.count_documents({}) == 0

    def test_block_and_unblock_action(self, client, admin, user, make_post):
        post = make_post(user)
        body = {"postId": str(post["_id"]), "action": "block", "reason": "abuse"}
        client.put("/api/post/admin/action", json=body, headers=admin["headers"])
        record = blocked_posts_collection.find_one({"postID": post["_id"]})
        assert record["blockedType"] == "permanent"
        assert record["blockedReason"] == "abuse"

        body = {"postId": str(post["_id"]), "action": "unblock"}
        client.put("/api/post/admin/action", json=body, headers=admin["headers"])
        assert blocked_posts_collection.count_documents({}) == 0
        assert posts_collection.find_one({"_id": post["_id"]})["isBlocked"] is False

    def test_permanent_delete(self, client, admin, user, make_post):
        post = make_post(user)
        body = {"postId": str(post["_id"]), "action": "permanentDelete"}
        response = client.put("/api/post/admin/action", json=body, headers=admin["headers"])
        assert response.json()["updatedStatus"] == "PermanentlyDeleted"
        assert posts_collection.find_one({"_id": post["_id"]}) is None

    def test_report_action_needs_reports(self, client, admin, user, make_post):
        post = make_post(user)
        body = {"postId": str(post["_id"]), "action": "delete"}
        assert client.put("/api/post/admin/report/action", json=body, headers=admin["headers"]).status_code == 400

    def test_unknown_report_action_is_rejected(self, client, admin, user, make_post):
        post = make_post(user, reports=[{"reason": "spam"}], reported_count=1)
        body = {"postId": str(post["_id"]), "action": "archive"}
        response = client.put("/api/post/admin/report/action", json=body, headers=admin["headers"])
        assert response.status_code == 422

    def test_report_action_resolves_reports(self, client, admin, user, make_post):
        post = make_post(user, reports=[{"reason": "spam"}], reported_count=1)
        body = {"postId": str(post["_id"]), "action": "delete"}
        response = client.put("/api/post/admin/report/action", json=body, headers=admin["headers"])
        assert response.json()["updatedStatus"] == "Deleted"
        stored = posts_collection.find_one({"_id": post["_id"]})
        assert stored["reports"] == [] and stored["reported_count"] == 0
        assert stored["is_deleted"] is True
