"""
Tests for the admin dashboard endpoints and the self-service activity routes
that share its prefix.
"""

from datetime import timedelta

from globalconnect.config import (
    settings,
    user_collection,
    posts_collection,
    comments_collection,
    messages_collection,
    report_users_collection,
    suspend_users_collection,
    deleted_users_collection,
    user_notifications_collection,
)
from globalconnect.core import mailer
from globalconnect.core.dates import utcnow


class TestEnvelope:
    def test_admin_info_uses_envelope(self, client, admin):
        body = client.get("/api/dashboard/getUserinfo", headers=admin["headers"]).json()
        assert body["success"] is True
        assert body["data"]["email"] == "admin@example.com"
        assert "password" not in body["data"]

    def test_user_data(self, client, user, admin):
        assert client.get("/api/dashboard/getUserData", headers=user["headers"]).json()["data"]["name"] == "Alice"
        assert client.get("/api/dashboard/getUserData", headers=admin["headers"]).status_code == 403

    def test_non_admin_rejected(self, client, user):
        assert client.get("/api/dashboard/all", headers=user["headers"]).status_code == 403


class TestUserLists:
    def test_all_users_numbered(self, client, admin, user, other_user):
        data = client.get("/api/dashboard/all", headers=admin["headers"]).json()["data"]
        assert [(row["s_n"], row["name"]) for row in data] == [(1, "Alice"), (2, "Bob")]
        assert data[0]["last_login"] == "Not logged in"

    def test_reported_users(self, client, admin, make_user, make_post):
        flagged = make_user(name="Flagged", reported_count=3)
        make_user(name="Mild", reported_count=1)
        make_post(flagged, reported_count=1)
        data = client.get("/api/dashboard/get-reported-user", headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in data] == ["Flagged"]
        assert data[0]["reported_posts"] == 1

    def test_active_and_inactive_users(self, client, admin, make_user):
        make_user(name="Recent", last_activity=utcnow())
        idle = make_user(name="Idle", last_activity=utcnow() - timedelta(hours=5))

        active = client.get("/api/dashboard/get-active-user", headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in active] == ["Recent"]

        inactive = client.get("/api/dashboard/get-in-active-user", headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in inactive] == ["Idle"]
        assert user_collection.find_one({"_id": idle["_id"]})["status"] == "Inactive"

    def test_blocked_users_with_reason(self, client, admin, user, make_user, report_category):
        blocked = make_user(name="Blocked", is_blocked=True)
        report_users_collection.insert_one({
            "user_id": blocked["_id"], "reported_by": user["_id"], "report_category": report_category["_id"],
            "report_count": 1, "created_at": utcnow(),
        })
        data = client.get("/api/dashboard/get-blocked-user", headers=admin["headers"]).json()["data"]
        assert data[0]["name"] == "Blocked"
        assert data[0]["reason"] == "Spam"

    def test_all_reported_users_grouped(self, client, admin, user, other_user, make_user, report_category):
        carol = make_user(name="Carol")
        for reporter, count in ((user, 2), (carol, 1)):
            report_users_collection.insert_one({
                "user_id": other_user["_id"], "reported_by": reporter["_id"],
                "report_category": report_category["_id"], "report_count": count, "created_at": utcnow(),
            })
        data = client.get("/api/dashboard/get-all-reported-user", headers=admin["headers"]).json()["data"]
        assert data == [{
            "userId": other_user["id"],
            "reportedTo": "Bob",
            "reportedCount": 3,
            "reportedReasons": {"Spam": 3},
            "reportedPostCount": 0,
        }]

    def test_user_stats(self, client, admin, make_user):
        make_user(name="Blocked", is_blocked=True, reported_count=2)
        make_user(name="Banned", status="Banned")
        stats = client.get("/api/dashboard/userStats", headers=admin["headers"]).json()["data"]
        assert stats["totalUsers"] == 3
        assert stats["blockedUsers"] == 1
        assert stats["reportedUsers"] == 1
        assert stats["bannedUsers"] == 1
        assert stats["newUsers"] == 3

    def test_search_users(self, client, admin, user, other_user):
        data = client.get("/api/dashboard/search-users", params={"query": "bob@"}, headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in data] == ["Bob"]


class TestVerificationAndReports:
    def test_verify_and_unverify(self, client, admin, user):
        unverified = client.get("/api/dashboard/unverified-users", headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in unverified] == ["Alice"]

        client.put(f"/api/dashboard/verify-user/{user['id']}", headers=admin["headers"])
        verified = client.get("/api/dashboard/verified-users", headers=admin["headers"]).json()["data"]
        assert [row["name"] for row in verified] == ["Alice"]

        client.put(f"/api/dashboard/unverify-user/{user['id']}", headers=admin["headers"])
        assert user_collection.find_one({"_id": user["_id"]})["verified"] is False

    def test_reset_report_count(self, client, admin, make_user, user, report_category):
        reported = make_user(name="Reported", reported_count=4)
        report_users_collection.insert_one({
            "user_id": reported["_id"], "reported_by": user["_id"], "report_category": report_category["_id"],
            "report_count": 4,
        })
        response = client.put("/api/dashboard/reset-report-count", json={"userId": reported["id"]}, headers=admin["headers"])
        assert response.json()["data"]["reported_count"] == 0
        assert user_collection.find_one({"_id": reported["_id"]})["reported_count"] == 0
        assert report_users_collection.count_documents({}) == 0


class TestBulkEmail:
    def test_unconfigured_smtp(self, client, admin, user, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "")
        response = client.post("/api/dashboard/send-email-to-users", json={"subject": "Hi", "message": "News"}, headers=admin["headers"])
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "EMAIL_NOT_CONFIGURED"

    def test_sends_to_users_and_counts_failures(self, client, admin, user, other_user, monkeypatch, sent_emails):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.test")
        real_fake = mailer.send_email

        def flaky(to_email, subject, html_body, text_body=None):
            if to_email == "bob@example.com":
                raise mailer.MailDeliveryError("mailbox full")
            return real_fake(to_email, subject, html_body, text_body)

        monkeypatch.setattr(mailer, "send_email", flaky)
        body = {"subject": "Update", "message": "<b>Hello</b>"}
        data = client.post("/api/dashboard/send-email-to-users", json=body, headers=admin["headers"]).json()["data"]
        assert data == {"sent": 1, "failed": 1, "failedEmails": ["bob@example.com"]}
        assert sent_emails[0]["to"] == "alice@example.com"
        assert "&lt;b&gt;Hello&lt;/b&gt;" in sent_emails[0]["html"]

    def test_selected_recipients(self, client, admin, user, other_user, monkeypatch, sent_emails):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.test")
        body = {"subject": "Update", "message": "Hello", "userIds": [other_user["id"]]}
        client.post("/api/dashboard/send-email-to-users", json=body, headers=admin["headers"])
        assert [email["to"] for email in sent_emails] == ["bob@example.com"]


class TestUserModeration:
    def suspend_body(self, target, category, **overrides):
        body = {
            "userId": target["id"],
            "action": "suspend",
            "reason": "Spamming",
            "suspendedFrom": utcnow().isoformat(),
            "suspendedTill": (utcnow() + timedelta(days=7)).isoformat(),
            "reportCategoryId": str(category["_id"]),
        }
        body.update(overrides)
        return body

    def test_suspend(self, client, admin, user, report_category):
        response = client.put(
            "/api/dashboard/admin-update-user-status", json=self.suspend_body(user, report_category), headers=admin["headers"]
        )
        assert response.status_code == 200
        stored = user_collection.find_one({"_id": user["_id"]})
        assert stored["status"] == "Suspended"
        assert stored["moderation_history"][0]["action"] == "suspend"
        assert suspend_users_collection.count_documents({"userId": user["_id"]}) == 1
        assert user_notifications_collection.find_one({"userId": user["_id"]})["type"] == "admin"

        assert client.get("/api/followers", headers=user["headers"]).status_code == 403

    def test_suspend_needs_future_end(self, client, admin, user, report_category):
        body = self.suspend_body(user, report_category, suspendedTill=(utcnow() - timedelta(days=1)).isoformat())
        response = client.put("/api/dashboard/admin-update-user-status", json=body, headers=admin["headers"])
        assert response.status_code == 400

    def test_suspend_needs_category(self, client, admin, user, report_category):
        body = self.suspend_body(user, report_category, reportCategoryId=None)
        response = client.put("/api/dashboard/admin-update-user-status", json=body, headers=admin["headers"])
        assert response.status_code == 400

    def test_ban_review_and_warn(self, client, admin, make_user):
        for action, expected in (("ban", "Banned"), ("review", "Under Review"), ("warn", "Active")):
            target = make_user(name=action)
            body = {"userId": target["id"], "action": action, "reason": "Rules"}
            response = client.put("/api/dashboard/admin-update-user-status", json=body, headers=admin["headers"])
            assert response.json()["data"]["status"] == expected

        warned = user_collection.find_one({"name": "warn"})
        assert warned["warnings"][0]["reason"] == "Rules"
        assert user_collection.find_one({"name": "ban"})["is_blocked"] is True

    def test_unknown_status_action_is_rejected(self, client, admin, user):
        body = {"userId": user["id"], "action": "delete", "reason": "Rules"}
        response = client.put("/api/dashboard/admin-update-user-status", json=body, headers=admin["headers"])
        assert response.status_code == 422
        assert user_collection.find_one({"_id": user["_id"]})["status"] == "Active"

    def test_admins_cannot_be_moderated(self, client, admin, make_user):
        other_admin = make_user(name="Other admin", role="admin")
        body = {"userId": other_admin["id"], "action": "ban", "reason": "Rules"}
        response = client.put("/api/dashboard/admin-update-user-status", json=body, headers=admin["headers"])
        assert response.status_code == 403

    def test_remove_status(self, client, admin, user, report_category):
        client.put(
            "/api/dashboard/admin-update-user-status", json=self.suspend_body(user, report_category), headers=admin["headers"]
        )
        response = client.put("/api/dashboard/admin-remove-user-status", json={"userId": user["id"]}, headers=admin["headers"])
        assert response.json()["data"]["status"] == "Active"
        assert suspend_users_collection.count_documents({}) == 0
        assert client.get("/api/followers", headers=user["headers"]).status_code == 200


class TestAccountDeletion:
    def test_delete_user_archives_and_cleans_up(self, client, admin, user, other_user, make_post):
        own_post = make_post(user, text="mine")
        other_post = make_post(other_user, likes=[user["_id"]])
        comment_id = comments_collection.insert_one(
            {"userId": user["_id"], "postId": other_post["_id"], "text": "hi", "createdAt": utcnow()}
        ).inserted_id
        posts_collection.update_one({"_id": other_post["_id"]}, {"$push": {"comments": comment_id}})
        messages_collection.insert_many([
            {"sender": user["_id"], "receiver": other_user["_id"], "content": "hello", "timestamp": utcnow()},
            {"sender": other_user["_id"], "receiver": user["_id"], "content": "hi back", "timestamp": utcnow()},
            {"sender": other_user["_id"], "receiver": admin["_id"], "content": "unrelated", "timestamp": utcnow()},
        ])
        user_collection.update_one({"_id": other_user["_id"]}, {"$set": {"followers": [user["_id"]]}})

        response = client.delete(f"/api/dashboard/user/{user['id']}", headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["data"]["posts"] == 1

        assert user_collection.find_one({"_id": user["_id"]}) is None
        archive = deleted_users_collection.find_one({"originalUserId": user["_id"]})
        assert archive["userData"]["email"] == "alice@example.com"
        assert archive["deleted_by"] == admin["_id"]
        assert posts_collection.find_one({"_id": own_post["_id"]})["is_deleted"] is True

        cleaned = posts_collection.find_one({"_id": other_post["_id"]})
        assert cleaned["likes"] == [] and cleaned["comments"] == []
        assert comments_collection.count_documents({}) == 0
        assert user_collection.find_one({"_id": other_user["_id"]})["followers"] == []
        assert [m["content"] for m in messages_collection.find()] == ["unrelated"]

    def test_purge_only_expired(self, client, admin, make_user):
        expired = make_user(name="Expired", deletion_scheduled_at=utcnow() - timedelta(minutes=1))
        pending = make_user(name="Pending", deletion_scheduled_at=utcnow() + timedelta(days=3))
        response = client.post("/api/dashboard/purge-deleted-accounts", headers=admin["headers"])
        assert response.json()["data"] == {"purged": 1}
        assert user_collection.find_one({"_id": expired["_id"]}) is None
        assert user_collection.find_one({"_id": pending["_id"]}) is not None


class TestActivity:
    def test_update_location(self, client, user):
        body = {"lat": 43.65, "lng": -79.38, "country": "Canada", "city": "Toronto"}
        response = client.put("/api/dashboard/update-location", json=body, headers=user["headers"])
        assert response.status_code == 200
        location = user_collection.find_one({"_id": user["_id"]})["current_location"]
        assert location["coordinates"] == {"lat": 43.65, "lng": -79.38}

    def test_location_bounds(self, client, user):
        response = client.put("/api/dashboard/update-location", json={"lat": 120, "lng": 0}, headers=user["headers"])
        assert response.status_code == 422

    def test_update_status_records_history(self, client, make_user):
        idle = make_user(name="Idle", status="Inactive")
        response = client.put("/api/dashboard/update-status", headers={**idle["headers"], "User-Agent": "pytest-device"})
        assert response.status_code == 200
        stored = user_collection.find_one({"_id": idle["_id"]})
        assert stored["status"] == "Active"
        assert stored["login_history"][0]["device"] == "pytest-device"

    def test_reached_destination(self, client, user):
        response = client.put("/api/dashboard/reached-destination", json={"reached_destination": True}, headers=user["headers"])
        assert response.json()["reached_destination"] is True
        assert user_collection.find_one({"_id": user["_id"]})["reached_destination"] is True
