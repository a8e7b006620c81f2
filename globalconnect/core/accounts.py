from typing import Optional
from globalconnect.config import (
    logger,
    user_collection,
    posts_collection,
    comments_collection,
    messages_collection,
    user_notifications_collection,
    deleted_users_collection,
    report_users_collection,
)
from globalconnect.core.dates import utcnow


def lift_expired_suspension(user: dict) -> dict:
    """Reinstate a user whose suspension end date has passed."""
    until = user.get("suspended_until")
    if user.get("status") == "Suspended" and until is not None and until <= utcnow():
        user_collection.update_one(
            {"_id": user["_id"]},
            {"$set": {"status": "Active", "suspended_until": None, "updatedAt": utcnow()}},
        )
        logger.info(f"Suspension expired for user {user['_id']}, status restored")
        user = {**user, "status": "Active", "suspended_until": None}
    return user


def account_restriction(user: dict) -> Optional[str]:
    """Return the reason the account may not act, or ``None`` when it may."""
    if user.get("is_blocked"):
        return "Your account is currently blocked. Please contact support."
    if user.get("status") == "Banned":
        return "Your account has been banned."
    if user.get("status") == "Suspended":
        until = user.get("suspended_until")
        if until is None or until > utcnow():
            return "Your account is suspended."
    return None


def _ids(values) -> set:
    return {str(value) for value in values or []}


def blocked_between(user: dict, other: dict) -> bool:
    """True when either user has the other in ``blocked_users``."""
    return str(other["_id"]) in _ids(user.get("blocked_users")) or str(user["_id"]) in _ids(other.get("blocked_users"))


def is_following(user: dict, other: dict) -> bool:
    return str(other["_id"]) in _ids(user.get("following"))


def mutual_follow(user: dict, other: dict) -> bool:
    return is_following(user, other) and is_following(other, user)


def erase_account(user: dict, reason: str, admin_id=None) -> dict:
    """Archive a user into ``deleted_users`` and remove every trace of them.

    Posts are kept soft-deleted so moderation records that point at them stay
    resolvable. Returns the archive document.
    """
    now = utcnow()
    user_id = user["_id"]
    posts = list(posts_collection.find({"user_id": user_id}, {"text_content": 1, "media": 1, "createdAt": 1, "status": 1}))
    archive = {
        "originalUserId": user_id,
        "userData": {
            key: user.get(key)
            for key in ("name", "username", "email", "dob", "age", "gender", "role", "status",
                        "destination_country", "reported_count", "createdAt")
        },
        "posts": [
            {
                "postId": post["_id"],
                "text_content": post.get("text_content"),
                "media": [media.get("media_path") for media in post.get("media", [])],
                "status": post.get("status"),
                "createdAt": post.get("createdAt"),
            }
            for post in posts
        ],
        "deletion_date": now,
        "deletion_reason": reason,
        "deleted_by": admin_id,
        "moderation_history": user.get("moderation_history", []),
    }
    archive["_id"] = deleted_users_collection.insert_one(archive).inserted_id

    posts_collection.update_many(
        {"user_id": user_id},
        {"$set": {"is_deleted": True, "deletedAt": now, "status": "Deleted", "updatedAt": now}},
    )
    for comment in comments_collection.find({"userId": user_id}, {"postId": 1}):
        posts_collection.update_one({"_id": comment["postId"]}, {"$pull": {"comments": comment["_id"]}})
    comments_collection.delete_many({"userId": user_id})
    posts_collection.update_many({"likes": user_id}, {"$pull": {"likes": user_id}})
    user_collection.update_many(
        {"$or": [{"followers": user_id}, {"following": user_id}, {"blocked_users": user_id}]},
        {"$pull": {"followers": user_id, "following": user_id, "blocked_users": user_id}},
    )
    messages_collection.delete_many({"$or": [{"sender": user_id}, {"receiver": user_id}]})
    user_notifications_collection.delete_many({"userId": user_id})
    report_users_collection.delete_many({"user_id": user_id})
    user_collection.delete_one({"_id": user_id})
    logger.info(f"Account {user_id} erased ({reason})")
    return archive


def purge_expired_accounts() -> int:
    """Erase accounts whose scheduled deletion date has passed."""
    expired = list(user_collection.find({"deletion_scheduled_at": {"$ne": None, "$lte": utcnow()}}))
    for user in expired:
        erase_account(user, "Scheduled deletion requested by user")
    if expired:
        logger.info(f"Purged {len(expired)} accounts past their deletion date")
    return len(expired)
