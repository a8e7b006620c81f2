import math
import re
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Form, File, UploadFile, Query
from globalconnect.config import (
    logger,
    user_collection,
    posts_collection,
    comments_collection,
    categories_collection,
    suspensions_collection,
    blocked_posts_collection,
)
from globalconnect.core.accounts import blocked_between, is_following
from globalconnect.core.chat import send_direct_message
from globalconnect.core.dates import utcnow, as_naive_utc
from globalconnect.core.media import store_image, MAX_POST_MEDIA
from globalconnect.core.notifier import notify_user
from globalconnect.models.moderation_model import BlockedPostRecord
from globalconnect.models.post_model import (
    PostEdit,
    PostShare,
    PostStatusUpdate,
    PostModerationAction,
    POST_STATUSES,
    POST_VISIBILITY,
)
from globalconnect.schemas.post_schema import format_posts, format_post, serialize_post
from globalconnect.schemas.user_schema import list_serialize_user_summaries, USER_SUMMARY_PROJECTION
from globalconnect.routers.dependencies import require_any, require_user, require_admin, to_object_id

router = APIRouter()

MAX_TEXT_LENGTH = 500
INTEREST_SHARE = 0.7
REASON_REQUIRED = ("Suspended", "Blocked", "Under Review")


def _get_post(post_id: str) -> dict:
    post = posts_collection.find_one({"_id": to_object_id(post_id, "post ID")})
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


def _excluded_authors(viewer: dict) -> list:
    """Authors whose posts the viewer must not see: blocked accounts and block relationships."""
    hidden = {
        user["_id"]
        for user in user_collection.find(
            {"$or": [{"is_blocked": True}, {"blocked_users": viewer["_id"]}]}, {"_id": 1}
        )
    }
    hidden.update(viewer.get("blocked_users", []))
    return list(hidden)


def visible_posts_query(viewer: dict) -> dict:
    now = utcnow()
    return {
        "$and": [
            {"isBlocked": {"$ne": True}},
            {"isUnderReview": {"$ne": True}},
            {"is_deleted": {"$ne": True}},
            {"$or": [{"isSuspended": {"$ne": True}}, {"suspended_until": {"$lte": now}}]},
            {"user_id": {"$nin": _excluded_authors(viewer)}},
            {"$or": [
                {"visibility": {"$in": ["public", None]}},
                {"user_id": viewer["_id"]},
                {"visibility": "friends", "user_id": {"$in": viewer.get("following", [])}},
            ]},
        ]
    }


def _page(query: dict, page: int, limit: int) -> list:
    if limit <= 0:
        return []
    return list(posts_collection.find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit))


@router.post("/create", status_code=201)
async def create_post(
    category_id: str = Form(...),
    text_content: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    visibility: str = Form("public"),
    media: List[UploadFile] = File(default=[]),
    user: dict = Depends(require_user),
):
    category_oid = to_object_id(category_id, "category ID")
    category = categories_collection.find_one({"_id": category_oid})
    if not category or not category.get("active", True):
        raise HTTPException(status_code=400, detail="Invalid or inactive category")

    text_content = (text_content or "").strip()
    uploads = [upload for upload in media if upload.filename]
    if not text_content and not uploads:
        raise HTTPException(status_code=400, detail="A post needs text or media")
    if len(text_content) > MAX_TEXT_LENGTH:
        raise HTTPException(status_code=400, detail="Post text must be at most 500 characters")
    if len(uploads) > MAX_POST_MEDIA:
        raise HTTPException(status_code=400, detail=f"A post can have at most {MAX_POST_MEDIA} media files")
    if visibility not in POST_VISIBILITY:
        raise HTTPException(status_code=400, detail="Invalid visibility")

    stored_media = [await store_image(upload, "posts") for upload in uploads]
    now = utcnow()
    post = {
        "user_id": user["_id"],
        "category_id": category_oid,
        "text_content": text_content,
        "media": stored_media,
        "tags": [tag.strip() for tag in (tags or "").split(",") if tag.strip()],
        "location": location,
        "visibility": visibility,
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
        "createdAt": now,
        "updatedAt": now,
    }
    post["_id"] = posts_collection.insert_one(post).inserted_id
    user_collection.update_one({"_id": user["_id"]}, {"$inc": {"posts_count": 1}})
    logger.info(f"User {user['_id']} created post {post['_id']}")
    return {"message": "Post created successfully", "data": format_post(post, str(user["_id"]))}


@router.get("/all")
async def get_all_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1, le=50),
    category: Optional[str] = Query(None),
    destination: bool = Query(False),
    user: dict = Depends(require_any),
):
    viewer_id = str(user["_id"])
    base = visible_posts_query(user)

    if destination:
        if not user.get("destination_country"):
            return {"message": "Posts retrieved successfully", "data": []}
        same_destination = [
            author["_id"]
            for author in user_collection.find({"destination_country": user["destination_country"]}, {"_id": 1})
        ]
        base["$and"].append({"user_id": {"$in": same_destination}})

    if category:
        base["$and"].append({"category_id": to_object_id(category, "category ID")})
        return {"message": "Posts retrieved successfully", "data": format_posts(_page(base, page, limit), viewer_id)}

    preferred = user.get("preferred_categories", [])
    following = user.get("following", [])
    if not preferred and not following:
        return {"message": "Posts retrieved successfully", "data": format_posts(_page(base, page, limit), viewer_id)}

    interest_limit = math.ceil(limit * INTEREST_SHARE)
    general_limit = limit - interest_limit

    interest_query = {"$and": base["$and"] + [
        {"$or": [{"category_id": {"$in": preferred}}, {"user_id": {"$in": following}}]}
    ]}
    interest_posts = _page(interest_query, page, interest_limit)

    general_query = {"$and": base["$and"] + [{"_id": {"$nin": [post["_id"] for post in interest_posts]}}]}
    general_posts = _page(general_query, page, general_limit)

    combined = {post["_id"]: post for post in interest_posts + general_posts}
    posts = sorted(combined.values(), key=lambda post: post["createdAt"], reverse=True)
    return {"message": "Posts retrieved successfully", "data": format_posts(posts, viewer_id)}


@router.get("/search")
async def search_posts(query: str = Query(..., min_length=1), user: dict = Depends(require_any)):
    pattern = re.compile(re.escape(query.strip()), re.IGNORECASE)
    search = visible_posts_query(user)
    search["$and"].append({"$or": [{"text_content": pattern}, {"tags": pattern}, {"location": pattern}]})
    posts = posts_collection.find(search).sort("createdAt", -1).limit(20)
    return {"message": "Posts retrieved successfully", "data": format_posts(posts, str(user["_id"]))}


@router.get("/admin/all")
async def get_all_posts_admin(
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1, le=100),
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    admin: dict = Depends(require_admin),
):
    query = {}
    if category:
        query["category_id"] = to_object_id(category, "category ID")
    if status:
        query["status"] = status
    posts = _page(query, page, limit)
    return {
        "message": "Posts retrieved successfully",
        "data": format_posts(posts),
        "totalCount": posts_collection.count_documents(query),
    }


@router.get("/admin/stats")
async def get_post_stats_admin(admin: dict = Depends(require_admin)):
    counts = {row["_id"]: row["count"] for row in posts_collection.aggregate(
        [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    )}
    return {
        "total": posts_collection.count_documents({}),
        "active": counts.get("Active", 0),
        "suspended": counts.get("Suspended", 0),
        "blocked": counts.get("Blocked", 0),
        "underReview": counts.get("Under Review", 0),
        "deleted": counts.get("Deleted", 0),
    }


def _admin_post_list(query: dict, page: int, limit: int) -> list:
    posts = _page(query, page, limit)
    authors = {
        author["_id"]: author
        for author in user_collection.find(
            {"_id": {"$in": [post["user_id"] for post in posts]}}, {**USER_SUMMARY_PROJECTION, "email": 1}
        )
    }
    data = []
    for post in posts:
        item = serialize_post(post)
        author = authors.get(post["user_id"])
        item["user"] = {
            "_id": str(post["user_id"]),
            "name": author.get("name") if author else "Unknown User",
            "email": author.get("email") if author else None,
            "profile_image": author.get("profile_image") if author else None,
        }
        data.append(item)
    return data


@router.get("/admin/reported")
async def get_reported_posts(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), admin: dict = Depends(require_admin)
):
    data = _admin_post_list({"reported_count": {"$gt": 0}}, page, limit)
    return {"message": "Reported posts retrieved successfully", "data": data}


@router.get("/admin/suspended")
async def get_suspended_posts(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), admin: dict = Depends(require_admin)
):
    data = _admin_post_list({"status": "Suspended"}, page, limit)
    return {"message": "Suspended posts retrieved successfully", "data": data}


@router.get("/admin/blocked")
async def get_blocked_posts(
    page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), admin: dict = Depends(require_admin)
):
    data = _admin_post_list({"status": "Blocked"}, page, limit)
    return {"message": "Blocked posts retrieved successfully", "data": data}


def _history_entry(action: str, reason: Optional[str], admin: dict) -> dict:
    return {"action": action, "reason": reason or "", "admin": admin["_id"], "date": utcnow()}


def _status_fields(status: str, reason: Optional[str] = None, suspended_from=None, suspended_until=None) -> dict:
    """Fields that keep the moderation flags in step with ``status``."""
    suspended = status == "Suspended"
    return {
        "status": status,
        "isSuspended": suspended,
        "isBlocked": status == "Blocked",
        "isUnderReview": status == "Under Review",
        "is_deleted": status == "Deleted",
        "suspended_from": suspended_from if suspended else None,
        "suspended_until": suspended_until if suspended else None,
        "suspension_reason": reason if status in REASON_REQUIRED else "",
        "updatedAt": utcnow(),
    }


@router.put("/status/{post_id}")
async def update_post_status(post_id: str, body: PostStatusUpdate, admin: dict = Depends(require_admin)):
    if body.status not in POST_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status provided")
    if body.status in REASON_REQUIRED and not body.reason:
        raise HTTPException(status_code=400, detail="A reason is required for the selected status")

    post = _get_post(post_id)
    suspended_from = as_naive_utc(body.suspended_from)
    suspended_until = as_naive_utc(body.suspended_until)
    if body.status == "Suspended":
        if not suspended_from or not suspended_until:
            raise HTTPException(
                status_code=400,
                detail="Both 'suspended_from' and 'suspended_until' dates are required for suspension",
            )
        now = utcnow()
        if suspended_from < now or suspended_until < now:
            raise HTTPException(status_code=400, detail="Suspension dates must be in the future")
        if suspended_until <= suspended_from:
            raise HTTPException(status_code=400, detail="Suspension must end after it starts")

    updates = _status_fields(body.status, body.reason, suspended_from, suspended_until)
    if body.status == "Deleted":
        updates["deletedAt"] = utcnow()
    posts_collection.update_one(
        {"_id": post["_id"]},
        {"$set": updates, "$push": {"moderation_history": _history_entry(f"status:{body.status}", body.reason, admin)}},
    )
    logger.info(f"Admin {admin['_id']} set post {post_id} status to {body.status}")
    return {"message": "Post status updated successfully", "data": serialize_post(posts_collection.find_one({"_id": post["_id"]}))}


def _apply_moderation_action(post: dict, body: PostModerationAction, admin: dict) -> str:
    """Apply an admin action to a post and return its resulting status."""
    now = utcnow()
    history = _history_entry(body.action, body.reason, admin)
    suspended_from = as_naive_utc(body.suspended_from) or now
    suspended_until = as_naive_utc(body.suspended_until)

    if body.action == "suspend":
        if not suspended_until or suspended_until <= now:
            raise HTTPException(status_code=400, detail="A future 'suspended_until' date is required")
        if suspended_until <= suspended_from:
            raise HTTPException(status_code=400, detail="Suspension must end after it starts")
        reason = body.reason or "Suspended by admin"
        updates = _status_fields("Suspended", reason, suspended_from, suspended_until)
        suspensions_collection.insert_one({
            "post_id": post["_id"],
            "user_id": post["user_id"],
            "type": to_object_id(body.category_id, "category ID") if body.category_id else None,
            "suspended_from": suspended_from,
            "suspended_until": suspended_until,
            "reason": reason,
            "admin": admin["_id"],
            "createdAt": now,
        })
    elif body.action == "unsuspend":
        updates = _status_fields("Active")
        suspensions_collection.delete_many({"post_id": post["_id"]})
    elif body.action == "block":
        reason = body.reason or "Blocked by admin"
        updates = _status_fields("Blocked", reason)
        record = BlockedPostRecord(
            postID=str(post["_id"]),
            blockedReason=reason,
            blockedType="date" if suspended_until else "permanent",
            blocked_from=suspended_from,
            blocked_until=suspended_until,
        ).model_dump()
        record["postID"] = post["_id"]
        blocked_posts_collection.insert_one(record)
    elif body.action == "unblock":
        updates = _status_fields("Active")
        blocked_posts_collection.delete_many({"postID": post["_id"]})
    elif body.action == "delete":
        updates = {**_status_fields("Deleted"), "deletedAt": now}
    elif body.action == "permanentDelete":
        posts_collection.delete_one({"_id": post["_id"]})
        comments_collection.delete_many({"postId": post["_id"]})
        suspensions_collection.delete_many({"post_id": post["_id"]})
        blocked_posts_collection.delete_many({"postID": post["_id"]})
        if not post.get("is_deleted"):
            user_collection.update_one({"_id": post["user_id"]}, {"$inc": {"posts_count": -1}})
        logger.info(f"Admin {admin['_id']} permanently deleted post {post['_id']}")
        return "PermanentlyDeleted"
    else:
        updates = {"reports": [], "reported_count": 0, "updatedAt": now}

    posts_collection.update_one({"_id": post["_id"]}, {"$set": updates, "$push": {"moderation_history": history}})
    logger.info(f"Admin {admin['_id']} applied {body.action} to post {post['_id']}")
    return updates.get("status", post.get("status", "Active"))


@router.put("/admin/action")
async def moderate_post(body: PostModerationAction, admin: dict = Depends(require_admin)):
    post = _get_post(body.postId)
    status = _apply_moderation_action(post, body, admin)
    return {"message": f"Post {body.action} action applied", "updatedStatus": status}


@router.put("/admin/report/action")
async def resolve_post_report(body: PostModerationAction, admin: dict = Depends(require_admin)):
    post = _get_post(body.postId)
    if not post.get("reports"):
        raise HTTPException(status_code=400, detail="This post has no reports")
    status = _apply_moderation_action(post, body, admin)
    if status != "PermanentlyDeleted" and body.action != "resetReports":
        # Acting on a report resolves it.
        posts_collection.update_one({"_id": post["_id"]}, {"$set": {"reports": [], "reported_count": 0}})
    return {"message": f"Report resolved with {body.action}", "updatedStatus": status}


@router.post("/share")
async def share_post(body: PostShare, user: dict = Depends(require_user)):
    post = _get_post(body.postId)
    recipient = user_collection.find_one({"_id": to_object_id(body.recipientId, "recipient ID")})
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    if post.get("is_deleted") or post.get("isBlocked"):
        raise HTTPException(status_code=400, detail="This post can no longer be shared")
    if not is_following(user, recipient):
        raise HTTPException(status_code=403, detail="You can only share posts with users you follow")
    if blocked_between(user, recipient):
        raise HTTPException(status_code=403, detail="You cannot share posts with this user")

    message, delivered = await send_direct_message(
        user, recipient, post.get("text_content", "")[:100], message_type="post", post_id=post["_id"], push=False
    )
    posts_collection.update_one({"_id": post["_id"]}, {"$inc": {"shares": 1}})
    await notify_user(
        recipient["_id"],
        f"{user.get('name', 'Someone')} shared a post with you",
        "share",
        title="Post shared",
        metadata={"postId": str(post["_id"]), "senderId": str(user["_id"])},
    )
    return {
        "message": "Post shared successfully",
        "data": message,
        "status": "delivered" if delivered else "stored",
    }


@router.get("/liked/{post_id}")
async def get_post_likes(post_id: str, user: dict = Depends(require_any)):
    post = _get_post(post_id)
    likers = user_collection.find({"_id": {"$in": post.get("likes", [])}}, USER_SUMMARY_PROJECTION)
    return {"message": "Likes retrieved successfully", "data": list_serialize_user_summaries(likers)}


@router.put("/like-unlike/{post_id}")
async def like_unlike_post(post_id: str, user: dict = Depends(require_any)):
    post = _get_post(post_id)
    if post.get("is_deleted"):
        raise HTTPException(status_code=404, detail="Post not found")

    liked = user["_id"] not in post.get("likes", [])
    if liked:
        posts_collection.update_one({"_id": post["_id"]}, {"$addToSet": {"likes": user["_id"]}})
        user_collection.update_one({"_id": post["user_id"]}, {"$inc": {"likes_received": 1}})
    else:
        posts_collection.update_one({"_id": post["_id"]}, {"$pull": {"likes": user["_id"]}})
        user_collection.update_one(
            {"_id": post["user_id"], "likes_received": {"$gt": 0}}, {"$inc": {"likes_received": -1}}
        )

    if liked and post["user_id"] != user["_id"]:
        await notify_user(
            post["user_id"],
            f"{user.get('name', 'Someone')} liked your post",
            "like",
            title="New like",
            metadata={"postId": str(post["_id"]), "userId": str(user["_id"])},
        )

    likes = posts_collection.find_one({"_id": post["_id"]}, {"likes": 1}).get("likes", [])
    return {"message": "Post liked/unliked successfully", "likesCount": len(likes), "likedByUser": liked}


@router.put("/edit/{post_id}")
async def edit_post(post_id: str, body: PostEdit, user: dict = Depends(require_user)):
    post = _get_post(post_id)
    if post.get("is_deleted"):
        raise HTTPException(status_code=404, detail="Post not found")
    if post["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="You can only edit your own posts")

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    now = utcnow()
    updates.update({"edited": True, "edited_at": now, "updatedAt": now})
    posts_collection.update_one({"_id": post["_id"]}, {"$set": updates})
    logger.info(f"User {user['_id']} edited post {post_id}")
    return {"message": "Post updated successfully", "data": format_post(posts_collection.find_one({"_id": post["_id"]}), str(user["_id"]))}


@router.delete("/delete/{post_id}")
async def delete_post(post_id: str, user: dict = Depends(require_user)):
    post = _get_post(post_id)
    if post.get("is_deleted"):
        raise HTTPException(status_code=404, detail="Post not found")
    if post["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="You can only delete your own posts")

    now = utcnow()
    posts_collection.update_one(
        {"_id": post["_id"]},
        {"$set": {"is_deleted": True, "deletedAt": now, "status": "Deleted", "updatedAt": now}},
    )
    user_collection.update_one({"_id": user["_id"], "posts_count": {"$gt": 0}}, {"$inc": {"posts_count": -1}})
    logger.info(f"User {user['_id']} deleted post {post_id}")
    return {"message": "Post deleted successfully"}


@router.get("/{post_id}")
async def get_post_by_id(post_id: str, user: dict = Depends(require_any)):
    post = _get_post(post_id)
    hidden = post.get("is_deleted") or post.get("isBlocked")
    if user.get("role") != "admin" and (hidden or post["user_id"] in _excluded_authors(user)):
        raise HTTPException(status_code=404, detail="Post not found")
    posts_collection.update_one({"_id": post["_id"]}, {"$inc": {"views": 1}})
    return {"message": "Post retrieved successfully", "data": format_post(post, str(user["_id"]))}
