from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import (
    logger,
    settings,
    user_collection,
    posts_collection,
    report_users_collection,
    report_categories_collection,
    blocked_posts_collection,
)
from globalconnect.core.dates import utcnow
from globalconnect.models.moderation_model import BlockedPostRecord
from globalconnect.models.report_model import UserReportCreate, PostReportCreate, ReportCategoryCreate
from globalconnect.schemas.common import serialize_document, list_serialize_documents
from globalconnect.routers.dependencies import require_any, require_user, require_admin, to_object_id

router = APIRouter()


def _get_report_category(category_id: str) -> dict:
    category = report_categories_collection.find_one({"_id": to_object_id(category_id, "report category ID")})
    if not category:
        raise HTTPException(status_code=404, detail="Invalid report category")
    return category


def total_reports(user_id) -> int:
    rows = list(report_users_collection.aggregate([
        {"$match": {"user_id": user_id}},
        {"$group": {"_id": "$user_id", "total": {"$sum": "$report_count"}}},
    ]))
    return rows[0]["total"] if rows else 0


def block_user_content(user: dict, reason: str):
    """Block a user and every post they authored."""
    now = utcnow()
    user_collection.update_one({"_id": user["_id"]}, {"$set": {"is_blocked": True, "updatedAt": now}})
    posts_collection.update_many(
        {"user_id": user["_id"], "is_deleted": {"$ne": True}},
        {"$set": {
            "status": "Blocked",
            "isBlocked": True,
            "isSuspended": False,
            "isUnderReview": False,
            "suspension_reason": reason,
            "updatedAt": now,
        }},
    )
    logger.warning(f"User {user['_id']} and their posts blocked: {reason}")


@router.post("/create")
async def report_user(body: UserReportCreate, user: dict = Depends(require_user)):
    reported_id = to_object_id(body.reportedUserId, "user or report category ID")
    if reported_id == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot report yourself")
    category = _get_report_category(body.reportCategoryId)

    reported = user_collection.find_one({"_id": reported_id})
    if not reported:
        raise HTTPException(status_code=404, detail="Reported user not found")

    report_users_collection.update_one(
        {"user_id": reported_id, "reported_by": user["_id"], "report_category": category["_id"]},
        {"$inc": {"report_count": 1}, "$setOnInsert": {"created_at": utcnow()}},
        upsert=True,
    )
    user_collection.update_one({"_id": reported_id}, {"$inc": {"reported_count": 1}})
    reported_count = reported.get("reported_count", 0) + 1
    logger.info(f"User {user['_id']} reported user {reported_id} for {category['report_title']}")

    threshold = settings.REPORT_BLOCK_THRESHOLD
    if not reported.get("is_blocked") and (reported_count >= threshold or total_reports(reported_id) >= threshold):
        block_user_content(reported, f"Blocked due to multiple reports: {category['report_title']}")

    return {"message": "User reported successfully"}


@router.post("/post/create")
async def report_post(body: PostReportCreate, user: dict = Depends(require_user)):
    post_id = to_object_id(body.postId, "post or report category ID")
    category = _get_report_category(body.selectedCategory)
    post = posts_collection.find_one({"_id": post_id})
    if not post:
        raise HTTPException(status_code=404, detail="Reported post not found")
    if any(report.get("reported_by") == user["_id"] for report in post.get("reports", [])):
        raise HTTPException(status_code=400, detail="You have already reported this post")

    now = utcnow()
    report = {"reported_by": user["_id"], "reason": category["report_title"], "reported_at": now}
    posts_collection.update_one(
        {"_id": post_id},
        {"$push": {"reports": report}, "$inc": {"reported_count": 1}, "$set": {"updatedAt": now}},
    )
    logger.info(f"User {user['_id']} reported post {post_id} for {category['report_title']}")

    if post.get("reported_count", 0) + 1 >= settings.REPORT_BLOCK_THRESHOLD and not post.get("isBlocked"):
        reason = f"Blocked due to multiple reports: {category['report_title']}"
        posts_collection.update_one(
            {"_id": post_id},
            {"$set": {
                "status": "Blocked",
                "isBlocked": True,
                "isSuspended": False,
                "isUnderReview": False,
                "suspension_reason": reason,
            }},
        )
        record = BlockedPostRecord(postID=str(post_id), blockedReason=reason, blockedType="permanent", blocked_from=now).model_dump()
        record["postID"] = post_id
        blocked_posts_collection.insert_one(record)
        logger.warning(f"Post {post_id} blocked after reaching the report threshold")

    return {"message": "Post reported successfully"}


@router.get("/categories")
async def get_report_categories(user: dict = Depends(require_any)):
    categories = report_categories_collection.find({}).sort("report_title", 1)
    return {"message": "Report categories retrieved successfully", "data": list_serialize_documents(categories)}


@router.post("/categories", status_code=201)
async def create_report_category(body: ReportCategoryCreate, admin: dict = Depends(require_admin)):
    title = body.report_title.strip()
    if report_categories_collection.find_one({"report_title": title}):
        raise HTTPException(status_code=400, detail="Report category already exists")

    now = utcnow()
    category = {"report_title": title, "description": body.description.strip(), "createdAt": now, "updatedAt": now}
    category["_id"] = report_categories_collection.insert_one(category).inserted_id
    logger.info(f"Admin {admin['_id']} created report category {title}")
    return {"message": "Report category created successfully", "data": serialize_document(category)}


@router.delete("/categories/{category_id}")
async def delete_report_category(category_id: str, admin: dict = Depends(require_admin)):
    result = report_categories_collection.delete_one({"_id": to_object_id(category_id, "report category ID")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Report category not found")
    return {"message": "Report category deleted successfully"}
