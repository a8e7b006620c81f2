import asyncio
import html
import re
from fastapi import APIRouter, HTTPException, Depends, Request, Query
from fastapi.responses import JSONResponse
from typing import Optional, Dict, Any
from globalconnect.config import (
    logger,
    settings,
    user_collection,
    posts_collection,
    report_users_collection,
    report_categories_collection,
    suspend_users_collection,
)
from globalconnect.core import mailer
from globalconnect.core.accounts import erase_account, purge_expired_accounts
from globalconnect.core.dates import utcnow, as_naive_utc, minutes_ago, days_ago
from globalconnect.core.notifier import notify_user
from globalconnect.models.moderation_model import UserStatusAction, UserStatusRemoval, ReportCountReset, BulkEmail
from globalconnect.models.user_model import LocationUpdate, ReachedDestinationUpdate
from globalconnect.schemas.user_schema import serialize_user, list_serialize_users
from globalconnect.routers.dependencies import require_admin, require_user, to_object_id

router = APIRouter()


class AdminResponse:
    @staticmethod
    def success(
        data: Any = None, message: str = "Success", meta: Optional[Dict] = None
    ) -> Dict:
        response = {"success": True, "message": message, "data": data}
        if meta:
            response["meta"] = meta
        return response

    @staticmethod
    def error(message: str, code: str, details: Optional[Dict] = None) -> Dict:
        response = {"success": False, "message": message, "error": {"code": code}}
        if details:
            response["error"]["details"] = details
        return response


def _get_user(user_id: str) -> dict:
    user = user_collection.find_one({"_id": to_object_id(user_id, "user ID")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _iso(value):
    return value.isoformat() if value else None


@router.get("/getUserinfo")
async def get_admin_info(admin: dict = Depends(require_admin)):
    return AdminResponse.success(data=serialize_user(admin), message="Admin info retrieved successfully")


@router.get("/getUserData")
async def get_user_data(user: dict = Depends(require_user)):
    return AdminResponse.success(data=serialize_user(user), message="User data retrieved successfully")


@router.get("/all")
async def get_all_users(admin: dict = Depends(require_admin)):
    users = user_collection.find({"role": {"$ne": "admin"}}).sort("name", 1)
    data = [
        {
            "userId": str(user["_id"]),
            "s_n": index,
            "name": user.get("name"),
            "email": user.get("email"),
            "age": user.get("age"),
            "profile_image": user.get("profile_image"),
            "location": user.get("current_location"),
            "role": user.get("role"),
            "destination_country": user.get("destination_country"),
            "last_login": _iso(user.get("last_login")) or "Not logged in",
            "status": user.get("status"),
            "verified": user.get("verified", False),
            "created_at": _iso(user.get("createdAt")),
        }
        for index, user in enumerate(users, start=1)
    ]
    return AdminResponse.success(data=data, message="All users retrieved successfully")


@router.get("/get-reported-user")
async def get_reported_users_dashboard(admin: dict = Depends(require_admin)):
    users = list(user_collection.find({"reported_count": {"$gte": 3}}).sort("createdAt", -1))
    reported_posts = {
        row["_id"]: row["count"]
        for row in posts_collection.aggregate([
            {"$match": {"user_id": {"$in": [user["_id"] for user in users]}, "reported_count": {"$gt": 0}}},
            {"$group": {"_id": "$user_id", "count": {"$sum": 1}}},
        ])
    }
    data = [
        {
            "user_id": str(user["_id"]),
            "s_n": index,
            "name": user.get("name"),
            "email": user.get("email"),
            "reported_count": user.get("reported_count", 0),
            "reported_posts": reported_posts.get(user["_id"], 0),
            "blocked_status": "Blocked" if user.get("is_blocked") else user.get("status", "Active"),
            "joined": _iso(user.get("createdAt")),
        }
        for index, user in enumerate(users, start=1)
    ]
    return AdminResponse.success(data=data, message="Reported users retrieved successfully")


@router.get("/get-active-user")
async def get_active_users(admin: dict = Depends(require_admin)):
    users = user_collection.find({
        "last_activity": {"$gte": minutes_ago(settings.ACTIVE_WINDOW_MINUTES)},
        "status": "Active",
        "role": {"$ne": "admin"},
    }).sort("last_activity", -1)
    data = [
        {
            "s_n": index,
            "userId": str(user["_id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "last_activity": _iso(user.get("last_activity")),
            "status": user.get("status"),
        }
        for index, user in enumerate(users, start=1)
    ]
    return AdminResponse.success(data=data, message="Active users retrieved successfully")


@router.get("/get-in-active-user")
async def get_inactive_users(admin: dict = Depends(require_admin)):
    users = list(user_collection.find({
        "last_activity": {"$lte": minutes_ago(settings.ACTIVE_WINDOW_MINUTES)},
        "is_blocked": {"$ne": True},
        "role": {"$ne": "admin"},
        "status": {"$in": ["Active", "Inactive"]},
    }).sort("last_activity", 1))
    if not users:
        return AdminResponse.success(data=[], message="No inactive users found")

    # Listing idle users also marks them Inactive until their next activity.
    user_collection.update_many({"_id": {"$in": [user["_id"] for user in users]}}, {"$set": {"status": "Inactive"}})
    data = [
        {
            "s_n": index,
            "userId": str(user["_id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "last_active": _iso(user.get("last_activity")),
            "joined": _iso(user.get("createdAt")),
            "status": "Inactive",
        }
        for index, user in enumerate(users, start=1)
    ]
    return AdminResponse.success(data=data, message="Inactive users retrieved and status updated successfully")


@router.get("/get-blocked-user")
async def get_blocked_users(admin: dict = Depends(require_admin)):
    users = list(user_collection.find({"is_blocked": True}).sort("name", 1))
    latest_reports = {}
    for report in report_users_collection.find({"user_id": {"$in": [user["_id"] for user in users]}}).sort("created_at", 1):
        latest_reports[report["user_id"]] = report
    titles = {
        category["_id"]: category["report_title"]
        for category in report_categories_collection.find(
            {"_id": {"$in": [report["report_category"] for report in latest_reports.values()]}}
        )
    }
    data = []
    for index, user in enumerate(users, start=1):
        report = latest_reports.get(user["_id"])
        data.append({
            "s_n": index,
            "userId": str(user["_id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "reason": titles.get(report["report_category"], "Unknown") if report else "No reason provided",
            "age": user.get("age"),
            "profile_image": user.get("profile_image"),
            "destination_country": user.get("destination_country"),
            "last_login": _iso(user.get("last_login")),
            "status": "blocked",
            "is_blocked": True,
            "report_created_at": _iso(report.get("created_at")) if report else "N/A",
        })
    return AdminResponse.success(data=data, message="Blocked users retrieved successfully")


@router.get("/get-all-reported-user")
async def get_all_reported_users(admin: dict = Depends(require_admin)):
    grouped = list(report_users_collection.aggregate([
        {"$group": {
            "_id": {"user_id": "$user_id", "category": "$report_category"},
            "count": {"$sum": "$report_count"},
        }}
    ]))
    totals: Dict[Any, Dict[str, Any]] = {}
    for row in grouped:
        entry = totals.setdefault(row["_id"]["user_id"], {"count": 0, "reasons": {}})
        entry["count"] += row["count"]
        entry["reasons"][row["_id"]["category"]] = entry["reasons"].get(row["_id"]["category"], 0) + row["count"]

    users = {user["_id"]: user for user in user_collection.find({"_id": {"$in": list(totals)}}, {"name": 1})}
    category_ids = {category for entry in totals.values() for category in entry["reasons"]}
    titles = {
        category["_id"]: category["report_title"]
        for category in report_categories_collection.find({"_id": {"$in": list(category_ids)}})
    }
    reported_posts = {
        row["_id"]: row["count"]
        for row in posts_collection.aggregate([
            {"$match": {"user_id": {"$in": list(totals)}, "reported_count": {"$gt": 0}}},
            {"$group": {"_id": "$user_id", "count": {"$sum": 1}}},
        ])
    }

    data = []
    for user_id, entry in totals.items():
        if user_id not in users:
            continue
        reasons = {}
        for category, count in entry["reasons"].items():
            title = titles.get(category, "Unknown")
            reasons[title] = reasons.get(title, 0) + count
        data.append({
            "userId": str(user_id),
            "reportedTo": users[user_id].get("name"),
            "reportedCount": entry["count"],
            "reportedReasons": reasons,
            "reportedPostCount": reported_posts.get(user_id, 0),
        })
    data.sort(key=lambda item: item["reportedCount"], reverse=True)
    return AdminResponse.success(data=data, message="Admin report fetched successfully")


@router.get("/userStats")
async def get_user_stats(admin: dict = Depends(require_admin)):
    active_since = minutes_ago(settings.ACTIVE_WINDOW_MINUTES)
    stats = {
        "totalUsers": user_collection.count_documents({}),
        "activeUsers": user_collection.count_documents({"last_activity": {"$gte": active_since}, "status": "Active"}),
        "inactiveUsers": user_collection.count_documents(
            {"$or": [{"last_activity": {"$lt": active_since}, "status": "Active"}, {"status": "Inactive"}]}
        ),
        "blockedUsers": user_collection.count_documents({"is_blocked": True}),
        "reportedUsers": user_collection.count_documents({"reported_count": {"$gt": 0}}),
        "blockedAndReportedUsers": user_collection.count_documents(
            {"$or": [{"is_blocked": True}, {"reported_count": {"$gt": 0}}]}
        ),
        "newUsers": user_collection.count_documents({"createdAt": {"$gte": days_ago(1)}}),
        "recentlyActiveUsers": user_collection.count_documents({"last_activity": {"$gte": days_ago(7)}}),
        "longInactiveUsers": user_collection.count_documents({"last_activity": {"$lt": days_ago(30)}}),
        "underReviewUsers": user_collection.count_documents({"status": "Under Review"}),
        "suspendedUsers": user_collection.count_documents({"status": "Suspended"}),
        "bannedUsers": user_collection.count_documents({"status": "Banned"}),
    }
    return AdminResponse.success(data=stats, message="User dashboard data retrieved successfully")


@router.get("/search-users")
async def search_users(query: str = Query(..., min_length=1), admin: dict = Depends(require_admin)):
    pattern = re.compile(re.escape(query.strip()), re.IGNORECASE)
    users = user_collection.find({"$or": [{"name": pattern}, {"email": pattern}]}).sort("name", 1).limit(50)
    return AdminResponse.success(data=list_serialize_users(users), message="Users retrieved successfully")


@router.put("/reset-report-count")
async def reset_report_count(body: ReportCountReset, admin: dict = Depends(require_admin)):
    user = _get_user(body.userId)
    user_collection.update_one({"_id": user["_id"]}, {"$set": {"reported_count": 0, "updatedAt": utcnow()}})
    report_users_collection.delete_many({"user_id": user["_id"]})
    logger.info(f"Admin {admin['_id']} reset report count for user {user['_id']}")
    return AdminResponse.success(data={"userId": str(user["_id"]), "reported_count": 0}, message="Report count reset")


@router.get("/unverified-users")
async def get_unverified_users(admin: dict = Depends(require_admin)):
    users = user_collection.find({"verified": {"$ne": True}, "role": {"$ne": "admin"}}).sort("createdAt", -1)
    return AdminResponse.success(data=list_serialize_users(users), message="Unverified users retrieved successfully")


@router.get("/verified-users")
async def get_verified_users(admin: dict = Depends(require_admin)):
    users = user_collection.find({"verified": True, "role": {"$ne": "admin"}}).sort("createdAt", -1)
    return AdminResponse.success(data=list_serialize_users(users), message="Verified users retrieved successfully")


def _set_verified(user_id: str, verified: bool, admin: dict) -> dict:
    user = _get_user(user_id)
    user_collection.update_one({"_id": user["_id"]}, {"$set": {"verified": verified, "updatedAt": utcnow()}})
    logger.info(f"Admin {admin['_id']} set verified={verified} for user {user['_id']}")
    return AdminResponse.success(
        data={"userId": str(user["_id"]), "verified": verified},
        message="User verified successfully" if verified else "User unverified successfully",
    )


@router.put("/verify-user/{user_id}")
async def verify_user(user_id: str, admin: dict = Depends(require_admin)):
    return _set_verified(user_id, True, admin)


@router.put("/unverify-user/{user_id}")
async def unverify_user(user_id: str, admin: dict = Depends(require_admin)):
    return _set_verified(user_id, False, admin)


@router.post("/send-email-to-users")
async def send_email_to_users(body: BulkEmail, admin: dict = Depends(require_admin)):
    if not settings.SMTP_HOST:
        return JSONResponse(
            status_code=503,
            content=AdminResponse.error("Email delivery is not configured", "EMAIL_NOT_CONFIGURED"),
        )

    if body.userIds:
        query = {"_id": {"$in": [to_object_id(user_id, "user ID") for user_id in body.userIds]}}
    else:
        query = {"role": {"$ne": "admin"}}
    recipients = [user["email"] for user in user_collection.find(query, {"email": 1}) if user.get("email")]
    if not recipients:
        raise HTTPException(status_code=404, detail="No recipients found")

    html_body = f"<div style=\"font-family: Arial, sans-serif;\"><p>{html.escape(body.message)}</p></div>"
    sent, failed = 0, []
    for email in recipients:
        try:
            await asyncio.to_thread(mailer.send_email, email, body.subject, html_body, body.message)
            sent += 1
        except mailer.MailDeliveryError:
            failed.append(email)

    logger.info(f"Admin {admin['_id']} emailed {sent} users, {len(failed)} failed")
    return AdminResponse.success(
        data={"sent": sent, "failed": len(failed), "failedEmails": failed},
        message=f"Email sent to {sent} users",
    )


@router.put("/admin-update-user-status")
async def manage_user_status(body: UserStatusAction, admin: dict = Depends(require_admin)):
    user = _get_user(body.userId)
    if user.get("role") == "admin":
        raise HTTPException(status_code=403, detail="Admin accounts cannot be moderated")

    now = utcnow()
    history = {"action": body.action, "reason": body.reason, "admin": admin["_id"], "date": now}
    updates: Dict[str, Any] = {"updatedAt": now}
    operation: Dict[str, Any] = {"$push": {"moderation_history": history}}

    if body.action == "suspend":
        suspended_from = as_naive_utc(body.suspendedFrom)
        suspended_till = as_naive_utc(body.suspendedTill)
        if not suspended_from or not suspended_till:
            raise HTTPException(status_code=400, detail="Suspension start and end dates are required")
        if suspended_till <= now or suspended_till <= suspended_from:
            raise HTTPException(status_code=400, detail="Suspension must end in the future and after it starts")
        if not body.reportCategoryId:
            raise HTTPException(status_code=400, detail="A report category is required for suspension")
        category = report_categories_collection.find_one({"_id": to_object_id(body.reportCategoryId, "report category ID")})
        if not category:
            raise HTTPException(status_code=404, detail="Report category not found")

        suspend_users_collection.insert_one({
            "userId": user["_id"],
            "reason": body.reason,
            "suspendedFrom": suspended_from,
            "suspendedTill": suspended_till,
            "type": category["_id"],
            "admin": admin["_id"],
            "createdAt": now,
        })
        updates.update({"status": "Suspended", "suspended_until": suspended_till})
        message = f"Your account has been suspended until {suspended_till.date().isoformat()}: {body.reason}"
    elif body.action == "ban":
        updates.update({"status": "Banned", "is_blocked": True})
        message = f"Your account has been banned: {body.reason}"
    elif body.action == "review":
        updates["status"] = "Under Review"
        message = f"Your account is under review: {body.reason}"
    else:
        operation["$push"]["warnings"] = {"reason": body.reason, "admin": admin["_id"], "date": now}
        message = f"You have received a warning: {body.reason}"

    operation["$set"] = updates
    user_collection.update_one({"_id": user["_id"]}, operation)
    logger.info(f"Admin {admin['_id']} applied {body.action} to user {user['_id']}")

    await notify_user(user["_id"], message, "admin", title="Account notice")
    updated = user_collection.find_one({"_id": user["_id"]})
    return AdminResponse.success(data=serialize_user(updated), message=f"User {body.action} action applied")


@router.put("/admin-remove-user-status")
async def remove_user_status(body: UserStatusRemoval, admin: dict = Depends(require_admin)):
    user = _get_user(body.userId)
    now = utcnow()
    user_collection.update_one(
        {"_id": user["_id"]},
        {
            "$set": {"status": "Active", "is_blocked": False, "suspended_until": None, "updatedAt": now},
            "$push": {"moderation_history": {
                "action": "reinstate", "reason": body.note or "", "admin": admin["_id"], "date": now,
            }},
        },
    )
    removed = suspend_users_collection.delete_many({"userId": user["_id"]}).deleted_count
    logger.info(f"Admin {admin['_id']} reinstated user {user['_id']} ({removed} suspension records removed)")
    updated = user_collection.find_one({"_id": user["_id"]})
    return AdminResponse.success(data=serialize_user(updated), message="User status restored")


@router.delete("/user/{user_id}")
async def delete_user(user_id: str, admin: dict = Depends(require_admin)):
    user = _get_user(user_id)
    if user["_id"] == admin["_id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account here")
    archive = erase_account(user, "Deleted by admin", admin["_id"])
    return AdminResponse.success(
        data={"archiveId": str(archive["_id"]), "posts": len(archive["posts"])},
        message="User deleted and archived successfully",
    )


@router.post("/purge-deleted-accounts")
async def purge_deleted_accounts(admin: dict = Depends(require_admin)):
    purged = purge_expired_accounts()
    return AdminResponse.success(data={"purged": purged}, message=f"{purged} accounts purged")


@router.put("/update-location")
async def update_location(body: LocationUpdate, user: dict = Depends(require_user)):
    location = {
        "country": body.country,
        "city": body.city,
        "coordinates": {"lat": body.lat, "lng": body.lng},
    }
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"current_location": location, "last_activity": utcnow(), "updatedAt": utcnow()}},
    )
    return {"message": "Location updated successfully", "current_location": location}


@router.put("/update-status")
async def update_user_activity(request: Request, user: dict = Depends(require_user)):
    now = utcnow()
    entry = {
        "date": now,
        "ip_address": request.client.host if request.client else None,
        "device": request.headers.get("user-agent"),
    }
    updates = {"last_activity": now}
    if user.get("status") == "Inactive":
        updates["status"] = "Active"
    user_collection.update_one({"_id": user["_id"]}, {"$set": updates, "$push": {"login_history": entry}})
    return {"message": "User activity updated"}


@router.put("/reached-destination")
async def update_reached_destination(body: ReachedDestinationUpdate, user: dict = Depends(require_user)):
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"reached_destination": body.reached_destination, "updatedAt": utcnow()}},
    )
    return {"message": "Destination status updated", "reached_destination": body.reached_destination}
