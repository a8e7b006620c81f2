import asyncio
import re
from datetime import datetime, time, timedelta
from fastapi import APIRouter, HTTPException, Depends, UploadFile, File, Query
from globalconnect.config import (
    logger,
    settings,
    user_collection,
    posts_collection,
    comments_collection,
    categories_collection,
    report_users_collection,
)
from globalconnect.core import mailer, otp as otp_codes
from globalconnect.core.accounts import blocked_between, is_following
from globalconnect.core.dates import utcnow, age_from_dob, format_long_date
from globalconnect.core.media import store_image
from globalconnect.core.security import hash_password, verify_password
from globalconnect.models.user_model import (
    EmailRequest,
    OtpVerify,
    PasswordReset,
    PasswordChange,
    ProfileUpdate,
    DobUpdate,
    BlockToggle,
    PreferredCategoriesUpdate,
)
from globalconnect.schemas.common import list_serialize_documents
from globalconnect.schemas.post_schema import list_serialize_posts
from globalconnect.schemas.user_schema import (
    serialize_user,
    list_serialize_user_summaries,
    USER_SUMMARY_PROJECTION,
)
from globalconnect.routers.dependencies import require_any, require_user, require_admin, to_object_id

router = APIRouter()

PROFILE_POST_PROJECTION = {"text_content": 1, "media": 1, "likes": 1, "comments": 1, "createdAt": 1, "category_id": 1}


async def _deliver_otp(send, email: str, otp: str):
    try:
        await asyncio.to_thread(send, email, otp)
    except mailer.MailDeliveryError:
        raise HTTPException(status_code=500, detail="Failed to send OTP email")


def _find_by_email(email: str) -> dict:
    user = user_collection.find_one({"email": email.lower()})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _profile_card(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "username": user.get("username"),
        "name": user.get("name"),
        "email": user.get("email"),
        "bio": user.get("bio"),
        "profile_image": user.get("profile_image"),
        "dob": user["dob"].isoformat() if user.get("dob") else None,
        "gender": user.get("gender"),
        "location": user.get("current_location"),
        "destination": user.get("destination_country"),
        "followersCount": len(user.get("followers", [])),
        "followingCount": len(user.get("following", [])),
        "postsCount": user.get("posts_count", 0),
        "likesReceived": user.get("likes_received", 0),
        "status": user.get("status"),
        "isBlocked": user.get("is_blocked", False),
        "isSuspended": user.get("status") == "Suspended",
    }


def _profile_posts(user_id, with_comments: bool = False) -> list:
    posts = list(
        posts_collection.find(
            {"user_id": user_id, "is_deleted": {"$ne": True}, "isBlocked": {"$ne": True}},
            PROFILE_POST_PROJECTION,
        ).sort("createdAt", -1)
    )

    comments_by_post = {}
    if with_comments and posts:
        comments = list(comments_collection.find({"postId": {"$in": [post["_id"] for post in posts]}}))
        authors = {
            user["_id"]: user
            for user in user_collection.find(
                {"_id": {"$in": list({comment["userId"] for comment in comments})}}, USER_SUMMARY_PROJECTION
            )
        }
        for comment in comments:
            author = authors.get(comment["userId"], {})
            comments_by_post.setdefault(comment["postId"], []).append({
                "_id": str(comment["_id"]),
                "text": comment["text"],
                "createdAt": format_long_date(comment["createdAt"]),
                "user": {
                    "id": str(comment["userId"]),
                    "name": author.get("name", "Unknown"),
                    "profile_image": author.get("profile_image"),
                },
            })

    formatted = []
    for post in posts:
        item = {
            "_id": str(post["_id"]),
            "text_content": post.get("text_content"),
            "media": post.get("media", []),
            "likes": [str(like) for like in post.get("likes", [])],
            "createdAt": format_long_date(post["createdAt"]),
            "likesCount": len(post.get("likes", [])),
            "commentsCount": len(post.get("comments", [])),
        }
        if with_comments:
            item["comments"] = comments_by_post.get(post["_id"], [])
            item["commentsCount"] = len(item["comments"])
        formatted.append(item)
    return formatted


@router.get("/getUserProfile")
async def get_user_profile(user: dict = Depends(require_user)):
    posts = posts_collection.find({"user_id": user["_id"], "is_deleted": {"$ne": True}}).sort("createdAt", -1)
    return {"user": serialize_user(user), "posts": list_serialize_posts(posts)}


@router.get("/me")
async def get_self_profile(user: dict = Depends(require_any)):
    logger.info(f"Fetching self profile for user {user['_id']}")
    return {"data": {"user": _profile_card(user), "posts": _profile_posts(user["_id"], with_comments=True)}}


@router.get("/user-data-user/{user_id}")
async def get_user_profile_for_mobile(user_id: str, viewer: dict = Depends(require_any)):
    target = user_collection.find_one({"_id": to_object_id(user_id, "User ID format")})
    if not target or blocked_between(viewer, target):
        raise HTTPException(status_code=404, detail="User not found")

    card = _profile_card(target)
    card["isFollowing"] = is_following(viewer, target)
    return {"data": {"user": card, "posts": _profile_posts(target["_id"])}}


@router.get("/user-data-admin/{user_id}")
async def get_user_profile_for_admin(user_id: str, admin: dict = Depends(require_admin)):
    target = user_collection.find_one({"_id": to_object_id(user_id, "User ID format")})
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    posts = posts_collection.find({"user_id": target["_id"]}).sort("createdAt", -1)
    reports = report_users_collection.find({"user_id": target["_id"]})
    return {
        "data": {
            "user": serialize_user(target),
            "posts": list_serialize_posts(posts),
            "reports": list_serialize_documents(reports),
        }
    }


@router.post("/forgot-password")
async def forgot_password(body: EmailRequest):
    user = _find_by_email(body.email)
    code = otp_codes.issue_otp(user, "reset")
    await _deliver_otp(mailer.send_password_reset_otp, user["email"], code)
    return {"message": "OTP sent to your email"}


@router.post("/verify-otp")
async def verify_otp(body: OtpVerify):
    user = _find_by_email(body.email)
    otp_codes.check_otp(user, body.otp, "reset")
    return {"message": "OTP verified successfully"}


@router.post("/reset-password")
async def reset_password(body: PasswordReset):
    user = _find_by_email(body.email)
    otp_codes.check_otp(user, body.otp, "reset")
    user_collection.update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": hash_password(body.newPassword), "updatedAt": utcnow()},
            "$unset": otp_codes.clear_otp_fields(),
        },
    )
    logger.info(f"Password reset for user {user['_id']}")
    return {"message": "Password reset successfully"}


@router.post("/newuser")
async def send_new_user_otp(body: EmailRequest):
    user = _find_by_email(body.email)
    if user.get("verified"):
        raise HTTPException(status_code=400, detail="User is already verified")
    code = otp_codes.issue_otp(user, "verify")
    await _deliver_otp(mailer.send_verification_otp, user["email"], code)
    return {"message": "Verification OTP sent to your email"}


@router.post("/verify-newuser")
async def verify_new_user(body: OtpVerify):
    user = _find_by_email(body.email)
    otp_codes.check_otp(user, body.otp, "verify")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"verified": True, "updatedAt": utcnow()}, "$unset": otp_codes.clear_otp_fields()},
    )
    logger.info(f"User {user['_id']} verified their email")
    return {"message": "Account verified successfully"}


@router.post("/send-otp")
async def send_profile_update_otp(body: EmailRequest, user: dict = Depends(require_any)):
    email = body.email.lower()
    if email == user.get("email"):
        raise HTTPException(status_code=400, detail="This is already your email")
    if user_collection.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email is already in use")
    code = otp_codes.issue_otp(user, "email_update", pending_email=email)
    await _deliver_otp(mailer.send_email_update_otp, email, code)
    return {"message": "OTP sent to your email"}


@router.post("/change-password")
async def change_password(body: PasswordChange, user: dict = Depends(require_any)):
    if not verify_password(body.currentPassword, user.get("password")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(body.newPassword), "updatedAt": utcnow()}},
    )
    logger.info(f"Password changed for user {user['_id']}")
    return {"message": "Password changed successfully"}


@router.post("/update-profile")
async def update_profile_image(image: UploadFile = File(...), user: dict = Depends(require_any)):
    media = await store_image(image, "profile")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"profile_image": media["media_path"], "updatedAt": utcnow()}},
    )
    return {"message": "Profile image updated successfully", "profile_image": media["media_path"]}


@router.put("/update")
async def update_user_profile(body: ProfileUpdate, user: dict = Depends(require_any)):
    updates = {}
    unset = {}
    if body.email is not None and body.email.lower() != user.get("email"):
        email = body.email.lower()
        if user_collection.find_one({"email": email}):
            raise HTTPException(status_code=400, detail="Email is already in use")
        if not body.otp:
            raise HTTPException(status_code=400, detail="OTP is required to update email")
        otp_codes.check_otp(user, body.otp, "email_update")
        if user.get("pending_email") != email:
            raise HTTPException(status_code=400, detail="OTP was issued for a different email")
        updates["email"] = email
        unset = otp_codes.clear_otp_fields()

    if body.name is not None:
        updates["name"] = body.name.strip()
    if body.bio is not None:
        updates["bio"] = body.bio

    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    updates["updatedAt"] = utcnow()

    operation = {"$set": updates}
    if unset:
        operation["$unset"] = unset
    user_collection.update_one({"_id": user["_id"]}, operation)
    updated = user_collection.find_one({"_id": user["_id"]})
    logger.info(f"Profile updated for user {user['_id']}: {sorted(updates)}")
    return {"message": "Profile updated successfully", "user": serialize_user(updated)}


@router.get("/check-dob")
async def check_dob(user: dict = Depends(require_any)):
    dob = user.get("dob")
    return {"dobSet": dob is not None, "dob": dob.isoformat() if dob else None}


@router.put("/update-dob")
async def update_dob(body: DobUpdate, user: dict = Depends(require_any)):
    if user.get("dob"):
        raise HTTPException(status_code=400, detail="Date of birth has already been updated")
    dob = datetime.combine(body.dob, time.min)
    if dob > utcnow():
        raise HTTPException(status_code=400, detail="Date of birth cannot be in the future")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"dob": dob, "age": age_from_dob(dob), "updatedAt": utcnow()}},
    )
    return {"message": "Date of birth updated successfully", "dob": dob.isoformat()}


@router.get("/follow-counts")
async def get_follow_counts(user: dict = Depends(require_any)):
    return {
        "followersCount": len(user.get("followers", [])),
        "followingCount": len(user.get("following", [])),
    }


@router.get("/search")
async def search_users(query: str = Query(..., min_length=1), user: dict = Depends(require_any)):
    pattern = re.compile(re.escape(query.strip()), re.IGNORECASE)
    candidates = user_collection.find(
        {
            "name": pattern,
            "_id": {"$ne": user["_id"], "$nin": user.get("blocked_users", [])},
            "blocked_users": {"$ne": user["_id"]},
            "role": {"$ne": "admin"},
        },
        {**USER_SUMMARY_PROJECTION, "followers": 1},
    ).limit(10)

    results = []
    for candidate in candidates:
        summary = list_serialize_user_summaries([candidate])[0]
        summary["isFollowing"] = user["_id"] in candidate.get("followers", [])
        results.append(summary)
    return {"message": "Users retrieved successfully", "data": results}


@router.get("/get-blocked")
async def get_blocked_users(user: dict = Depends(require_any)):
    blocked = user_collection.find({"_id": {"$in": user.get("blocked_users", [])}}, USER_SUMMARY_PROJECTION)
    return {"message": "Successfully fetched blocked users", "blocked_users": list_serialize_user_summaries(blocked)}


@router.post("/block-unblock")
async def block_unblock_user(body: BlockToggle, user: dict = Depends(require_any)):
    target_id = to_object_id(body.targetUserId, "target user ID")
    if target_id == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot block yourself")
    if not user_collection.find_one({"_id": target_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="User not found")

    if target_id in user.get("blocked_users", []):
        user_collection.update_one({"_id": user["_id"]}, {"$pull": {"blocked_users": target_id}})
        logger.info(f"User {user['_id']} unblocked {target_id}")
        return {"message": "User unblocked successfully", "blocked": False}

    # Blocking severs the follow relationship in both directions.
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$addToSet": {"blocked_users": target_id}, "$pull": {"following": target_id, "followers": target_id}},
    )
    user_collection.update_one(
        {"_id": target_id},
        {"$pull": {"following": user["_id"], "followers": user["_id"]}},
    )
    logger.info(f"User {user['_id']} blocked {target_id}")
    return {"message": "User blocked successfully", "blocked": True}


@router.put("/preferred-categories")
async def update_preferred_categories(body: PreferredCategoriesUpdate, user: dict = Depends(require_user)):
    category_ids = [to_object_id(category_id, "category ID") for category_id in dict.fromkeys(body.categoryIds)]
    found = categories_collection.count_documents({"_id": {"$in": category_ids}, "active": True})
    if found != len(category_ids):
        raise HTTPException(status_code=400, detail="One or more categories are invalid or inactive")

    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"preferred_categories": category_ids, "updatedAt": utcnow()}},
    )
    return {"message": "Preferred categories updated", "preferred_categories": [str(c) for c in category_ids]}


@router.post("/deactivate")
async def deactivate_account(user: dict = Depends(require_user)):
    user_collection.update_one({"_id": user["_id"]}, {"$set": {"status": "Inactive", "updatedAt": utcnow()}})
    logger.info(f"User {user['_id']} deactivated their account")
    return {"message": "Account deactivated. Log in again to reactivate it."}


@router.post("/deleteAccount")
async def schedule_account_deletion(user: dict = Depends(require_user)):
    scheduled_at = utcnow() + timedelta(days=settings.ACCOUNT_DELETION_GRACE_DAYS)
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"deletion_scheduled_at": scheduled_at, "status": "Inactive", "updatedAt": utcnow()}},
    )
    logger.info(f"User {user['_id']} scheduled account deletion for {scheduled_at}")
    return {
        "message": f"Your account will be deleted in {settings.ACCOUNT_DELETION_GRACE_DAYS} days. "
                   "Log in before then to cancel.",
        "deletion_scheduled_at": scheduled_at.isoformat(),
    }
