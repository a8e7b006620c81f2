import re
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
from globalconnect.config import logger, user_collection
from globalconnect.core.accounts import blocked_between
from globalconnect.core.notifier import notify_user
from globalconnect.models.user_model import FollowRequest, UnfollowRequest
from globalconnect.schemas.user_schema import list_serialize_user_summaries, USER_SUMMARY_PROJECTION
from globalconnect.routers.dependencies import require_any, to_object_id

router = APIRouter()


def _find_user(user_id: str) -> dict:
    user = user_collection.find_one({"_id": to_object_id(user_id, "user ID")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/follow")
async def follow_user(body: FollowRequest, user: dict = Depends(require_any)):
    target = _find_user(body.followUserId)
    if target["_id"] == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    if blocked_between(user, target):
        raise HTTPException(status_code=403, detail="You cannot follow this user")
    if target["_id"] in user.get("following", []):
        raise HTTPException(status_code=400, detail="You are already following this user")

    # Both sides of the edge are written so follower and following lists agree.
    user_collection.update_one({"_id": user["_id"]}, {"$addToSet": {"following": target["_id"]}})
    user_collection.update_one({"_id": target["_id"]}, {"$addToSet": {"followers": user["_id"]}})
    logger.info(f"User {user['_id']} followed {target['_id']}")

    await notify_user(
        target["_id"],
        f"{user.get('name', 'Someone')} started following you",
        "follow",
        title="New follower",
        metadata={"userId": str(user["_id"])},
    )
    return {"success": True, "message": f"You are now following {target.get('name')}."}


@router.post("/unfollow")
async def unfollow_user(body: UnfollowRequest, user: dict = Depends(require_any)):
    target = _find_user(body.unfollowUserId)
    if target["_id"] not in user.get("following", []):
        raise HTTPException(status_code=400, detail="You are not following this user")

    user_collection.update_one({"_id": user["_id"]}, {"$pull": {"following": target["_id"]}})
    user_collection.update_one({"_id": target["_id"]}, {"$pull": {"followers": user["_id"]}})
    logger.info(f"User {user['_id']} unfollowed {target['_id']}")
    return {"success": True, "message": f"You have unfollowed {target.get('name')}."}


def _list_connections(ids, search: Optional[str]) -> list:
    query = {"_id": {"$in": ids}}
    if search:
        pattern = re.compile(re.escape(search), re.IGNORECASE)
        query["$or"] = [{"name": pattern}, {"username": pattern}]
    return list_serialize_user_summaries(user_collection.find(query, USER_SUMMARY_PROJECTION).sort("name", 1))


@router.get("/followers")
async def get_followers(search: Optional[str] = Query(None), user: dict = Depends(require_any)):
    followers = _list_connections(user.get("followers", []), search)
    return {"message": "Followers retrieved successfully", "count": len(followers), "data": followers}


@router.get("/following")
async def get_following(search: Optional[str] = Query(None), user: dict = Depends(require_any)):
    following = _list_connections(user.get("following", []), search)
    return {"message": "Following retrieved successfully", "count": len(following), "data": following}
