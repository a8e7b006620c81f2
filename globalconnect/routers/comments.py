from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import logger, user_collection, posts_collection, comments_collection
from globalconnect.core.dates import utcnow
from globalconnect.core.notifier import notify_user
from globalconnect.models.comment_model import CommentCreate, CommentEdit
from globalconnect.routers.dependencies import require_any, require_user, to_object_id

router = APIRouter()


def serialize_comment(comment: dict, author: dict = None) -> dict:
    return {
        "_id": str(comment["_id"]),
        "postId": str(comment["postId"]),
        "userId": {
            "_id": str(comment["userId"]),
            "name": author.get("name") if author else "Unknown",
            "email": author.get("email") if author else None,
            "profile_image": author.get("profile_image") if author else None,
        },
        "text": comment["text"],
        "createdAt": comment["createdAt"].isoformat(),
        "updatedAt": comment.get("updatedAt", comment["createdAt"]).isoformat(),
    }


def _get_comment(comment_id: str) -> dict:
    comment = comments_collection.find_one({"_id": to_object_id(comment_id, "comment ID")})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.post("/create", status_code=201)
async def add_comment(body: CommentCreate, user: dict = Depends(require_user)):
    post = posts_collection.find_one({"_id": to_object_id(body.postId, "post ID")})
    if not post or post.get("is_deleted"):
        raise HTTPException(status_code=404, detail="Post not found")

    now = utcnow()
    comment = {"userId": user["_id"], "postId": post["_id"], "text": body.text.strip(), "createdAt": now, "updatedAt": now}
    comment["_id"] = comments_collection.insert_one(comment).inserted_id
    posts_collection.update_one({"_id": post["_id"]}, {"$push": {"comments": comment["_id"]}})
    logger.info(f"User {user['_id']} commented on post {post['_id']}")

    if post["user_id"] != user["_id"]:
        await notify_user(
            post["user_id"],
            f"{user.get('name', 'Someone')} commented on your post",
            "comment",
            title="New comment",
            metadata={"postId": str(post["_id"]), "commentId": str(comment["_id"])},
        )
    return {"message": "Comment added successfully", "data": serialize_comment(comment, user)}


@router.get("/all/{post_id}")
async def get_comments_by_post(post_id: str, user: dict = Depends(require_any)):
    post = posts_collection.find_one({"_id": to_object_id(post_id, "post ID")}, {"_id": 1})
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")

    comments = list(comments_collection.find({"postId": post["_id"]}).sort("createdAt", 1))
    authors = {
        author["_id"]: author
        for author in user_collection.find(
            {"_id": {"$in": list({comment["userId"] for comment in comments})}},
            {"name": 1, "email": 1, "profile_image": 1},
        )
    }
    # The viewer's own comments come first, otherwise oldest first.
    comments.sort(key=lambda comment: comment["userId"] != user["_id"])
    data = [serialize_comment(comment, authors.get(comment["userId"])) for comment in comments]
    return {"message": "Comments retrieved successfully", "data": data}


@router.put("/edit/{comment_id}")
async def edit_comment(comment_id: str, body: CommentEdit, user: dict = Depends(require_any)):
    comment = _get_comment(comment_id)
    if comment["userId"] != user["_id"]:
        raise HTTPException(status_code=403, detail="You can only edit your own comments")

    now = utcnow()
    comments_collection.update_one({"_id": comment["_id"]}, {"$set": {"text": body.text.strip(), "updatedAt": now}})
    comment.update({"text": body.text.strip(), "updatedAt": now})
    return {"message": "Comment updated successfully", "data": serialize_comment(comment, user)}


@router.delete("/delete/{comment_id}")
async def delete_comment(comment_id: str, user: dict = Depends(require_any)):
    comment = _get_comment(comment_id)
    post = posts_collection.find_one({"_id": comment["postId"]}, {"user_id": 1})
    allowed = (
        comment["userId"] == user["_id"]
        or (post is not None and post["user_id"] == user["_id"])
        or user.get("role") == "admin"
    )
    if not allowed:
        raise HTTPException(status_code=403, detail="You are not allowed to delete this comment")

    comments_collection.delete_one({"_id": comment["_id"]})
    posts_collection.update_one({"_id": comment["postId"]}, {"$pull": {"comments": comment["_id"]}})
    logger.info(f"User {user['_id']} deleted comment {comment_id}")
    return {"message": "Comment deleted successfully"}
