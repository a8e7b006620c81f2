from typing import List, Optional
from globalconnect.config import user_collection, categories_collection, comments_collection
from globalconnect.schemas.common import serialize_document
from globalconnect.schemas.user_schema import USER_SUMMARY_PROJECTION

DEFAULT_AVATAR = "https://via.placeholder.com/40"


def serialize_post(post: dict) -> dict:
    """Serialize a raw post document, as admin tooling sees it."""
    return serialize_document(post)


def list_serialize_posts(posts) -> list:
    return [serialize_post(post) for post in posts]


def _lookup(collection, ids, projection=None) -> dict:
    ids = list({i for i in ids if i is not None})
    if not ids:
        return {}
    return {doc["_id"]: doc for doc in collection.find({"_id": {"$in": ids}}, projection)}


def format_posts(posts: List[dict], viewer_id: Optional[str] = None, include_comments: bool = False) -> list:
    """Shape posts the way the mobile feed renders them.

    Authors and categories are fetched in one query each.
    """
    posts = list(posts)
    authors = _lookup(user_collection, [post.get("user_id") for post in posts], USER_SUMMARY_PROJECTION)
    categories = _lookup(categories_collection, [post.get("category_id") for post in posts], {"name": 1})

    comments_by_post = {}
    if include_comments and posts:
        post_comments = list(
            comments_collection.find({"postId": {"$in": [post["_id"] for post in posts]}}).sort("createdAt", 1)
        )
        commenters = _lookup(user_collection, [comment["userId"] for comment in post_comments], USER_SUMMARY_PROJECTION)
        for comment in post_comments:
            commenter = commenters.get(comment["userId"], {})
            comments_by_post.setdefault(comment["postId"], []).append({
                "_id": str(comment["_id"]),
                "userId": str(comment["userId"]),
                "user": commenter.get("name", "Unknown"),
                "text": comment["text"],
                "time": comment["createdAt"].isoformat(),
            })

    formatted = []
    for post in posts:
        author = authors.get(post.get("user_id"))
        category = categories.get(post.get("category_id"))
        likes = [str(like) for like in post.get("likes", [])]
        item = {
            "id": str(post["_id"]),
            "user": {
                "_id": str(author["_id"]) if author else None,
                "name": author.get("name") if author else "Unknown User",
                "profile_image": (author.get("profile_image") if author else None) or DEFAULT_AVATAR,
            },
            "type": category["name"] if category else "Unknown Category",
            "category_id": str(post["category_id"]) if post.get("category_id") else None,
            "time": post["createdAt"].isoformat(),
            "content": post.get("text_content") or "",
            "media": [media["media_path"] for media in post.get("media", [])],
            "tags": post.get("tags", []),
            "location": post.get("location"),
            "visibility": post.get("visibility", "public"),
            "status": post.get("status", "Active"),
            "edited": post.get("edited", False),
            "liked": viewer_id in likes if viewer_id else False,
            "likeCount": len(likes),
            "commentCount": len(post.get("comments", [])),
            "shareCount": post.get("shares", 0),
            "views": post.get("views", 0),
        }
        if include_comments:
            item["comments"] = comments_by_post.get(post["_id"], [])
        formatted.append(item)
    return formatted


def format_post(post: dict, viewer_id: Optional[str] = None) -> dict:
    return format_posts([post], viewer_id, include_comments=True)[0]
