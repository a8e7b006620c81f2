from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from globalconnect.config import (
    client,
    logger,
    user_collection,
    posts_collection,
    comments_collection,
    messages_collection,
    user_notifications_collection,
    categories_collection,
    report_users_collection,
)


def ping_database() -> bool:
    try:
        client.admin.command("ping")
        logger.info("Connected to MongoDB successfully!")
        return True
    except PyMongoError as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        return False


def ensure_indexes():
    user_collection.create_index("email", unique=True)
    user_collection.create_index("username", unique=True, sparse=True)
    user_collection.create_index("last_activity")
    posts_collection.create_index([("createdAt", DESCENDING)])
    posts_collection.create_index([("user_id", ASCENDING), ("createdAt", DESCENDING)])
    posts_collection.create_index("category_id")
    comments_collection.create_index("postId")
    messages_collection.create_index([("sender", ASCENDING), ("receiver", ASCENDING)])
    messages_collection.create_index([("timestamp", DESCENDING)])
    messages_collection.create_index("readByReceiver")
    user_notifications_collection.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    categories_collection.create_index("name", unique=True)
    report_users_collection.create_index(
        [("user_id", ASCENDING), ("reported_by", ASCENDING), ("report_category", ASCENDING)]
    )
    logger.info("MongoDB indexes ensured")
