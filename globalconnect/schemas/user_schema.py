from globalconnect.schemas.common import serialize_document

PRIVATE_USER_FIELDS = {
    "password",
    "reset_otp",
    "otp_expiry",
    "otp_attempts",
    "otp_blocked_until",
    "pending_email",
}

USER_SUMMARY_PROJECTION = {"name": 1, "username": 1, "profile_image": 1}


def serialize_user(user: dict) -> dict:
    return serialize_document({key: value for key, value in user.items() if key not in PRIVATE_USER_FIELDS})


def list_serialize_users(users) -> list:
    return [serialize_user(user) for user in users]


def serialize_user_summary(user: dict) -> dict:
    return {
        "_id": str(user["_id"]),
        "name": user.get("name"),
        "username": user.get("username"),
        "profile_image": user.get("profile_image"),
    }


def list_serialize_user_summaries(users) -> list:
    return [serialize_user_summary(user) for user in users]
