from fastapi import Request, HTTPException, Depends
from bson import ObjectId, errors
from globalconnect.config import logger, user_collection
from globalconnect.core.accounts import account_restriction, lift_expired_suspension
from globalconnect.core.security import verify_access_token


def to_object_id(value, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (errors.InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def get_token(request: Request):
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip()
    return request.cookies.get("access_token")


def get_current_user_id(request: Request) -> str:
    token = get_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = verify_access_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


def get_current_user(user_id: str = Depends(get_current_user_id)) -> dict:
    """Load the caller from the database so role and moderation state are current."""
    user = user_collection.find_one({"_id": to_object_id(user_id, "token subject")})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    user = lift_expired_suspension(user)
    restriction = account_restriction(user)
    if restriction:
        logger.warning(f"Rejected request from restricted user {user_id}")
        raise HTTPException(status_code=403, detail=restriction)
    return user


def checkRole(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role", "user") not in roles:
            raise HTTPException(status_code=403, detail="Access denied")
        return user

    return dependency


require_admin = checkRole("admin")
require_user = checkRole("user")
require_any = checkRole("user", "admin")
