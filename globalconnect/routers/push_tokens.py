from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import logger, user_collection
from globalconnect.core.dates import utcnow
from globalconnect.core.push import is_expo_token
from globalconnect.models.user_model import PushTokenRegister
from globalconnect.routers.dependencies import require_any

router = APIRouter()


@router.post("/register")
async def register_push_token(body: PushTokenRegister, user: dict = Depends(require_any)):
    if not is_expo_token(body.expoPushToken):
        raise HTTPException(status_code=400, detail="Invalid Expo push token")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"expoPushToken": body.expoPushToken, "updatedAt": utcnow()}},
    )
    logger.info(f"Registered push token for user {user['_id']}")
    return {"message": "Push token registered successfully"}
