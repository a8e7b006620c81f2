from datetime import timedelta
from fastapi import HTTPException
from globalconnect.config import settings, logger, user_collection
from globalconnect.core.dates import utcnow
from globalconnect.core.security import generate_otp

OTP_FIELDS = ("reset_otp", "otp_expiry", "otp_purpose", "otp_attempts", "pending_email")


def issue_otp(user: dict, purpose: str, pending_email: str = None) -> str:
    """Store a fresh OTP on the user and return it.

    A new code resets the wrong-attempt counter but never lifts an active lock.
    """
    ensure_not_locked(user)
    otp = generate_otp()
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {
            "reset_otp": otp,
            "otp_expiry": utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
            "otp_purpose": purpose,
            "otp_attempts": 0,
            "pending_email": pending_email,
        }},
    )
    logger.info(f"Issued {purpose} OTP for user {user['_id']}")
    return otp


def ensure_not_locked(user: dict):
    blocked_until = user.get("otp_blocked_until")
    if blocked_until and blocked_until > utcnow():
        raise HTTPException(status_code=429, detail="Too many invalid attempts. Please try again later.")


def check_otp(user: dict, otp: str, purpose: str):
    """Validate an OTP, counting wrong guesses toward the lock."""
    ensure_not_locked(user)
    expiry = user.get("otp_expiry")
    if not user.get("reset_otp") or user.get("otp_purpose") != purpose or not expiry or expiry < utcnow():
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")

    if user["reset_otp"] != otp:
        attempts = user.get("otp_attempts", 0) + 1
        if attempts >= settings.OTP_MAX_ATTEMPTS:
            user_collection.update_one(
                {"_id": user["_id"]},
                {
                    "$set": {"otp_blocked_until": utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)},
                    "$unset": {field: "" for field in OTP_FIELDS},
                },
            )
            logger.warning(f"OTP locked for user {user['_id']} after {attempts} attempts")
            raise HTTPException(status_code=429, detail="Too many invalid attempts. Please try again later.")
        user_collection.update_one({"_id": user["_id"]}, {"$set": {"otp_attempts": attempts}})
        raise HTTPException(status_code=400, detail="Invalid OTP")


def clear_otp_fields() -> dict:
    """Update fragment that consumes the current OTP."""
    return {field: "" for field in OTP_FIELDS}
