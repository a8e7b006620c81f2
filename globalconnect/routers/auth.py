from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from datetime import datetime, time
from globalconnect.core import security
from globalconnect.config import logger, user_collection, settings
from globalconnect.core.dates import utcnow, age_from_dob
from globalconnect.core.accounts import account_restriction, lift_expired_suspension
from globalconnect.models.user_model import (
    UserCreate,
    UserLogin,
    RefreshRequest,
    DestinationUpdate,
    AdminCreate,
    AdminUpdate,
)
from globalconnect.schemas.user_schema import serialize_user, list_serialize_users
from globalconnect.routers.dependencies import require_admin, require_user, to_object_id

router = APIRouter()

MIN_SIGNUP_AGE = 18


def create_jwt_session(user_id: str, role: str = "user") -> dict:
    """Create a new JWT session with both access and refresh tokens"""
    return {
        "access_token": security.create_access_token(user_id, role),
        "refresh_token": security.create_refresh_token(user_id, role),
        "token_type": "bearer",
    }


def set_session_cookies(response: JSONResponse, tokens: dict):
    response.set_cookie(
        key="access_token",
        value=tokens["access_token"],
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="Lax",
        secure=settings.ENV == "production",
        path="/",
    )
    response.set_cookie(
        key="refresh_token",
        value=tokens["refresh_token"],
        httponly=True,
        max_age=settings.REFRESH_TOKEN_EXPIRE_MINUTES * 60,
        samesite="Lax",
        secure=settings.ENV == "production",
        path="/",
    )


def new_user_document(name: str, email: str, password: str, role: str = "user", **fields) -> dict:
    now = utcnow()
    document = {
        "name": name,
        "email": email.lower(),
        "password": security.hash_password(password),
        "role": role,
        "verified": role == "admin",
        "bio": "",
        "profile_image": None,
        "destination_country": None,
        "reached_destination": False,
        "current_location": None,
        "is_blocked": False,
        "reported_count": 0,
        "status": "Active",
        "suspended_until": None,
        "preferred_categories": [],
        "followers": [],
        "following": [],
        "blocked_users": [],
        "posts_count": 0,
        "likes_received": 0,
        "notifications_enabled": True,
        "notification_preferences": {"email": True, "sms": False, "push": True},
        "login_history": [],
        "moderation_history": [],
        "warnings": [],
        "last_login": None,
        "last_activity": now,
        "deletion_scheduled_at": None,
        "createdAt": now,
        "updatedAt": now,
    }
    document.update({key: value for key, value in fields.items() if value is not None})
    return document


@router.post("/signup", status_code=201)
async def signup(body: UserCreate):
    email = body.email.lower()
    if user_collection.find_one({"email": email}):
        logger.warning(f"Signup rejected, email already registered: {email}")
        raise HTTPException(status_code=400, detail="User already exists")
    if body.username and user_collection.find_one({"username": body.username}):
        raise HTTPException(status_code=400, detail="Username already taken")

    if body.dob is not None:
        dob = datetime.combine(body.dob, time.min)
        age = age_from_dob(dob)
    elif body.age is not None:
        dob = None
        age = body.age
    else:
        raise HTTPException(status_code=400, detail="Date of birth or age is required")

    if age < MIN_SIGNUP_AGE:
        raise HTTPException(status_code=400, detail="You must be at least 18 years old to sign up")

    current_location = None
    if body.location:
        current_location = {"country": body.location, "city": None, "coordinates": None}

    document = new_user_document(
        body.name,
        email,
        body.password,
        username=body.username,
        dob=dob,
        age=age,
        gender=body.gender,
        current_location=current_location,
        destination_country=body.destination_country,
        profile_image=body.profile_image,
    )
    result = user_collection.insert_one(document)
    user_id = str(result.inserted_id)
    logger.info(f"User {user_id} signed up")
    return {"message": "User registered successfully", "token": security.create_access_token(user_id, "user")}


def _login(body: UserLogin, admin: bool = False) -> JSONResponse:
    user = user_collection.find_one({"email": body.email.lower()})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not security.verify_password(body.password, user.get("password")):
        logger.warning(f"Failed login attempt for {body.email}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if admin:
        if user.get("role") != "admin":
            raise HTTPException(status_code=403, detail="Access denied. Admins only.")
        if user.get("status", "Active") != "Active":
            raise HTTPException(status_code=403, detail="Admin account is not active")

    user = lift_expired_suspension(user)
    restriction = account_restriction(user)
    if restriction:
        logger.warning(f"Login refused for restricted user {user['_id']}")
        raise HTTPException(status_code=403, detail=restriction)

    now = utcnow()
    updates = {"last_login": now, "last_activity": now, "deletion_scheduled_at": None}
    if user.get("status") == "Inactive":
        updates["status"] = "Active"
    user_collection.update_one({"_id": user["_id"]}, {"$set": updates})
    user.update(updates)

    user_id = str(user["_id"])
    tokens = create_jwt_session(user_id, user.get("role", "user"))
    logger.info(f"User {user_id} logged in")
    response = JSONResponse({
        "message": "Login successful",
        "token": tokens["access_token"],
        "refreshToken": tokens["refresh_token"],
        "user": serialize_user(user),
    })
    set_session_cookies(response, tokens)
    return response


@router.post("/login")
async def login(body: UserLogin):
    return _login(body)


@router.post("/loginAdmin")
async def login_admin(body: UserLogin):
    return _login(body, admin=True)


@router.post("/refresh")
async def refresh_token(body: RefreshRequest):
    payload = security.verify_token(body.refreshToken, "refresh")
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    user = user_collection.find_one({"_id": to_object_id(payload["sub"], "refresh token")})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return {"token": security.create_access_token(str(user["_id"]), user.get("role", "user"))}


@router.put("/update-destination")
async def update_destination(body: DestinationUpdate, user: dict = Depends(require_user)):
    if not body.destination_country:
        raise HTTPException(status_code=400, detail="Destination country is required")
    user_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {"destination_country": body.destination_country, "updatedAt": utcnow()}},
    )
    logger.info(f"User {user['_id']} destination set to {body.destination_country}")
    return {"message": "Destination updated successfully", "destination_country": body.destination_country}


@router.post("/admin/signup", status_code=201)
async def admin_signup(body: AdminCreate, admin: dict = Depends(require_admin)):
    email = body.email.lower()
    if user_collection.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")

    document = new_user_document(body.name, email, body.password, role="admin", profile_image=body.profile_image)
    result = user_collection.insert_one(document)
    document["_id"] = result.inserted_id
    logger.info(f"Admin {admin['_id']} created admin {result.inserted_id}")
    return {"message": "Admin created successfully", "data": serialize_user(document)}


@router.get("/allAdmin")
async def all_admins(admin: dict = Depends(require_admin)):
    admins = user_collection.find({"role": "admin"}).sort("name", 1)
    return {"message": "Admins retrieved successfully", "data": list_serialize_users(admins)}


@router.delete("/admin/remove/{admin_id}")
async def remove_admin(admin_id: str, admin: dict = Depends(require_admin)):
    target_id = to_object_id(admin_id, "admin ID")
    if target_id == admin["_id"]:
        raise HTTPException(status_code=400, detail="You cannot remove yourself")

    result = user_collection.delete_one({"_id": target_id, "role": "admin"})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Admin not found")
    logger.info(f"Admin {admin['_id']} removed admin {admin_id}")
    return {"message": "Admin removed successfully"}


@router.put("/admin/edit/{admin_id}")
async def edit_admin(admin_id: str, body: AdminUpdate, admin: dict = Depends(require_admin)):
    target_id = to_object_id(admin_id, "admin ID")
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "email" in updates:
        updates["email"] = updates["email"].lower()
        if user_collection.find_one({"email": updates["email"], "_id": {"$ne": target_id}}):
            raise HTTPException(status_code=400, detail="Email already in use")
    updates["updatedAt"] = utcnow()

    result = user_collection.update_one({"_id": target_id, "role": "admin"}, {"$set": updates})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Admin not found")
    updated = user_collection.find_one({"_id": target_id})
    logger.info(f"Admin {admin['_id']} edited admin {admin_id}")
    return {"message": "Admin updated successfully", "data": serialize_user(updated)}
