from typing import Optional, List
from datetime import date
from pydantic import BaseModel, EmailStr, Field, field_validator
from globalconnect.models.common import ObjectId


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    username: Optional[str] = None
    dob: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    location: Optional[str] = None
    destination_country: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, name: str):
        name = name.strip()
        if not name:
            raise ValueError("Name is required")
        return name


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refreshToken: str


class DestinationUpdate(BaseModel):
    destination_country: Optional[str] = None


class AdminCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    profile_image: Optional[str] = None


class AdminUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    profile_image: Optional[str] = None


class EmailRequest(BaseModel):
    email: EmailStr


class OtpVerify(BaseModel):
    email: EmailStr
    otp: str


class PasswordReset(BaseModel):
    email: EmailStr
    otp: str
    newPassword: str = Field(min_length=6)


class PasswordChange(BaseModel):
    currentPassword: str
    newPassword: str = Field(min_length=6)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    email: Optional[EmailStr] = None
    otp: Optional[str] = None


class DobUpdate(BaseModel):
    dob: date


class BlockToggle(BaseModel):
    targetUserId: str


class PreferredCategoriesUpdate(BaseModel):
    categoryIds: List[ObjectId]


class FollowRequest(BaseModel):
    followUserId: str


class UnfollowRequest(BaseModel):
    unfollowUserId: str


class PushTokenRegister(BaseModel):
    expoPushToken: str


class LocationUpdate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    country: Optional[str] = None
    city: Optional[str] = None


class ReachedDestinationUpdate(BaseModel):
    reached_destination: bool
