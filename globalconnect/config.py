import os
from pydantic_settings import BaseSettings
from pymongo import MongoClient
import cloudinary
import cloudinary.uploader
import certifi
import logging


class Settings(BaseSettings):
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "globalconnect")
    MONGO_TLS: bool = False
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "mysecret")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30
    PASSWORD_HASH_ITERATIONS: int = 390000
    CLOUDINARY_CLOUD_NAME: str | None = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY: str | None = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET: str | None = os.getenv("CLOUDINARY_API_SECRET")
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = 587
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "no-reply@globalconnect.app")
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    LOGO_URL: str = os.getenv("LOGO_URL", "http://localhost:8000/static/logo.png")
    OTP_EXPIRE_MINUTES: int = 15
    OTP_MAX_ATTEMPTS: int = 5
    REPORT_BLOCK_THRESHOLD: int = 5
    ACTIVE_WINDOW_MINUTES: int = 30
    ACCOUNT_DELETION_GRACE_DAYS: int = 15
    WS_AUTH_TIMEOUT: int = 15
    WS_CLEANUP_INTERVAL: int = 30
    ENV: str = os.getenv("ENV", "development")

    class Config:
        env_file = ".env"


settings = Settings()

if settings.MONGO_TLS:
    client = MongoClient(settings.MONGO_URI, tlsCAFile=certifi.where())
else:
    client = MongoClient(settings.MONGO_URI)


async def upload_image(image_data: bytes, folder: str) -> str:
    result = cloudinary.uploader.upload(image_data, folder=f"globalconnect/{folder}")
    return result["secure_url"]


cloudinary.config(
    cloud_name=settings.CLOUDINARY_CLOUD_NAME,
    api_key=settings.CLOUDINARY_API_KEY,
    api_secret=settings.CLOUDINARY_API_SECRET,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("globalconnect (backend)")

db = client[settings.MONGO_DB_NAME]
user_collection = db.users
posts_collection = db.posts
comments_collection = db.comments
messages_collection = db.messages
user_notifications_collection = db.user_notifications
global_notifications_collection = db.global_notifications
categories_collection = db.categories
report_categories_collection = db.report_categories
report_users_collection = db.report_users
suspend_users_collection = db.suspend_users
suspensions_collection = db.suspensions
blocked_posts_collection = db.blocked_posts
deleted_users_collection = db.deleted_users
privacy_policies_collection = db.privacy_policies
terms_conditions_collection = db.terms_conditions

ALL_COLLECTIONS = [
    user_collection,
    posts_collection,
    comments_collection,
    messages_collection,
    user_notifications_collection,
    global_notifications_collection,
    categories_collection,
    report_categories_collection,
    report_users_collection,
    suspend_users_collection,
    suspensions_collection,
    blocked_posts_collection,
    deleted_users_collection,
    privacy_policies_collection,
    terms_conditions_collection,
]
