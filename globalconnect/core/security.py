import jwt
import base64
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional
from globalconnect.config import settings
from cryptography.exceptions import InvalidKey
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import logging

logger = logging.getLogger("globalconnect (backend)")

PASSWORD_SCHEME = "pbkdf2_sha256"


# Derive a secret key as a string for JWT signing.
@lru_cache(maxsize=4)
def _derive_secret_key(secret: str) -> str:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"globalconnect_static_salt",
        iterations=480000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret.encode()))
    return key.decode()


def get_secret_key() -> str:
    return _derive_secret_key(settings.JWT_SECRET_KEY)


# Create a Fernet instance for encryption/decryption.
def get_fernet_key() -> Fernet:
    return Fernet(get_secret_key().encode("utf-8"))


# signs the payload with JWT and then encrypts the resulting token using Fernet.
def encrypt_payload(payload: dict) -> str:
    token = jwt.encode(payload, get_secret_key(), algorithm="HS256")
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    encrypted = get_fernet_key().encrypt(token.encode("utf-8"))
    return encrypted.decode("utf-8")


# decrypts the token using Fernet and then decodes the JWT to get the payload dictionary.
def decrypt_payload(token: str) -> Optional[dict]:
    try:
        decrypted_token = get_fernet_key().decrypt(token.encode("utf-8")).decode("utf-8")
        return jwt.decode(decrypted_token, get_secret_key(), algorithms=["HS256"])
    except Exception as e:
        logger.error(f"Error during decryption: {str(e)}")
        return None


def _create_token(user_id: str, role: str, token_type: str, expires_delta: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_delta)
    payload = {
        "sub": user_id,
        "role": role,
        "exp": expire.timestamp(),
        "type": token_type,
    }
    return encrypt_payload(payload)


def create_access_token(user_id: str, role: str = "user", expires_delta: int = None) -> str:
    if expires_delta is None:
        expires_delta = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    return _create_token(user_id, role, "access", expires_delta)


def create_refresh_token(user_id: str, role: str = "user", expires_delta: int = None) -> str:
    if expires_delta is None:
        expires_delta = settings.REFRESH_TOKEN_EXPIRE_MINUTES
    return _create_token(user_id, role, "refresh", expires_delta)


def verify_token(token: str, token_type: str = None) -> Optional[dict]:
    """Return the token payload, or ``None`` when it is invalid, expired or of another type."""
    if not token:
        return None
    payload = decrypt_payload(token)
    if not payload:
        return None

    # PyJWT checks ``exp`` on decode; this covers tokens minted without it.
    exp = payload.get("exp")
    if exp is None or datetime.now(timezone.utc) >= datetime.fromtimestamp(exp, tz=timezone.utc):
        logger.error("Token expired")
        return None

    if token_type and payload.get("type") != token_type:
        logger.error(f"Token type mismatch: expected {token_type}, got {payload.get('type')}")
        return None

    return payload


def verify_access_token(token: str) -> Optional[str]:
    payload = verify_token(token, "access")
    return payload.get("sub") if payload else None


def verify_refresh_token(token: str) -> Optional[str]:
    payload = verify_token(token, "refresh")
    return payload.get("sub") if payload else None


def _password_kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )


def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    iterations = settings.PASSWORD_HASH_ITERATIONS
    digest = _password_kdf(salt, iterations).derive(password.encode("utf-8"))
    return "$".join(
        [
            PASSWORD_SCHEME,
            str(iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        scheme, iterations, salt, digest = hashed.split("$")
    except ValueError:
        logger.error("Stored password hash has an unknown format")
        return False
    if scheme != PASSWORD_SCHEME:
        return False
    try:
        _password_kdf(base64.b64decode(salt), int(iterations)).verify(
            password.encode("utf-8"), base64.b64decode(digest)
        )
        return True
    except InvalidKey:
        return False


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))
