"""
Passwords, bearer tokens and the auth dependencies.

Tokens are opaque random strings. Only their SHA-256 digest is stored in
the "session" collection, together with the owner and an expiry timestamp.
"""

import hashlib
import hmac
import logging
import os
import secrets
import time
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from database import get_db, serialize
from schemas import StoreSettings
from settings_store import get_store_settings

logger = logging.getLogger(__name__)

HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "120000"))
OTP_TTL_SECONDS = 10 * 60

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), HASH_ITERATIONS)
    return f"pbkdf2_sha256${HASH_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    try:
        _, iterations, salt, expected = (stored or "").split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token(db: Database, user_id: str, ttl_seconds: int) -> str:
    token = secrets.token_urlsafe(32)
    db["session"].insert_one(
        {"token": _digest(token), "user_id": user_id, "expires_at": time.time() + ttl_seconds}
    )
    return token


def revoke_token(db: Database, token: str) -> None:
    db["session"].delete_one({"token": _digest(token)})


def revoke_all_tokens(db: Database, user_id: str) -> None:
    db["session"].delete_many({"user_id": user_id})


def new_otp() -> str:
    return f"{secrets.randbelow(1000000):06d}"


def otp_digest(otp: str) -> str:
    return _digest(otp)


def present_user(user: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(user)
    for private in ("password_hash", "reset_otp_hash", "reset_otp_expires_at"):
        data.pop(private, None)
    data["full_name"] = f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()
    return data


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    session = db["session"].find_one({"token": _digest(credentials.credentials)})
    if not session or session["expires_at"] < time.time():
        raise HTTPException(status_code=401, detail="Not authorized, token invalid or expired")
    user = db["user"].find_one({"_id": ObjectId(session["user_id"])})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Not authorized, account unavailable")
    return user


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    return credentials.credentials if credentials else None


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail=f"User role {user.get('role')} is not authorized to access this route")
    return user


def token_ttl(settings: StoreSettings = Depends(get_store_settings)) -> int:
    return settings.security.session_timeout
