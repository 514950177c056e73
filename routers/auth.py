import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

import mailer
import security
from database import create_document, get_db, update_fields, utcnow
from errors import BadRequest
from responses import ok
from schemas import PHONE_PATTERN, StoreSettings, User
from settings_store import get_store_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[Dict[str, Any]] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class OtpRequest(BaseModel):
    email: EmailStr


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=r"^[0-9]{6}$")


class OtpResetRequest(OtpVerifyRequest):
    new_password: str = Field(..., min_length=6)


def save_profile(db: Database, user: Dict[str, Any], payload: ProfileUpdate) -> Dict[str, Any]:
    changes = update_fields(payload, nullable=("phone",))
    if changes:
        changes["updated_at"] = utcnow()
        db["user"].update_one({"_id": user["_id"]}, {"$set": changes})
    return db["user"].find_one({"_id": user["_id"]})


def _find_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"email": email.lower()})


def _check_otp(user: Optional[Dict[str, Any]], otp: str) -> None:
    if (
        not user
        or not user.get("reset_otp_hash")
        or user.get("reset_otp_expires_at", 0) < time.time()
        or user["reset_otp_hash"] != security.otp_digest(otp)
    ):
        raise BadRequest("Invalid or expired OTP")


@router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    db: Database = Depends(get_db),
    ttl: int = Depends(security.token_ttl),
):
    email = payload.email.lower()
    if _find_by_email(db, email):
        raise BadRequest("User already exists with this email")
    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=email,
        password_hash=security.hash_password(payload.password),
        phone=payload.phone,
    )
    user_id = create_document(db, "user", user)
    token = security.issue_token(db, user_id, ttl)
    logger.info("Registered user %s", user_id)
    doc = _find_by_email(db, email)
    return ok({"user": security.present_user(doc), "token": token}, "User registered successfully")


@router.post("/login")
def login(
    payload: LoginRequest,
    db: Database = Depends(get_db),
    ttl: int = Depends(security.token_ttl),
):
    user = _find_by_email(db, payload.email)
    if not user or not security.verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    token = security.issue_token(db, str(user["_id"]), ttl)
    return ok({"user": security.present_user(user), "token": token}, "Login successful")


@router.get("/me")
def me(user: Dict[str, Any] = Depends(security.get_current_user)):
    return ok({"user": security.present_user(user)})


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    user: Dict[str, Any] = Depends(security.get_current_user),
    db: Database = Depends(get_db),
):
    updated = save_profile(db, user, payload)
    return ok({"user": security.present_user(updated)}, "Profile updated successfully")


@router.put("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: Dict[str, Any] = Depends(security.get_current_user),
    db: Database = Depends(get_db),
):
    if not security.verify_password(payload.current_password, user.get("password_hash")):
        raise BadRequest("Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": security.hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    logger.info("User %s changed password", user["_id"])
    return ok(message="Password changed successfully")


@router.post("/logout")
def logout(
    user: Dict[str, Any] = Depends(security.get_current_user),
    token: Optional[str] = Depends(security.get_token),
    db: Database = Depends(get_db),
):
    if token:
        security.revoke_token(db, token)
    return ok(message="Logged out successfully")


@router.post("/request-reset-otp")
def request_reset_otp(
    payload: OtpRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: StoreSettings = Depends(get_store_settings),
):
    user = _find_by_email(db, payload.email)
    if user:
        otp = security.new_otp()
        db["user"].update_one(
            {"_id": user["_id"]},
            {"$set": {
                "reset_otp_hash": security.otp_digest(otp),
                "reset_otp_expires_at": time.time() + security.OTP_TTL_SECONDS,
            }},
        )
        background_tasks.add_task(mailer.send_reset_otp, settings, user["email"], otp, user.get("first_name", ""))
    else:
        logger.info("Password reset requested for unknown email")
    return ok(message="If an account exists for this email, a reset code has been sent")


@router.post("/verify-reset-otp")
def verify_reset_otp(payload: OtpVerifyRequest, db: Database = Depends(get_db)):
    _check_otp(_find_by_email(db, payload.email), payload.otp)
    return ok(message="OTP verified")


@router.post("/reset-password-otp")
def reset_password_otp(payload: OtpResetRequest, db: Database = Depends(get_db)):
    user = _find_by_email(db, payload.email)
    _check_otp(user, payload.otp)
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": security.hash_password(payload.new_password), "updated_at": utcnow()},
            "$unset": {"reset_otp_hash": "", "reset_otp_expires_at": ""},
        },
    )
    security.revoke_all_tokens(db, str(user["_id"]))
    logger.info("User %s reset password with OTP", user["_id"])
    return ok(message="Password reset successfully")
