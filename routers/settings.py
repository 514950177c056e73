import logging
import smtplib
from typing import Any, Dict, Literal, Optional

import requests
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo.database import Database

import image_upload
import mailer
from database import get_db
from errors import BadRequest
from responses import ok
from settings_store import (
    Section,
    SettingsStore,
    export_settings,
    get_settings_store,
    get_store_settings,
)
from schemas import StoreSettings
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_admin)])


class ResetRequest(BaseModel):
    section: Optional[Section] = None


class ConnectionTest(BaseModel):
    type: Literal["email", "phonepe", "cloudinary"]


def _admin_email(admin: Dict[str, Any]) -> str:
    return admin.get("email", str(admin["_id"]))


@router.get("")
def get_settings(settings: StoreSettings = Depends(get_store_settings)):
    return ok({"settings": export_settings(settings)})


@router.put("")
def update_settings(
    payload: Dict[Section, Dict[str, Any]],
    admin: Dict[str, Any] = Depends(require_admin),
    store: SettingsStore = Depends(get_settings_store),
    db: Database = Depends(get_db),
):
    if not payload:
        raise BadRequest("No settings to update")
    updated = store.update_many(db, payload, _admin_email(admin))
    return ok({"settings": export_settings(updated)}, "Settings updated successfully")


@router.get("/export")
def export(settings: StoreSettings = Depends(get_store_settings)):
    return ok({"settings": export_settings(settings)})


@router.post("/import")
def import_settings(
    payload: Dict[str, Any],
    admin: Dict[str, Any] = Depends(require_admin),
    store: SettingsStore = Depends(get_settings_store),
    db: Database = Depends(get_db),
):
    data = payload.get("settings", payload)
    if not isinstance(data, dict):
        raise BadRequest("Invalid import data")
    updated = store.import_settings(db, data, _admin_email(admin))
    return ok({"settings": export_settings(updated)}, "Settings imported successfully")


@router.post("/reset")
def reset_settings(
    payload: Optional[ResetRequest] = None,
    admin: Dict[str, Any] = Depends(require_admin),
    store: SettingsStore = Depends(get_settings_store),
    db: Database = Depends(get_db),
):
    section = payload.section if payload else None
    updated = store.reset(db, section, _admin_email(admin))
    target = section.value if section else "All"
    return ok({"settings": export_settings(updated)}, f"{target} settings reset to defaults")


@router.post("/test-connection")
def test_connection(payload: ConnectionTest, settings: StoreSettings = Depends(get_store_settings)):
    if payload.type == "email":
        try:
            mailer.check_connection(settings.email)
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            logger.warning("Email connection test failed: %s", exc)
            raise BadRequest(f"Email connection failed: {exc}")
    elif payload.type == "phonepe":
        if not (settings.payment.phonepe_merchant_id and settings.payment.phonepe_merchant_key):
            raise BadRequest("PhonePe merchant id and key are not configured")
    else:
        try:
            image_upload.check_connection(settings.system)
        except (image_upload.UploadError, requests.RequestException) as exc:
            logger.warning("Cloudinary connection test failed: %s", exc)
            raise BadRequest(f"Cloudinary connection failed: {exc}")
    return ok({"type": payload.type, "connected": True}, f"{payload.type} connection successful")


@router.get("/{section}")
def get_section(section: Section, settings: StoreSettings = Depends(get_store_settings)):
    return ok({"section": section.value, "settings": export_settings(settings)[section.value]})


@router.put("/{section}")
def update_section(
    section: Section,
    payload: Dict[str, Any],
    admin: Dict[str, Any] = Depends(require_admin),
    store: SettingsStore = Depends(get_settings_store),
    db: Database = Depends(get_db),
):
    store.update_section(db, section, payload, _admin_email(admin))
    data = export_settings(store.get(db))[section.value]
    return ok({"section": section.value, "settings": data}, f"{section.value} settings updated successfully")
