"""
Store settings.

The settings document is loaded once per process into a SettingsStore kept
on `app.state`, and handlers receive the typed StoreSettings through
`get_store_settings`. Writes go through the store so the in-memory copy and
the database stay in step.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Type

from fastapi import Depends, Request
from pydantic import ValidationError
from pymongo.database import Database

from database import get_db, utcnow
from errors import BadRequest
from schemas import (
    EmailSettings,
    GeneralSettings,
    NotificationSettings,
    PaymentSettings,
    SecuritySettings,
    SettingsSection,
    StoreSettings,
    SystemSettings,
)

logger = logging.getLogger(__name__)

SETTINGS_ID = "store"
HIDDEN = "[HIDDEN]"


class Section(str, Enum):
    general = "general"
    payment = "payment"
    email = "email"
    security = "security"
    system = "system"
    notifications = "notifications"


SECTION_MODELS: Dict[Section, Type[SettingsSection]] = {
    Section.general: GeneralSettings,
    Section.payment: PaymentSettings,
    Section.email: EmailSettings,
    Section.security: SecuritySettings,
    Section.system: SystemSettings,
    Section.notifications: NotificationSettings,
}

SECRET_FIELDS = {
    Section.payment: ("phonepe_merchant_key",),
    Section.email: ("email_pass",),
    Section.system: ("cloudinary_api_key", "cloudinary_api_secret"),
}


def strip_hidden(section: Section, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Drop secret fields still carrying the export placeholder."""
    secrets = SECRET_FIELDS.get(section, ())
    return {k: v for k, v in patch.items() if not (k in secrets and v == HIDDEN)}


def _error_text(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


class SettingsStore:
    def __init__(self) -> None:
        self._current: Optional[StoreSettings] = None

    def get(self, db: Database) -> StoreSettings:
        if self._current is None:
            self._current = self._load(db)
        return self._current

    def _load(self, db: Database) -> StoreSettings:
        doc = db["settings"].find_one({"_id": SETTINGS_ID})
        if doc is None:
            settings = StoreSettings()
            self._write(db, settings)
            logger.info("Created default store settings")
            return settings
        doc.pop("_id", None)
        doc.pop("created_at", None)
        doc.pop("updated_at", None)
        return StoreSettings.model_validate(doc)

    def _write(self, db: Database, settings: StoreSettings) -> None:
        now = utcnow()
        db["settings"].update_one(
            {"_id": SETTINGS_ID},
            {"$set": dict(settings.model_dump(), updated_at=now), "$setOnInsert": {"created_at": now}},
            upsert=True,
        )

    def section(self, db: Database, section: Section) -> SettingsSection:
        return getattr(self.get(db), section.value)

    def update_section(
        self, db: Database, section: Section, patch: Dict[str, Any], updated_by: Optional[str] = None
    ) -> SettingsSection:
        """Merge `patch` onto the section and validate against its model."""
        current = self.get(db)
        model = SECTION_MODELS[section]
        merged = dict(getattr(current, section.value).model_dump(), **strip_hidden(section, patch))
        try:
            value = model.model_validate(merged)
        except ValidationError as exc:
            raise BadRequest(f"Invalid {section.value} settings: {_error_text(exc)}")
        updated = current.model_copy(update={section.value: value, "updated_by": updated_by, "last_updated": utcnow()})
        self._write(db, updated)
        self._current = updated
        logger.info("Settings section %s updated by %s", section.value, updated_by)
        return value

    def update_many(
        self, db: Database, patches: Dict[Section, Dict[str, Any]], updated_by: Optional[str] = None
    ) -> StoreSettings:
        # Validate everything before writing anything.
        current = self.get(db)
        changes: Dict[str, Any] = {}
        for section, patch in patches.items():
            merged = dict(getattr(current, section.value).model_dump(), **strip_hidden(section, patch))
            try:
                changes[section.value] = SECTION_MODELS[section].model_validate(merged)
            except ValidationError as exc:
                raise BadRequest(f"Invalid {section.value} settings: {_error_text(exc)}")
        updated = current.model_copy(update=dict(changes, updated_by=updated_by, last_updated=utcnow()))
        self._write(db, updated)
        self._current = updated
        return updated

    def reset(self, db: Database, section: Optional[Section] = None, updated_by: Optional[str] = None) -> StoreSettings:
        current = self.get(db)
        if section is None:
            updated = StoreSettings(updated_by=updated_by, last_updated=utcnow())
        else:
            updated = current.model_copy(
                update={section.value: SECTION_MODELS[section](), "updated_by": updated_by, "last_updated": utcnow()}
            )
        self._write(db, updated)
        self._current = updated
        logger.info("Settings reset (%s) by %s", section.value if section else "all", updated_by)
        return updated

    def import_settings(self, db: Database, data: Dict[str, Any], updated_by: Optional[str] = None) -> StoreSettings:
        """Import the known sections from `data`; hidden secrets keep their current value."""
        patches: Dict[Section, Dict[str, Any]] = {}
        for key, value in data.items():
            if key not in Section.__members__ or not isinstance(value, dict):
                continue
            section = Section(key)
            patches[section] = value
        if not patches:
            raise BadRequest("Invalid import data")
        return self.update_many(db, patches, updated_by)


def export_settings(settings: StoreSettings) -> Dict[str, Any]:
    data = settings.model_dump(mode="json")
    for section, fields in SECRET_FIELDS.items():
        for field in fields:
            data[section.value][field] = HIDDEN
    return data


def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_store_settings(
    store: SettingsStore = Depends(get_settings_store),
    db: Database = Depends(get_db),
) -> StoreSettings:
    return store.get(db)
