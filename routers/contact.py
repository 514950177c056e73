import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, EmailStr, Field

import mailer
from responses import ok
from schemas import StoreSettings
from settings_store import get_store_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contact", tags=["contact"])


class ContactMessage(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=10, max_length=2000)


@router.post("")
def contact(
    payload: ContactMessage,
    background_tasks: BackgroundTasks,
    settings: StoreSettings = Depends(get_store_settings),
):
    background_tasks.add_task(
        mailer.send_contact_message, settings, payload.name, payload.email, payload.subject, payload.message
    )
    logger.info("Contact message from %s: %s", payload.email, payload.subject)
    return ok(message="Thank you for your message. We will get back to you soon.")
