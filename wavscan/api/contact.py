from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from wavscan.core.config import settings
from wavscan.core.errors import MailDeliveryError
from wavscan.core.logging import log_event
from wavscan.features.mail.service import MailError, Mailer, get_mailer, send_contact_message

router = APIRouter(prefix="/api/contact", tags=["contact"])


class ContactIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    subject: Optional[str] = Field(default=None, max_length=200)
    message: str = Field(min_length=1, max_length=5000)


@router.post("")
def contact(data: ContactIn, mailer: Mailer = Depends(get_mailer)):
    try:
        send_contact_message(mailer, settings.CONTACT_RECIPIENT, data.name, data.email, data.subject, data.message)
    except MailError as e:
        log_event("warning", "contact.mail_failed", event_type="contact", error_code=e.kind.value)
        raise MailDeliveryError(f"Message could not be delivered ({e.kind.value})") from e
    return {"ok": True, "message": "Message sent"}
