from __future__ import annotations

import json
import logging

from flask import current_app

from ..errors import NotificationError, RecordStoreError
from . import db_service


logger = logging.getLogger(__name__)


class BaseEmailProvider:
    def send_email(self, to: list[str], subject: str, body: str) -> None:
        raise NotImplementedError


class LogEmailProvider(BaseEmailProvider):
    def send_email(self, to: list[str], subject: str, body: str) -> None:
        logger.info("[EMAIL to %s] %s", ", ".join(to), subject)


def get_provider() -> BaseEmailProvider:
    return current_app.config.get("EMAIL_PROVIDER") or LogEmailProvider()


def _dispatch(recipients: list[str], subject: str, body: str, sender_id: int | None = None) -> int:
    log_id = db_service.insert(
        "email_logs",
        {
            "recipients": json.dumps(recipients),
            "subject": subject,
            "body": body,
            "status": "queued",
            "sender_id": sender_id,
        },
    )
    try:
        get_provider().send_email(to=recipients, subject=subject, body=body)
    except Exception as e:
        db_service.update("email_logs", {"status": "failed", "error": str(e)}, {"id": log_id})
        raise NotificationError(f"Email could not be sent: {e}") from e
    db_service.update("email_logs", {"status": "sent", "sent_at": db_service.now_iso()}, {"id": log_id})
    return log_id


def send_registration_email(payload: dict) -> dict:
    email = (payload.get("email") or "").strip()
    first_name = (payload.get("first_name") or "").strip()
    last_name = (payload.get("last_name") or "").strip()
    if not email or not first_name or not last_name:
        raise NotificationError("Missing required fields")

    school = current_app.config["SCHOOL_NAME"]
    if payload.get("role") == "admin":
        subject = "Ogwini School - Admin Registration Confirmed"
        body = (
            f"Dear {first_name} {last_name},\n\n"
            "Your Administrator account has been automatically approved. "
            "You can now sign in to your Admin Dashboard to manage registrations "
            "and oversee school operations.\n"
        )
    else:
        subject = "Ogwini School - Registration Received"
        body = (
            f"Dear {first_name} {last_name},\n\n"
            f"Thank you for registering at {school}. "
            "Your registration has been received and is pending review by our administration team. "
            "You will be notified within 48 hours.\n"
        )
    body += "\nThis is an automated no-reply message. Please do not reply to this email."
    _dispatch([email], subject, body)
    return {"success": True, "message": "Registration confirmation processed"}


def send_bulk_email(payload: dict) -> dict:
    recipients = [r.strip() for r in (payload.get("recipients") or []) if (r or "").strip()]
    if not recipients:
        raise NotificationError("No recipients provided")
    subject = (payload.get("subject") or "").strip()
    message = (payload.get("body") or "").strip()
    if not subject or not message:
        raise NotificationError("Subject and message are required.")
    sender_name = payload.get("sender_name") or "School Administration"
    body = f"{message}\n\nSent by {sender_name} via the Ogwini School Portal."
    _dispatch(recipients, subject, body, sender_id=payload.get("sender_id"))
    return {
        "success": True,
        "message": f"Email queued for {len(recipients)} recipient(s)",
        "recipient_count": len(recipients),
    }


def send_password_reset(payload: dict) -> dict:
    email = (payload.get("email") or "").strip()
    link = (payload.get("link") or "").strip()
    if not email or not link:
        raise NotificationError("Missing required fields")
    name = (payload.get("first_name") or "").strip() or "there"
    body = (
        f"Hi {name},\n\n"
        "We received a request to reset your Ogwini School Portal password. "
        f"Open the link below to choose a new one:\n\n{link}\n\n"
        "If you did not ask for this, you can ignore this email. Your password stays the same.\n"
    )
    _dispatch([email], "Ogwini School - Reset your password", body)
    return {"success": True, "message": "Password reset email processed"}


FUNCTIONS = {
    "send-registration-email": send_registration_email,
    "send-bulk-email": send_bulk_email,
    "send-password-reset": send_password_reset,
}


def invoke(function_name: str, payload: dict) -> dict:
    fn = FUNCTIONS.get(function_name)
    if fn is None:
        raise NotificationError(f"Unknown function: {function_name}")
    try:
        return fn(payload)
    except RecordStoreError as e:
        raise NotificationError(e.message) from e
