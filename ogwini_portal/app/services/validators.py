from __future__ import annotations

import re
from datetime import datetime


_ID_RE = re.compile(r"[0-9]{13}")
_PHONE_RE = re.compile(r"(?:0|\+27)[0-9]{9}")
_SCHOOL_EMAIL_RE = re.compile(r"[^\s@]+@gmail\.com", re.IGNORECASE)
_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

MIN_PASSWORD_LENGTH = 8


def normalize_phone(value: str | None) -> str:
    return re.sub(r"\s+", "", value or "")


def is_valid_id_number(value: str | None) -> bool:
    return bool(_ID_RE.fullmatch(value or ""))


def is_valid_phone(value: str | None) -> bool:
    return bool(_PHONE_RE.fullmatch(normalize_phone(value)))


def is_valid_school_email(value: str | None) -> bool:
    """Registration and login are restricted to Gmail addresses."""
    return bool(_SCHOOL_EMAIL_RE.fullmatch((value or "").strip()))


def is_valid_email(value: str | None) -> bool:
    return bool(_EMAIL_RE.fullmatch((value or "").strip()))


def is_valid_date(value: str | None) -> bool:
    try:
        datetime.strptime((value or "").strip(), "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _is_symbol(ch: str) -> bool:
    return not ch.isalnum() and not ch.isspace()


def password_problem(value: str | None) -> str | None:
    pw = value or ""
    if len(pw) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if not any(ch.isdigit() for ch in pw):
        return "Password must contain at least one number."
    if not any(_is_symbol(ch) for ch in pw):
        return "Password must contain at least one symbol (e.g. ! @ # $)."
    return None


def is_strong_password(value: str | None) -> bool:
    return password_problem(value) is None
