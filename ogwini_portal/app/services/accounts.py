"""Account and session service.

Implements the account contract the rest of the portal relies on:
``create_account`` (or ``AccountExistsError``), ``sign_in``/``sign_out``
against a session mapping, ``update_password`` and the password-reset
pair. Creating an account also provisions the profile, the persisted
registration row (``pending``, or ``approved`` for self-approving roles)
and, for self-approving roles, the role assignment.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import AccountError, AccountExistsError, InvalidCredentialsError
from . import db_service, notify_service
from .roles import Role, initial_status, is_self_approving
from .validators import password_problem


logger = logging.getLogger(__name__)

SESSION_KEY = "account_id"
_RESET_SALT = "password-reset"


def _norm_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AccountService:
    def __init__(self, session: MutableMapping):
        self.session = session

    def current_account_id(self) -> int | None:
        aid = self.session.get(SESSION_KEY)
        if aid is None:
            return None
        try:
            return int(aid)
        except (TypeError, ValueError):
            return None

    def create_account(self, email: str, password: str, metadata: dict) -> int:
        email = _norm_email(email)
        if not email or not password:
            raise AccountError("Email and password are required.")
        role = Role.parse(metadata.get("role"))
        if role is None:
            raise AccountError("A valid role is required.")

        db = db_service.get_db()
        if db_service.fetch_one("accounts", {"email": email}, db=db) is not None:
            raise AccountExistsError(email)

        first_name = (metadata.get("first_name") or "").strip()
        last_name = (metadata.get("last_name") or "").strip()
        phone = (metadata.get("phone") or "").strip() or None
        try:
            account_id = db_service.insert(
                "accounts",
                {
                    "email": email,
                    "password_hash": generate_password_hash(password),
                    "first_name": first_name,
                    "last_name": last_name,
                    "requested_role": role.value,
                    "phone": phone,
                },
                db=db,
                commit=False,
            )
            db_service.insert(
                "profiles",
                {
                    "user_id": account_id,
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": email,
                    "phone": phone,
                },
                db=db,
                commit=False,
            )
            db_service.insert(
                "registrations",
                {
                    "user_id": account_id,
                    "role": role.value,
                    "status": initial_status(role),
                    "first_name": first_name,
                    "last_name": last_name,
                    "email": email,
                    "phone": phone,
                },
                db=db,
                commit=False,
            )
            if is_self_approving(role):
                db_service.insert("user_roles", {"user_id": account_id, "role": role.value}, db=db, commit=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("account %s created for role %s", account_id, role.value)
        return account_id

    def sign_in(self, email: str, password: str) -> int:
        account = db_service.fetch_one("accounts", {"email": _norm_email(email)})
        if not account or not check_password_hash(account["password_hash"], password or ""):
            raise InvalidCredentialsError()
        self.session[SESSION_KEY] = int(account["id"])
        return int(account["id"])

    def sign_out(self) -> None:
        self.session.pop(SESSION_KEY, None)

    def update_password(self, account_id: int, new_password: str) -> None:
        problem = password_problem(new_password)
        if problem:
            raise AccountError(problem)
        changed = db_service.update(
            "accounts",
            {"password_hash": generate_password_hash(new_password)},
            {"id": int(account_id)},
        )
        if not changed:
            raise AccountError("Account not found.")


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_RESET_SALT)


def request_password_reset(email: str, redirect_to: str) -> str | None:
    """E-mail a reset link to ``email``; unknown addresses get ``None`` and no error.

    Raises ``NotificationError`` when the message cannot be sent.
    """
    account = db_service.fetch_one("accounts", {"email": _norm_email(email)})
    if account is None:
        logger.info("password reset requested for unknown email")
        return None
    # binding the current hash makes the token single-use
    token = _serializer().dumps({"uid": int(account["id"]), "ph": account["password_hash"][-12:]})
    notify_service.invoke(
        "send-password-reset",
        {"email": account["email"], "first_name": account["first_name"], "link": f"{redirect_to}?token={token}"},
    )
    logger.info("password reset link sent for account %s", account["id"])
    return token


def reset_password(token: str, new_password: str) -> int:
    try:
        data = _serializer().loads(token or "", max_age=current_app.config["RESET_TOKEN_MAX_AGE"])
    except SignatureExpired as e:
        raise AccountError("This reset link has expired. Please request a new one.") from e
    except BadSignature as e:
        raise AccountError("This reset link is invalid.") from e
    account = db_service.fetch_one("accounts", {"id": int(data.get("uid", 0))})
    if not account or account["password_hash"][-12:] != data.get("ph"):
        raise AccountError("This reset link has already been used.")
    AccountService({}).update_password(int(account["id"]), new_password)
    return int(account["id"])
