from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import wraps

from flask import g, redirect, request, session, url_for

from . import db_service
from .accounts import SESSION_KEY
from .roles import DASHBOARD_ENDPOINTS, ROLE_LABELS, Role


class AccessDecision(str, Enum):
    LOGIN = "login"
    PENDING = "pending"
    REDIRECT_OWN = "redirect-own"
    ALLOW = "allow"


@dataclass(frozen=True)
class Principal:
    account_id: int
    status: str
    # only set once the registration is approved
    role: Role | None = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    requested_role: Role | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == "approved" and self.role is not None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @property
    def role_label(self) -> str:
        return ROLE_LABELS[self.role] if self.role else "Pending"


def get_current_account_id() -> int | None:
    aid = session.get(SESSION_KEY)
    if aid is None:
        return None
    try:
        return int(aid)
    except Exception:
        return None


def load_principal(account_id: int | None) -> Principal | None:
    if account_id is None:
        return None
    account = db_service.fetch_one("accounts", {"id": account_id})
    if account is None:
        return None
    reg = db_service.fetch_one("registrations", {"user_id": account_id})
    assignment = db_service.fetch_one("user_roles", {"user_id": account_id})
    status = reg["status"] if reg else "pending"
    role = Role.parse(assignment["role"]) if assignment and status == "approved" else None
    return Principal(
        account_id=account_id,
        status=status,
        role=role,
        first_name=account["first_name"],
        last_name=account["last_name"],
        email=account["email"],
        requested_role=Role.parse(account["requested_role"]),
    )


def current_principal() -> Principal | None:
    """The signed-in principal, resolved once per request."""
    if "principal" not in g:
        principal = load_principal(get_current_account_id())
        if principal is None:
            session.pop(SESSION_KEY, None)
        g.principal = principal
    return g.principal


def check_access(principal: Principal | None, allowed_roles) -> AccessDecision:
    if principal is None:
        return AccessDecision.LOGIN
    if not principal.is_approved:
        return AccessDecision.PENDING
    if principal.role not in set(allowed_roles):
        return AccessDecision.REDIRECT_OWN
    return AccessDecision.ALLOW


def dashboard_url(principal: Principal | None) -> str:
    if principal is None:
        return url_for("auth.login")
    if not principal.is_approved:
        return url_for("dashboards.pending")
    return url_for(DASHBOARD_ENDPOINTS[principal.role])


def get_safe_next_url(default: str | None = None) -> str:
    next_url = (request.args.get("next") or request.form.get("next") or "").strip()
    if next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return default or dashboard_url(current_principal())


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_principal() is None:
            return redirect(url_for("auth.login", next=request.path))
        return fn(*args, **kwargs)

    return wrapper


def role_required(*allowed_roles: Role):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            principal = current_principal()
            decision = check_access(principal, allowed_roles)
            if decision is AccessDecision.LOGIN:
                return redirect(url_for("auth.login", next=request.path))
            if decision is AccessDecision.PENDING:
                return redirect(url_for("dashboards.pending"))
            if decision is AccessDecision.REDIRECT_OWN:
                return redirect(dashboard_url(principal))
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def inject_principal() -> dict:
    principal = current_principal()
    return {
        "principal": principal,
        "dashboard_link": dashboard_url(principal) if principal else None,
    }
