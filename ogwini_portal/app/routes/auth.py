from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from ..errors import AccountError, NotificationError, PortalError
from ..services import db_service
from ..services.accounts import AccountService, request_password_reset, reset_password
from ..services.auth_service import current_principal, get_safe_next_url, inject_principal, login_required
from ..services.validators import is_valid_email, is_valid_phone, is_valid_school_email, normalize_phone


bp = Blueprint("auth", __name__)

bp.app_context_processor(inject_principal)

PROFILE_FIELDS = ("phone", "address", "parent_phone", "parent_email")


@bp.get("/login")
def login():
    if current_principal() is not None:
        return redirect(get_safe_next_url())
    return render_template("login.html", page_title="Sign In", active_page="login", error=None)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip()
    password = request.form.get("password") or ""
    if not email or not password:
        return render_template(
            "login.html", page_title="Sign In", active_page="login", error="Please enter email and password."
        )
    try:
        account_id = AccountService(session).sign_in(email, password)
    except AccountError as e:
        current_app.logger.info("failed sign-in for %s", email)
        return render_template("login.html", page_title="Sign In", active_page="login", error=e.message, email=email)

    g.pop("principal", None)
    current_app.logger.info("account %s signed in", account_id)
    return redirect(get_safe_next_url())


@bp.get("/logout")
def logout():
    AccountService(session).sign_out()
    g.pop("principal", None)
    flash("You have been signed out.", "success")
    return redirect(url_for("public.home"))


@bp.get("/forgot-password")
def forgot_password():
    return render_template("forgot_password.html", page_title="Forgot Password", error=None, sent=False)


@bp.post("/forgot-password")
def forgot_password_post():
    email = (request.form.get("email") or "").strip()
    if not is_valid_school_email(email):
        return render_template(
            "forgot_password.html",
            page_title="Forgot Password",
            error="Email must end with @gmail.com",
            sent=False,
            email=email,
        )
    try:
        request_password_reset(email, url_for("auth.reset_password_form", _external=True))
    except NotificationError as e:
        current_app.logger.warning("password reset email failed: %s", e.message)
        return render_template(
            "forgot_password.html",
            page_title="Forgot Password",
            error="We could not send the reset email. Please try again later.",
            sent=False,
            email=email,
        )
    # same answer for known and unknown addresses
    return render_template("forgot_password.html", page_title="Forgot Password", error=None, sent=True, email=email)


@bp.get("/reset-password")
def reset_password_form():
    token = (request.args.get("token") or "").strip()
    return render_template("reset_password.html", page_title="Reset Password", token=token, error=None)


@bp.post("/reset-password")
def reset_password_post():
    token = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    confirm = request.form.get("confirm_password") or ""
    if password != confirm:
        return render_template(
            "reset_password.html", page_title="Reset Password", token=token, error="Passwords do not match."
        )
    try:
        reset_password(token, password)
    except AccountError as e:
        return render_template("reset_password.html", page_title="Reset Password", token=token, error=e.message)
    flash("Your password has been successfully reset. Please sign in.", "success")
    return redirect(url_for("auth.login"))


@bp.get("/profile")
@login_required
def profile():
    principal = current_principal()
    profile_row = db_service.fetch_one("profiles", {"user_id": principal.account_id})
    registration = db_service.fetch_one("registrations", {"user_id": principal.account_id})
    return render_template(
        "profile.html",
        page_title="My Profile",
        active_page="profile",
        profile=profile_row,
        registration=registration,
    )


@bp.post("/profile")
@login_required
def profile_post():
    principal = current_principal()
    values = {k: (request.form.get(k) or "").strip() for k in PROFILE_FIELDS}
    if values["phone"] and not is_valid_phone(values["phone"]):
        flash("Please enter a valid South African phone number.", "error")
        return redirect(url_for("auth.profile"))
    if values["parent_phone"] and not is_valid_phone(values["parent_phone"]):
        flash("Please enter a valid parent/guardian phone number.", "error")
        return redirect(url_for("auth.profile"))
    if values["parent_email"] and not is_valid_email(values["parent_email"]):
        flash("Please enter a valid parent/guardian email.", "error")
        return redirect(url_for("auth.profile"))
    values["phone"] = normalize_phone(values["phone"]) or None
    values["parent_phone"] = normalize_phone(values["parent_phone"]) or None
    try:
        db_service.update("profiles", values, {"user_id": principal.account_id})
    except PortalError as e:
        flash(e.message, "error")
    else:
        flash("Your information has been saved successfully.", "success")
    return redirect(url_for("auth.profile"))


@bp.post("/profile/password")
@login_required
def change_password():
    principal = current_principal()
    password = request.form.get("password") or ""
    if password != (request.form.get("confirm_password") or ""):
        flash("Passwords do not match.", "error")
        return redirect(url_for("auth.profile"))
    try:
        AccountService(session).update_password(principal.account_id, password)
    except AccountError as e:
        flash(e.message, "error")
    else:
        flash("Password updated successfully.", "success")
    return redirect(url_for("auth.profile"))
