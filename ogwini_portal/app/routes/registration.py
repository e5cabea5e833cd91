from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for

from ..errors import PortalError, ValidationError
from ..services import registration_service, storage_service
from ..services.accounts import AccountService
from ..services.auth_service import current_principal, dashboard_url
from ..services.roles import (
    DEPARTMENTS,
    DOCUMENT_LABELS,
    ELECTIVE_SUBJECTS,
    GRADES,
    REQUIRED_ELECTIVES,
    ROLE_LABELS,
    SUBJECTS,
    Document,
    Role,
    electives_required,
    optional_documents,
    required_documents,
)


bp = Blueprint("registration", __name__, url_prefix="/register")

TOKEN_KEY = "registration_token"


def _token() -> str:
    token = session.get(TOKEN_KEY)
    if not token:
        token = registration_service.new_draft_token()
        session[TOKEN_KEY] = token
    return token


def _render(wizard: registration_service.RegistrationWizard, error_field: str | None = None):
    role = wizard.role
    return render_template(
        "register.html",
        page_title="Registration",
        active_page="register",
        wizard=wizard,
        draft=wizard.draft,
        step=wizard.current_step.value,
        steps=[s.value for s in wizard.steps],
        step_number=wizard.step_index + 1,
        error_field=error_field,
        roles=[(r.value, ROLE_LABELS[r]) for r in Role],
        grades=GRADES,
        elective_subjects=ELECTIVE_SUBJECTS,
        required_electives=REQUIRED_ELECTIVES,
        electives_needed=electives_required(wizard.draft.get("grade")),
        subjects=SUBJECTS,
        departments=DEPARTMENTS,
        required_docs=[(d.value, DOCUMENT_LABELS[d]) for d in required_documents(role)] if role else [],
        optional_docs=[(d.value, DOCUMENT_LABELS[d]) for d in optional_documents(role)] if role else [],
        bank={
            "name": current_app.config["BANK_NAME"],
            "account_name": current_app.config["BANK_ACCOUNT_NAME"],
            "account_number": current_app.config["BANK_ACCOUNT_NUMBER"],
            "branch_code": current_app.config["BANK_BRANCH_CODE"],
        },
    )


def _stage_uploads(wizard: registration_service.RegistrationWizard) -> None:
    for doc in Document:
        upload = request.files.get(doc.value)
        if upload is None or not (upload.filename or "").strip():
            continue
        staged = storage_service.stage(upload)
        if staged is None:
            raise ValidationError(doc.value, f"Please choose a valid file for your {DOCUMENT_LABELS[doc]}.")
        try:
            previous = wizard.attach(doc.value, staged)
        except ValidationError:
            storage_service.discard_staged(staged)
            raise
        storage_service.discard_staged(previous)


@bp.get("")
def start():
    principal = current_principal()
    # pending and declined applicants may register again
    if principal is not None and principal.is_approved:
        return redirect(dashboard_url(principal))
    if request.args.get("restart"):
        registration_service.discard_wizard(session.pop(TOKEN_KEY, None))
        return redirect(url_for("registration.start"))
    registration_service.purge_stale_drafts()
    wizard = registration_service.load_wizard(session.get(TOKEN_KEY))
    return _render(wizard)


@bp.post("")
def step_post():
    token = _token()
    wizard = registration_service.load_wizard(token)
    action = (request.form.get("action") or "next").strip()
    error_field = None
    try:
        if action.startswith("detach:"):
            storage_service.discard_staged(wizard.detach(action.partition(":")[2]))
        elif action == "back":
            wizard.set_fields(request.form)
            wizard.back()
        elif action == "submit":
            wizard.set_fields(request.form)
            _stage_uploads(wizard)
            result = registration_service.submit_registration(wizard, AccountService(session))
            current_app.logger.info(
                "registration submitted for account %s (%s%s)",
                result.account_id,
                result.status,
                ", resubmission" if result.resubmitted else "",
            )
            flash(result.message, "success")
        else:
            if wizard.step_index == 0:
                for staged in wizard.select_role(request.form.get("role") or ""):
                    storage_service.discard_staged(staged)
            else:
                wizard.set_fields(request.form)
                _stage_uploads(wizard)
            wizard.advance()
    except ValidationError as e:
        error_field = e.field
        flash(e.message, "error")
    except PortalError as e:
        current_app.logger.warning("registration %s failed: %s", action, e.message)
        flash(e.message, "error")
    finally:
        registration_service.save_wizard(token, wizard)

    if error_field is not None:
        return _render(wizard, error_field=error_field), 400
    return redirect(url_for("registration.start"))
