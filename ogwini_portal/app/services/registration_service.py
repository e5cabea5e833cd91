"""Registration wizard: draft state, step guards and the submission flow.

The wizard walks a role-dependent list of steps (see ``roles.SHAPE_STEPS``).
Each forward move runs the guard for the step being left; a failing guard
raises ``ValidationError`` and the cursor does not move. The last step
before ``complete`` is left only through ``submit_registration``, which
uploads the staged documents, creates the account (or reclaims an
existing one with the same credentials) and persists the registration.

Drafts live server-side in ``registration_drafts`` keyed by a random
token held in the visitor's session, so passwords never reach the cookie.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..errors import (
    AccountExistsError,
    InvalidCredentialsError,
    NotificationError,
    PortalError,
    StorageError,
    SubmissionError,
    ValidationError,
    WizardStateError,
)
from . import db_service, notify_service, storage_service
from .accounts import AccountService
from .roles import (
    DOCUMENT_LABELS,
    DOCUMENT_STORAGE,
    ELECTIVE_SUBJECTS,
    GRADES,
    REQUIRED_ELECTIVES,
    Document,
    Role,
    Step,
    electives_required,
    initial_status,
    is_self_approving,
    needs_parent_info,
    needs_professional_info,
    optional_documents,
    required_documents,
    steps_for,
)
from .validators import (
    is_valid_date,
    is_valid_email,
    is_valid_id_number,
    is_valid_phone,
    is_valid_school_email,
    normalize_phone,
    password_problem,
)


logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "role",
    "first_name",
    "last_name",
    "id_number",
    "date_of_birth",
    "disability",
    "password",
    "confirm_password",
    "grade",
    "class_name",
    "previous_school",
    "email",
    "phone",
    "address",
    "next_of_kin_name",
    "next_of_kin_phone",
    "parent_name",
    "parent_phone",
    "parent_email",
    "department",
    "grade_taught",
)
LIST_FIELDS = ("electives", "subjects")
SECRET_FIELDS = frozenset({"password", "confirm_password"})

# cleared whenever the selected role changes
ROLE_SPECIFIC_FIELDS = (
    "grade",
    "class_name",
    "electives",
    "previous_school",
    "parent_name",
    "parent_phone",
    "parent_email",
    "department",
    "grade_taught",
    "subjects",
)

FIELD_LABELS = {
    "first_name": "First name",
    "last_name": "Last name",
    "id_number": "ID number",
    "password": "Password",
    "confirm_password": "Password confirmation",
    "address": "Home address",
    "next_of_kin_name": "Next of kin name",
    "next_of_kin_phone": "Next of kin phone number",
    "parent_name": "Parent/guardian name",
    "parent_phone": "Parent/guardian phone number",
}

ADMIN_CONFIRMATION = (
    "Your administrator account is active. You can sign in to your dashboard immediately."
)
REVIEW_CONFIRMATION = (
    "Your registration has been received and is pending review. "
    "You will hear from us within 48 hours."
)
DUPLICATE_EMAIL_MESSAGE = (
    "This email is already registered. Use the correct password or sign in instead."
)

DRAFT_MAX_AGE = timedelta(hours=24)


def empty_draft() -> dict:
    draft: dict = {name: "" for name in TEXT_FIELDS}
    draft.update({name: [] for name in LIST_FIELDS})
    return draft


def _missing(draft: dict, names) -> list[ValidationError]:
    return [
        ValidationError(name, f"{FIELD_LABELS.get(name, name)} is required.")
        for name in names
        if not (draft.get(name) or "").strip()
    ]


def _check_role(wizard: "RegistrationWizard") -> list[ValidationError]:
    if wizard.role is None:
        return [ValidationError("role", "Please select your role.")]
    return []


def _check_personal(wizard: "RegistrationWizard") -> list[ValidationError]:
    d = wizard.draft
    errors = _missing(d, ("first_name", "last_name", "id_number", "password", "confirm_password"))
    if d.get("id_number") and not is_valid_id_number(d["id_number"]):
        errors.append(ValidationError("id_number", "Please enter a valid 13-digit South African ID number."))
    if d.get("date_of_birth") and not is_valid_date(d["date_of_birth"]):
        errors.append(ValidationError("date_of_birth", "Please enter a valid date of birth."))
    if d.get("password") and d.get("confirm_password"):
        if d["password"] != d["confirm_password"]:
            errors.append(ValidationError("confirm_password", "Passwords do not match."))
        problem = password_problem(d["password"])
        if problem:
            errors.append(ValidationError("password", problem))

    if wizard.role is Role.LEARNER:
        grade = d.get("grade") or ""
        if grade not in GRADES:
            errors.append(ValidationError("grade", "Please select your grade."))
        if not (d.get("class_name") or "").strip():
            errors.append(ValidationError("class_name", "Please select your class."))
        if electives_required(grade):
            chosen = d.get("electives") or []
            if len(set(chosen)) != REQUIRED_ELECTIVES or len(chosen) != REQUIRED_ELECTIVES:
                errors.append(
                    ValidationError(
                        "electives",
                        f"Please choose exactly {REQUIRED_ELECTIVES} elective subjects for {grade}.",
                    )
                )
            elif any(s not in ELECTIVE_SUBJECTS for s in chosen):
                errors.append(ValidationError("electives", "Please choose electives from the list."))
    return errors


def _check_contact(wizard: "RegistrationWizard") -> list[ValidationError]:
    d = wizard.draft
    errors = []
    if not is_valid_school_email(d.get("email")):
        errors.append(ValidationError("email", "Please use a valid Gmail address (e.g. name@gmail.com)."))
    if not is_valid_phone(d.get("phone")):
        errors.append(ValidationError("phone", "Please enter a valid South African phone number."))
    errors.extend(_missing(d, ("address", "next_of_kin_name")))
    if not is_valid_phone(d.get("next_of_kin_phone")):
        errors.append(ValidationError("next_of_kin_phone", "Please enter a valid next of kin phone number."))
    return errors


def _check_parent(wizard: "RegistrationWizard") -> list[ValidationError]:
    d = wizard.draft
    errors = _missing(d, ("parent_name", "parent_phone"))
    if d.get("parent_phone") and not is_valid_phone(d["parent_phone"]):
        errors.append(ValidationError("parent_phone", "Please enter a valid parent/guardian phone number."))
    if d.get("parent_email") and not is_valid_email(d["parent_email"]):
        errors.append(ValidationError("parent_email", "Please enter a valid parent/guardian email."))
    return errors


def _check_documents(wizard: "RegistrationWizard") -> list[ValidationError]:
    if wizard.role is None:
        return _check_role(wizard)
    return [
        ValidationError(doc.value, f"Please upload your {DOCUMENT_LABELS[doc]}.")
        for doc in required_documents(wizard.role)
        if doc.value not in wizard.attachments
    ]


def _no_checks(wizard: "RegistrationWizard") -> list[ValidationError]:
    return []


STEP_GUARDS = {
    Step.ROLE: _check_role,
    Step.PERSONAL: _check_personal,
    Step.CONTACT: _check_contact,
    Step.PARENT: _check_parent,
    Step.PROFESSIONAL: _no_checks,
    Step.DOCUMENTS: _check_documents,
    Step.PAYMENT: _no_checks,
    Step.COMPLETE: _no_checks,
}


@dataclass
class RegistrationWizard:
    draft: dict = field(default_factory=empty_draft)
    # document slot -> staged file info from storage_service.stage()
    attachments: dict = field(default_factory=dict)
    step_index: int = 0
    confirmation: str | None = None

    @property
    def role(self) -> Role | None:
        return Role.parse(self.draft.get("role"))

    @property
    def steps(self) -> tuple[Step, ...]:
        role = self.role
        return steps_for(role) if role else (Step.ROLE,)

    @property
    def current_step(self) -> Step:
        return self.steps[self.step_index]

    @property
    def is_complete(self) -> bool:
        return self.current_step is Step.COMPLETE

    @property
    def is_submit_step(self) -> bool:
        return self.role is not None and self.step_index == len(self.steps) - 2

    def select_role(self, value: str) -> list[dict]:
        """Choose the role at step 0; returns staged files that no longer apply."""
        if self.step_index != 0:
            raise WizardStateError("The role can only be changed on the first step.")
        role = Role.parse(value)
        if role is None:
            raise ValidationError("role", "Please select your role.")
        if role is self.role:
            return []
        for name in ROLE_SPECIFIC_FIELDS:
            self.draft[name] = [] if name in LIST_FIELDS else ""
        self.draft["role"] = role.value
        keep = {d.value for d in required_documents(role) + optional_documents(role)}
        dropped = [self.attachments.pop(slot) for slot in list(self.attachments) if slot not in keep]
        return dropped

    def set_fields(self, data) -> None:
        if self.is_complete:
            raise WizardStateError("This registration has already been submitted.")
        for name in TEXT_FIELDS:
            if name == "role" or name not in data:
                continue
            value = data.get(name) or ""
            self.draft[name] = value if name in SECRET_FIELDS else value.strip()
        for name in LIST_FIELDS:
            if name not in data:
                continue
            values = data.getlist(name) if hasattr(data, "getlist") else data.get(name) or []
            self.draft[name] = [v.strip() for v in values if (v or "").strip()]

    def attach(self, slot: str, staged: dict) -> dict | None:
        """Attach a staged file; returns the one it replaces, if any."""
        doc = _document(slot)
        if self.role is None or doc not in required_documents(self.role) + optional_documents(self.role):
            raise ValidationError(slot, f"{DOCUMENT_LABELS[doc]} is not needed for this role.")
        previous = self.attachments.get(doc.value)
        self.attachments[doc.value] = staged
        return previous

    def detach(self, slot: str) -> dict | None:
        return self.attachments.pop(_document(slot).value, None)

    def validate_step(self, step: Step | None = None) -> list[ValidationError]:
        return STEP_GUARDS[step or self.current_step](self)

    def advance(self) -> Step:
        if self.is_complete:
            raise WizardStateError("This registration has already been submitted.")
        errors = self.validate_step()
        if errors:
            raise errors[0]
        if self.is_submit_step:
            raise WizardStateError("Please submit your registration to finish.")
        self.step_index += 1
        return self.current_step

    def back(self) -> Step:
        if self.is_complete:
            raise WizardStateError("This registration has already been submitted.")
        if self.step_index == 0:
            raise WizardStateError("You are already on the first step.")
        self.step_index -= 1
        return self.current_step

    def to_dict(self) -> dict:
        return {
            "draft": self.draft,
            "attachments": self.attachments,
            "step_index": self.step_index,
            "confirmation": self.confirmation,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RegistrationWizard":
        data = data or {}
        draft = empty_draft()
        draft.update({k: v for k, v in (data.get("draft") or {}).items() if k in draft})
        wizard = cls(
            draft=draft,
            attachments=dict(data.get("attachments") or {}),
            confirmation=data.get("confirmation"),
        )
        # the step list is derived from the role; clamp a stale cursor to it
        wizard.step_index = max(0, min(int(data.get("step_index") or 0), len(wizard.steps) - 1))
        return wizard


def _document(slot: str) -> Document:
    try:
        return Document(slot)
    except ValueError:
        raise ValidationError(slot, "Unknown document.") from None


# ---------------------------------------------------------------------------
# draft persistence


def new_draft_token() -> str:
    return secrets.token_urlsafe(24)


def load_wizard(token: str | None) -> RegistrationWizard:
    if not token:
        return RegistrationWizard()
    row = db_service.fetch_one("registration_drafts", {"token": token})
    if row is None:
        return RegistrationWizard()
    return RegistrationWizard.from_dict(json.loads(row["data"]))


def save_wizard(token: str, wizard: RegistrationWizard) -> None:
    db_service.upsert("registration_drafts", {"token": token, "data": json.dumps(wizard.to_dict())}, conflict="token")


def discard_wizard(token: str | None) -> None:
    if not token:
        return
    wizard = load_wizard(token)
    for staged in wizard.attachments.values():
        storage_service.discard_staged(staged)
    db_service.delete("registration_drafts", {"token": token})


def purge_stale_drafts(now: datetime | None = None) -> int:
    """Drop drafts abandoned for longer than a day, staged files included."""
    current = now or datetime.now(timezone.utc).replace(tzinfo=None)
    cutoff = (current - DRAFT_MAX_AGE).isoformat(timespec="seconds")
    stale = [r for r in db_service.fetch_all("registration_drafts") if (r["updated_at"] or "") < cutoff]
    for row in stale:
        discard_wizard(row["token"])
    return len(stale)


# ---------------------------------------------------------------------------
# submission


@dataclass
class SubmissionResult:
    account_id: int
    status: str
    resubmitted: bool
    message: str


def _registration_values(draft: dict, role: Role, urls: dict) -> dict:
    learner = needs_parent_info(role)
    teaching = needs_professional_info(role)
    grade = draft.get("grade") if learner else None
    values = {
        "role": role.value,
        "first_name": draft["first_name"],
        "last_name": draft["last_name"],
        "email": draft["email"].strip().lower(),
        "id_number": draft["id_number"],
        "date_of_birth": draft.get("date_of_birth") or None,
        "disability": draft.get("disability") or None,
        "phone": normalize_phone(draft["phone"]),
        "address": draft["address"],
        "next_of_kin_name": draft["next_of_kin_name"],
        "next_of_kin_phone": normalize_phone(draft["next_of_kin_phone"]),
        "grade": grade,
        "class": draft.get("class_name") if learner else None,
        "elective_subjects": json.dumps(draft["electives"]) if learner and electives_required(grade) else None,
        "previous_school": (draft.get("previous_school") or None) if learner else None,
        "parent_name": draft.get("parent_name") if learner else None,
        "parent_phone": normalize_phone(draft.get("parent_phone")) if learner else None,
        "parent_email": (draft.get("parent_email") or None) if learner else None,
        "department": (draft.get("department") or None) if teaching else None,
        "grade_taught": (draft.get("grade_taught") or None) if teaching else None,
        "subjects": json.dumps(draft["subjects"]) if teaching and draft.get("subjects") else None,
    }
    # document columns not attached this time are cleared
    values.update({column: None for _, column in DOCUMENT_STORAGE.values()})
    values.update(urls)
    return values


def _profile_values(values: dict) -> dict:
    keys = (
        "first_name",
        "last_name",
        "phone",
        "id_number",
        "grade",
        "class",
        "address",
        "department",
        "elective_subjects",
        "parent_name",
        "parent_phone",
        "parent_email",
    )
    return {k: values.get(k) for k in keys}


def _upload_documents(wizard: RegistrationWizard, uploaded: list[tuple[str, str]]) -> dict:
    folder = wizard.draft["id_number"]
    urls = {}
    for slot, staged in wizard.attachments.items():
        doc = Document(slot)
        bucket, column = DOCUMENT_STORAGE[doc]
        name = storage_service.object_name(doc.value.replace("_", "-"), staged.get("filename") or "")
        try:
            stored = storage_service.upload(bucket, f"{folder}/{name}", Path(staged["staged_path"]))
        except StorageError as e:
            raise SubmissionError(f"Failed to upload your {DOCUMENT_LABELS[doc]}. {e.message}") from e
        uploaded.append((bucket, stored))
        urls[column] = storage_service.get_public_url(bucket, stored)
    return urls


def _sync_role_assignment(account_id: int, role: Role) -> None:
    if is_self_approving(role):
        db_service.upsert(
            "user_roles", {"user_id": account_id, "role": role.value}, conflict="user_id", commit=False
        )
    else:
        db_service.delete("user_roles", {"user_id": account_id}, commit=False)


def _resubmit(accounts: AccountService, wizard: RegistrationWizard, role: Role, urls: dict) -> int:
    """Sign in to the existing account, overwrite its registration, sign out again."""
    draft = wizard.draft
    try:
        account_id = accounts.sign_in(draft["email"], draft["password"])
    except InvalidCredentialsError as e:
        raise SubmissionError(DUPLICATE_EMAIL_MESSAGE) from e
    try:
        existing = db_service.fetch_one("registrations", {"user_id": account_id})
        if existing is not None and existing["status"] == "approved":
            raise SubmissionError("This account has already been approved. Please sign in instead.")
        values = _registration_values(draft, role, urls)
        values["status"] = initial_status(role)
        if existing is None:
            db_service.insert("registrations", {**values, "user_id": account_id}, commit=False)
        else:
            db_service.update("registrations", values, {"user_id": account_id}, commit=False)
        db_service.update("profiles", _profile_values(values), {"user_id": account_id}, commit=False)
        db_service.update("accounts", {"requested_role": role.value}, {"id": account_id}, commit=False)
        _sync_role_assignment(account_id, role)
    finally:
        accounts.sign_out()
    logger.info("registration for account %s resubmitted as %s", account_id, role.value)
    return account_id


def _notify_received(draft: dict, role: Role) -> None:
    try:
        notify_service.invoke(
            "send-registration-email",
            {
                "email": draft["email"],
                "first_name": draft["first_name"],
                "last_name": draft["last_name"],
                "role": role.value,
            },
        )
    except NotificationError:
        logger.warning("registration email for %s could not be sent", draft["email"], exc_info=True)


def submit_registration(wizard: RegistrationWizard, accounts: AccountService) -> SubmissionResult:
    role = wizard.role
    if role is None or not wizard.is_submit_step:
        raise WizardStateError("Please complete every step before submitting.")
    errors = _check_documents(wizard)
    if errors:
        raise errors[0]

    draft = wizard.draft
    uploaded: list[tuple[str, str]] = []
    resubmitted = False
    try:
        urls = _upload_documents(wizard, uploaded)
        try:
            account_id = accounts.create_account(
                draft["email"],
                draft["password"],
                {
                    "first_name": draft["first_name"],
                    "last_name": draft["last_name"],
                    "role": role.value,
                    "phone": normalize_phone(draft["phone"]),
                },
            )
        except AccountExistsError:
            account_id = _resubmit(accounts, wizard, role, urls)
            resubmitted = True
        else:
            values = _registration_values(draft, role, urls)
            db_service.update("registrations", values, {"user_id": account_id}, commit=False)
            db_service.update("profiles", _profile_values(values), {"user_id": account_id}, commit=False)
        db_service.get_db().commit()
    except PortalError:
        db_service.get_db().rollback()
        # no partial file set may stay attributed to an applicant
        for bucket, path in uploaded:
            storage_service.remove(bucket, path)
        raise

    if not resubmitted:
        _notify_received(draft, role)

    for staged in wizard.attachments.values():
        storage_service.discard_staged(staged)
    status = initial_status(role)
    message = ADMIN_CONFIRMATION if is_self_approving(role) else REVIEW_CONFIRMATION
    wizard.attachments = {}
    wizard.draft["password"] = ""
    wizard.draft["confirm_password"] = ""
    wizard.step_index = len(wizard.steps) - 1
    wizard.confirmation = message
    return SubmissionResult(account_id=account_id, status=status, resubmitted=resubmitted, message=message)


# ---------------------------------------------------------------------------
# reviewer actions


def review_registration(registration_id: int, decision: str, reviewer_id: int, notes: str | None = None) -> dict:
    """Approve or decline a pending registration."""
    if decision not in ("approved", "declined"):
        raise ValidationError("status", "Invalid decision.")
    reg = db_service.fetch_one("registrations", {"id": int(registration_id)})
    if reg is None:
        raise ValidationError("registration", "Registration not found.")
    db_service.update(
        "registrations",
        {"status": decision, "admin_notes": notes or reg.get("admin_notes")},
        {"id": reg["id"]},
    )
    if reg["user_id"] is not None:
        if decision == "approved":
            db_service.upsert("user_roles", {"user_id": reg["user_id"], "role": reg["role"]}, conflict="user_id")
        else:
            db_service.delete("user_roles", {"user_id": reg["user_id"]})
    logger.info("registration %s %s by %s", reg["id"], decision, reviewer_id)
    return {**reg, "status": decision}
