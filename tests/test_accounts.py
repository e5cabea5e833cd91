import logging

import pytest

from ogwini_portal.app.errors import AccountError, AccountExistsError, InvalidCredentialsError
from ogwini_portal.app.services import db_service
from ogwini_portal.app.services.accounts import (
    SESSION_KEY,
    AccountService,
    request_password_reset,
    reset_password,
)
from ogwini_portal.app.services.notify_service import BaseEmailProvider

from conftest import VALID_PASSWORD


META = {"first_name": "Bheki", "last_name": "Dlamini", "role": "teacher", "phone": "0821234567"}


def test_create_account_provisions_profile_and_registration(ctx):
    account_id = AccountService({}).create_account(" Bheki.Dlamini@Gmail.com ", VALID_PASSWORD, META)

    account = db_service.fetch_one("accounts", {"id": account_id})
    assert account["email"] == "bheki.dlamini@gmail.com"
    assert account["password_hash"] != VALID_PASSWORD
    assert db_service.fetch_one("profiles", {"user_id": account_id})["first_name"] == "Bheki"
    reg = db_service.fetch_one("registrations", {"user_id": account_id})
    assert reg["status"] == "pending"
    assert reg["role"] == "teacher"
    assert db_service.fetch_one("user_roles", {"user_id": account_id}) is None


def test_create_admin_account_is_assigned_its_role(ctx):
    account_id = AccountService({}).create_account("a.admin@gmail.com", VALID_PASSWORD, {**META, "role": "admin"})
    assert db_service.fetch_one("registrations", {"user_id": account_id})["status"] == "approved"
    assert db_service.fetch_one("user_roles", {"user_id": account_id})["role"] == "admin"


def test_duplicate_email_raises(ctx):
    accounts = AccountService({})
    accounts.create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)
    with pytest.raises(AccountExistsError) as exc:
        accounts.create_account("BHEKI.DLAMINI@gmail.com", "Other@1234", META)
    assert exc.value.email == "bheki.dlamini@gmail.com"


def test_create_account_requires_role(ctx):
    with pytest.raises(AccountError):
        AccountService({}).create_account("x.y@gmail.com", VALID_PASSWORD, {**META, "role": "janitor"})


def test_sign_in_and_out(ctx):
    session = {}
    accounts = AccountService(session)
    account_id = accounts.create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)

    assert accounts.sign_in("Bheki.Dlamini@gmail.com", VALID_PASSWORD) == account_id
    assert session[SESSION_KEY] == account_id
    assert accounts.current_account_id() == account_id

    accounts.sign_out()
    assert SESSION_KEY not in session
    assert accounts.current_account_id() is None


def test_sign_in_wrong_password(ctx):
    session = {}
    accounts = AccountService(session)
    accounts.create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)
    with pytest.raises(InvalidCredentialsError):
        accounts.sign_in("bheki.dlamini@gmail.com", "Wrong@1234")
    with pytest.raises(InvalidCredentialsError):
        accounts.sign_in("nobody@gmail.com", VALID_PASSWORD)
    assert session == {}


def test_update_password_enforces_strength(ctx):
    accounts = AccountService({})
    account_id = accounts.create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)
    with pytest.raises(AccountError):
        accounts.update_password(account_id, "short")
    accounts.update_password(account_id, "Changed@789")
    assert accounts.sign_in("bheki.dlamini@gmail.com", "Changed@789") == account_id


def test_reset_flow_is_single_use(ctx):
    accounts = AccountService({})
    account_id = accounts.create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)

    token = request_password_reset("bheki.dlamini@gmail.com", "http://localhost/reset-password")
    assert token

    assert reset_password(token, "Renewed@456") == account_id
    assert accounts.sign_in("bheki.dlamini@gmail.com", "Renewed@456") == account_id

    with pytest.raises(AccountError) as exc:
        reset_password(token, "Another@456")
    assert "already been used" in exc.value.message


def test_reset_for_unknown_email_is_silent(ctx):
    assert request_password_reset("nobody@gmail.com", "http://localhost/reset-password") is None


def test_reset_with_bad_token(ctx):
    with pytest.raises(AccountError) as exc:
        reset_password("not-a-token", "Renewed@456")
    assert "invalid" in exc.value.message


def test_reset_with_expired_token(ctx, app):
    AccountService({}).create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)
    token = request_password_reset("bheki.dlamini@gmail.com", "http://localhost/reset-password")
    app.config["RESET_TOKEN_MAX_AGE"] = -1
    with pytest.raises(AccountError) as exc:
        reset_password(token, "Renewed@456")
    assert "expired" in exc.value.message


class InboxProvider(BaseEmailProvider):
    def __init__(self):
        self.inbox = []

    def send_email(self, to, subject, body):
        self.inbox.append((to, subject, body))


def test_reset_link_is_emailed_and_kept_out_of_logs(ctx, caplog):
    caplog.set_level(logging.INFO)
    inbox = InboxProvider()
    ctx.config["EMAIL_PROVIDER"] = inbox
    account_id = AccountService({}).create_account("bheki.dlamini@gmail.com", VALID_PASSWORD, META)

    token = request_password_reset("bheki.dlamini@gmail.com", "http://localhost/reset-password")

    (to, subject, body), = inbox.inbox
    assert to == ["bheki.dlamini@gmail.com"]
    assert subject == "Ogwini School - Reset your password"
    assert "Hi Bheki" in body
    assert f"http://localhost/reset-password?token={token}" in body
    assert token not in caplog.text
    assert f"password reset link sent for account {account_id}" in caplog.text
