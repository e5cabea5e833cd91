import io

import pytest
from werkzeug.datastructures import FileStorage

from ogwini_portal.app import create_app
from ogwini_portal.app.services import db_service, registration_service, storage_service
from ogwini_portal.app.services.accounts import AccountService
from ogwini_portal.app.services.roles import ELECTIVE_SUBJECTS, Role, is_self_approving, required_documents


VALID_PASSWORD = "Secure@123"
VALID_ID = "0801015009087"


def file_upload(filename: str = "document.pdf", data: bytes = b"%PDF-1.4 demo") -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type="application/pdf")


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "WTF_CSRF_ENABLED": False,
            "SECRET_KEY": "test-secret",
            "DB_PATH": tmp_path / "test.db",
            "STORAGE_ROOT": tmp_path / "storage",
            "LOG_DIR": tmp_path / "logs",
        }
    )
    with app.app_context():
        db_service.init_db()
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.test_request_context():
        yield app


def wizard_fields(role: str, email: str, password: str, grade: str = "Grade 10", electives=None) -> dict:
    fields = {
        "first_name": "Zanele",
        "last_name": "Dube",
        "id_number": VALID_ID,
        "date_of_birth": "2008-01-01",
        "password": password,
        "confirm_password": password,
        "email": email,
        "phone": "082 123 4567",
        "address": "12 Umlazi Road, Durban",
        "next_of_kin_name": "Thandi Dube",
        "next_of_kin_phone": "0841234567",
    }
    if role == "learner":
        fields.update(
            {
                "grade": grade,
                "class_name": "10A",
                "electives": list(ELECTIVE_SUBJECTS[:4]) if electives is None else electives,
                "parent_name": "Thandi Dube",
                "parent_phone": "0831234567",
                "parent_email": "thandi.dube@gmail.com",
            }
        )
    else:
        fields.update({"department": "Mathematics", "grade_taught": "Grade 11", "subjects": ["Mathematics"]})
    return fields


@pytest.fixture
def make_wizard(ctx):
    """Build a wizard for ``role`` parked on its submit step, documents staged."""

    def _make(role="learner", email="zanele.dube@gmail.com", password=VALID_PASSWORD, **kwargs):
        wizard = registration_service.RegistrationWizard()
        wizard.select_role(role)
        wizard.set_fields(wizard_fields(role, email, password, **kwargs))
        for doc in required_documents(wizard.role):
            wizard.attach(doc.value, storage_service.stage(file_upload(f"{doc.value}.pdf")))
        while not wizard.is_submit_step:
            wizard.advance()
        return wizard

    return _make


@pytest.fixture
def make_account(app):
    """Create an account for ``role``; approved unless ``approve`` is False."""

    def _make(role: Role, email: str, password: str = VALID_PASSWORD, approve: bool = True, **profile) -> int:
        with app.app_context():
            account_id = AccountService({}).create_account(
                email,
                password,
                {"first_name": email.split(".")[0].title(), "last_name": "Test", "role": role.value},
            )
            if approve and not is_self_approving(role):
                reg = db_service.fetch_one("registrations", {"user_id": account_id})
                registration_service.review_registration(reg["id"], "approved", account_id)
            if profile:
                db_service.update("profiles", profile, {"user_id": account_id})
        return account_id

    return _make


@pytest.fixture
def login(client):
    def _login(email: str, password: str = VALID_PASSWORD):
        return client.post("/login", data={"email": email, "password": password})

    return _login
