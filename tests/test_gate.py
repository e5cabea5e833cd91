import pytest

from ogwini_portal.app.services.auth_service import AccessDecision, Principal, check_access
from ogwini_portal.app.services.roles import Role


def principal(status="approved", role=Role.TEACHER):
    return Principal(account_id=1, status=status, role=role, first_name="Bheki", last_name="Dlamini")


def test_anonymous_must_log_in():
    assert check_access(None, [Role.TEACHER]) is AccessDecision.LOGIN


@pytest.mark.parametrize("status", ["pending", "declined"])
def test_unapproved_principal_waits(status):
    assert check_access(principal(status=status, role=None), [Role.TEACHER]) is AccessDecision.PENDING


def test_approved_without_role_assignment_waits():
    assert check_access(principal(role=None), list(Role)) is AccessDecision.PENDING


def test_wrong_role_redirected_to_own_dashboard():
    assert check_access(principal(), [Role.PRINCIPAL, Role.DEPUTY_PRINCIPAL]) is AccessDecision.REDIRECT_OWN


def test_allowed_role_passes():
    assert check_access(principal(), [Role.TEACHER, Role.GRADE_HEAD]) is AccessDecision.ALLOW


def test_principal_labels():
    p = principal()
    assert p.display_name == "Bheki Dlamini"
    assert p.role_label == "Teacher"
    assert principal(status="pending", role=None).role_label == "Pending"


def test_protected_page_redirects_anonymous_to_login(client):
    resp = client.get("/dashboard/teacher")
    assert resp.status_code == 302
    assert "/login?next=/dashboard/teacher" in resp.headers["Location"]


def test_pending_account_sent_to_pending_page(client, make_account, login):
    make_account(Role.LEARNER, "lwazi.mnguni@gmail.com", approve=False)
    login("lwazi.mnguni@gmail.com")

    resp = client.get("/dashboard/learner")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard/pending")
    assert client.get("/dashboard/pending").status_code == 200


def test_other_roles_dashboard_redirects_to_own(client, make_account, login):
    make_account(Role.TEACHER, "bheki.dlamini@gmail.com")
    login("bheki.dlamini@gmail.com")

    resp = client.get("/dashboard/principal")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard/teacher")


def test_dashboard_home_routes_by_role(client, make_account, login):
    make_account(Role.FINANCE, "ayanda.cele@gmail.com")
    login("ayanda.cele@gmail.com")

    resp = client.get("/dashboard/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard/finance")
