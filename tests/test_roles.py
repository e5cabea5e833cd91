import pytest

from ogwini_portal.app.services import roles
from ogwini_portal.app.services.roles import Document, Role, RoleShape, Step


def test_every_role_has_a_shape_and_dashboard():
    assert set(roles.ROLE_SHAPES) == set(Role)
    assert set(roles.DASHBOARD_ENDPOINTS) == set(Role)
    assert set(roles.ROLE_LABELS) == set(Role)


@pytest.mark.parametrize(
    "role,count,last_before_complete",
    [
        (Role.LEARNER, 7, Step.PAYMENT),
        (Role.ADMIN, 5, Step.DOCUMENTS),
        (Role.FINANCE, 5, Step.DOCUMENTS),
        (Role.TEACHER, 6, Step.DOCUMENTS),
        (Role.HOD, 6, Step.DOCUMENTS),
    ],
)
def test_step_lists(role, count, last_before_complete):
    steps = roles.steps_for(role)
    assert len(steps) == count
    assert steps[0] is Step.ROLE
    assert steps[-1] is Step.COMPLETE
    assert steps[-2] is last_before_complete


def test_parent_and_professional_steps_follow_shape():
    for role in Role:
        steps = roles.steps_for(role)
        assert (Step.PARENT in steps) is roles.needs_parent_info(role)
        assert (Step.PROFESSIONAL in steps) is roles.needs_professional_info(role)


def test_required_documents():
    assert roles.required_documents(Role.LEARNER) == (
        Document.ID_DOCUMENT,
        Document.PROOF_OF_ADDRESS,
        Document.LAST_REPORT,
        Document.PROOF_OF_PAYMENT,
    )
    assert Document.QUALIFICATION in roles.required_documents(Role.LIBRARIAN)
    assert Document.LAST_REPORT not in roles.required_documents(Role.TEACHER)
    assert roles.optional_documents(Role.LEARNER) == (Document.PARENT_ID_DOCUMENT,)
    assert roles.optional_documents(Role.TEACHER) == ()


def test_only_admin_self_approves():
    assert [r for r in Role if roles.is_self_approving(r)] == [Role.ADMIN]
    assert roles.initial_status(Role.ADMIN) == "approved"
    assert roles.initial_status(Role.PRINCIPAL) == "pending"


def test_electives_required_from_grade_10():
    assert not roles.electives_required("Grade 8")
    assert not roles.electives_required("Grade 9")
    assert all(roles.electives_required(g) for g in ("Grade 10", "Grade 11", "Grade 12"))
    assert not roles.electives_required(None)


def test_role_parse():
    assert Role.parse(" Teacher ") is Role.TEACHER
    assert Role.parse("janitor") is None
    assert Role.parse(None) is None


def test_shapes_cover_every_shape():
    assert set(roles.SHAPE_STEPS) == set(RoleShape)
    assert {shape for shape in roles.ROLE_SHAPES.values()} == set(RoleShape)
