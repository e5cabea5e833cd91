import pytest

from ogwini_portal.app.errors import ValidationError, WizardStateError
from ogwini_portal.app.services.registration_service import RegistrationWizard
from ogwini_portal.app.services.roles import ELECTIVE_SUBJECTS, Role, Step

from conftest import VALID_PASSWORD, wizard_fields


def staged(name="file.pdf"):
    return {"filename": name, "staged_path": f"/tmp/_staging/{name}", "mimetype": "application/pdf"}


def at_step(role, step, **kwargs):
    wizard = RegistrationWizard()
    wizard.select_role(role)
    wizard.set_fields(wizard_fields(role, "zanele.dube@gmail.com", VALID_PASSWORD, **kwargs))
    while wizard.current_step is not step:
        wizard.advance()
    return wizard


def test_new_wizard_starts_on_role_step():
    wizard = RegistrationWizard()
    assert wizard.current_step is Step.ROLE
    assert wizard.role is None
    assert not wizard.is_submit_step


def test_cannot_leave_role_step_without_role():
    wizard = RegistrationWizard()
    with pytest.raises(ValidationError) as exc:
        wizard.advance()
    assert exc.value.field == "role"
    assert wizard.step_index == 0


def test_unknown_role_rejected():
    with pytest.raises(ValidationError):
        RegistrationWizard().select_role("janitor")


def test_role_only_changes_on_first_step():
    wizard = RegistrationWizard()
    wizard.select_role("teacher")
    wizard.advance()
    with pytest.raises(WizardStateError):
        wizard.select_role("learner")
    assert wizard.role is Role.TEACHER


def test_role_switch_clears_role_specific_fields():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.set_fields({"grade": "Grade 11", "electives": list(ELECTIVE_SUBJECTS[:4]), "first_name": "Zanele"})
    wizard.select_role("teacher")
    wizard.select_role("learner")
    assert wizard.draft["electives"] == []
    assert wizard.draft["grade"] == ""
    assert wizard.draft["first_name"] == "Zanele"


def test_role_switch_drops_attachments_that_no_longer_apply():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.attach("id_document", staged("id.pdf"))
    wizard.attach("last_report", staged("report.pdf"))
    dropped = wizard.select_role("teacher")
    assert [d["filename"] for d in dropped] == ["report.pdf"]
    assert set(wizard.attachments) == {"id_document"}


def test_reselecting_same_role_keeps_draft():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.set_fields({"grade": "Grade 9"})
    assert wizard.select_role("learner") == []
    assert wizard.draft["grade"] == "Grade 9"


def test_step_guard_is_repeatable():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.advance()
    wizard.set_fields({"first_name": "Zanele", "id_number": "123"})
    first = wizard.validate_step()
    second = wizard.validate_step()
    assert [(e.field, e.message) for e in first] == [(e.field, e.message) for e in second]
    assert wizard.current_step is Step.PERSONAL


def test_invalid_personal_step_blocks_advance():
    wizard = RegistrationWizard()
    wizard.select_role("admin")
    wizard.advance()
    fields = wizard_fields("admin", "a.admin@gmail.com", VALID_PASSWORD)
    fields["confirm_password"] = "Different@1"
    wizard.set_fields(fields)
    with pytest.raises(ValidationError) as exc:
        wizard.advance()
    assert exc.value.field == "confirm_password"
    assert wizard.current_step is Step.PERSONAL


def test_weak_password_blocks_advance():
    wizard = RegistrationWizard()
    wizard.select_role("admin")
    wizard.advance()
    wizard.set_fields(wizard_fields("admin", "a.admin@gmail.com", "password"))
    with pytest.raises(ValidationError) as exc:
        wizard.advance()
    assert exc.value.field == "password"


def test_elective_count_enforced_for_senior_grades():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.advance()
    wizard.set_fields(
        wizard_fields("learner", "zanele.dube@gmail.com", VALID_PASSWORD, electives=list(ELECTIVE_SUBJECTS[:3]))
    )
    with pytest.raises(ValidationError) as exc:
        wizard.advance()
    assert exc.value.field == "electives"
    assert "exactly 4" in exc.value.message
    assert wizard.current_step is Step.PERSONAL


def test_duplicate_electives_rejected():
    wizard = RegistrationWizard()
    wizard.select_role("learner")
    wizard.advance()
    chosen = [ELECTIVE_SUBJECTS[0]] * 2 + list(ELECTIVE_SUBJECTS[1:3])
    wizard.set_fields(wizard_fields("learner", "zanele.dube@gmail.com", VALID_PASSWORD, electives=chosen))
    with pytest.raises(ValidationError):
        wizard.advance()


def test_junior_learner_needs_no_electives():
    wizard = at_step("learner", Step.CONTACT, grade="Grade 8", electives=[])
    assert wizard.draft["electives"] == []


def test_contact_step_requires_gmail():
    wizard = at_step("teacher", Step.CONTACT)
    wizard.set_fields({"email": "zanele@yahoo.com"})
    with pytest.raises(ValidationError) as exc:
        wizard.advance()
    assert exc.value.field == "email"


def test_documents_step_requires_every_required_document():
    wizard = at_step("teacher", Step.DOCUMENTS)
    wizard.attach("id_document", staged())
    wizard.attach("proof_of_address", staged())
    errors = wizard.validate_step()
    assert [e.field for e in errors] == ["qualification"]


def test_document_not_needed_for_role_rejected():
    wizard = at_step("teacher", Step.DOCUMENTS)
    with pytest.raises(ValidationError):
        wizard.attach("last_report", staged())
    with pytest.raises(ValidationError):
        wizard.attach("birth_certificate", staged())


def test_attach_returns_replaced_file():
    wizard = RegistrationWizard()
    wizard.select_role("admin")
    assert wizard.attach("id_document", staged("a.pdf")) is None
    assert wizard.attach("id_document", staged("b.pdf"))["filename"] == "a.pdf"
    assert wizard.detach("id_document")["filename"] == "b.pdf"
    assert wizard.detach("id_document") is None


def test_cannot_advance_past_submit_step():
    wizard = at_step("admin", Step.DOCUMENTS)
    for slot in ("id_document", "proof_of_address", "qualification"):
        wizard.attach(slot, staged())
    assert wizard.is_submit_step
    with pytest.raises(WizardStateError):
        wizard.advance()
    assert wizard.current_step is Step.DOCUMENTS


def test_learner_submit_step_is_payment():
    wizard = at_step("learner", Step.DOCUMENTS)
    for slot in ("id_document", "proof_of_address", "last_report", "proof_of_payment"):
        wizard.attach(slot, staged())
    assert wizard.advance() is Step.PAYMENT
    assert wizard.is_submit_step


def test_back_refused_on_first_step():
    wizard = RegistrationWizard()
    with pytest.raises(WizardStateError):
        wizard.back()


def test_back_keeps_entered_data():
    wizard = at_step("teacher", Step.PROFESSIONAL)
    assert wizard.back() is Step.CONTACT
    assert wizard.draft["email"] == "zanele.dube@gmail.com"


def test_list_fields_ignore_blank_values():
    wizard = RegistrationWizard()
    wizard.select_role("teacher")
    wizard.set_fields({"subjects": ["", "Mathematics", "  "]})
    assert wizard.draft["subjects"] == ["Mathematics"]


def test_round_trip_clamps_stale_cursor():
    wizard = RegistrationWizard.from_dict({"draft": {"role": "admin"}, "step_index": 9})
    assert wizard.current_step is Step.COMPLETE
    wizard = RegistrationWizard.from_dict({"draft": {"role": ""}, "step_index": 3})
    assert wizard.step_index == 0


def test_from_dict_ignores_unknown_fields():
    wizard = RegistrationWizard.from_dict({"draft": {"role": "learner", "favourite_colour": "blue"}})
    assert "favourite_colour" not in wizard.draft
    assert wizard.role is Role.LEARNER
