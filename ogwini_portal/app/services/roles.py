from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    LEARNER = "learner"
    TEACHER = "teacher"
    GRADE_HEAD = "grade_head"
    PRINCIPAL = "principal"
    DEPUTY_PRINCIPAL = "deputy_principal"
    HOD = "hod"
    LLC = "llc"
    ADMIN = "admin"
    FINANCE = "finance"
    LIBRARIAN = "librarian"

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


class Step(str, Enum):
    ROLE = "role"
    PERSONAL = "personal"
    CONTACT = "contact"
    PARENT = "parent"
    PROFESSIONAL = "professional"
    DOCUMENTS = "documents"
    PAYMENT = "payment"
    COMPLETE = "complete"


class RoleShape(str, Enum):
    LEARNER = "learner"
    NON_TEACHING = "non_teaching"
    TEACHING = "teaching"


class Document(str, Enum):
    ID_DOCUMENT = "id_document"
    PROOF_OF_ADDRESS = "proof_of_address"
    LAST_REPORT = "last_report"
    PROOF_OF_PAYMENT = "proof_of_payment"
    QUALIFICATION = "qualification"
    PARENT_ID_DOCUMENT = "parent_id_document"


ROLE_LABELS = {
    Role.LEARNER: "Learner",
    Role.TEACHER: "Teacher",
    Role.GRADE_HEAD: "Grade Head",
    Role.PRINCIPAL: "Principal",
    Role.DEPUTY_PRINCIPAL: "Deputy Principal",
    Role.HOD: "Head of Department",
    Role.LLC: "LLC",
    Role.ADMIN: "Administrator",
    Role.FINANCE: "Finance",
    Role.LIBRARIAN: "Librarian",
}

ROLE_SHAPES = {
    Role.LEARNER: RoleShape.LEARNER,
    Role.ADMIN: RoleShape.NON_TEACHING,
    Role.FINANCE: RoleShape.NON_TEACHING,
    Role.LIBRARIAN: RoleShape.NON_TEACHING,
    Role.TEACHER: RoleShape.TEACHING,
    Role.GRADE_HEAD: RoleShape.TEACHING,
    Role.PRINCIPAL: RoleShape.TEACHING,
    Role.DEPUTY_PRINCIPAL: RoleShape.TEACHING,
    Role.HOD: RoleShape.TEACHING,
    Role.LLC: RoleShape.TEACHING,
}

SHAPE_STEPS = {
    RoleShape.LEARNER: (
        Step.ROLE,
        Step.PERSONAL,
        Step.CONTACT,
        Step.PARENT,
        Step.DOCUMENTS,
        Step.PAYMENT,
        Step.COMPLETE,
    ),
    RoleShape.NON_TEACHING: (
        Step.ROLE,
        Step.PERSONAL,
        Step.CONTACT,
        Step.DOCUMENTS,
        Step.COMPLETE,
    ),
    RoleShape.TEACHING: (
        Step.ROLE,
        Step.PERSONAL,
        Step.CONTACT,
        Step.PROFESSIONAL,
        Step.DOCUMENTS,
        Step.COMPLETE,
    ),
}

SHAPE_REQUIRED_DOCUMENTS = {
    RoleShape.LEARNER: (
        Document.ID_DOCUMENT,
        Document.PROOF_OF_ADDRESS,
        Document.LAST_REPORT,
        Document.PROOF_OF_PAYMENT,
    ),
    RoleShape.NON_TEACHING: (Document.ID_DOCUMENT, Document.PROOF_OF_ADDRESS, Document.QUALIFICATION),
    RoleShape.TEACHING: (Document.ID_DOCUMENT, Document.PROOF_OF_ADDRESS, Document.QUALIFICATION),
}

SHAPE_OPTIONAL_DOCUMENTS = {
    RoleShape.LEARNER: (Document.PARENT_ID_DOCUMENT,),
    RoleShape.NON_TEACHING: (),
    RoleShape.TEACHING: (),
}

DOCUMENT_LABELS = {
    Document.ID_DOCUMENT: "ID Document",
    Document.PROOF_OF_ADDRESS: "Proof of Address",
    Document.LAST_REPORT: "Latest School Report",
    Document.PROOF_OF_PAYMENT: "Proof of Payment",
    Document.QUALIFICATION: "Qualification",
    Document.PARENT_ID_DOCUMENT: "Parent/Guardian ID",
}

# (bucket, registrations column)
DOCUMENT_STORAGE = {
    Document.ID_DOCUMENT: ("registration-docs", "id_document_url"),
    Document.PROOF_OF_ADDRESS: ("registration-docs", "proof_of_address_url"),
    Document.LAST_REPORT: ("registration-docs", "report_url"),
    Document.PROOF_OF_PAYMENT: ("payment-proofs", "payment_proof_url"),
    Document.QUALIFICATION: ("registration-docs", "qualification_url"),
    Document.PARENT_ID_DOCUMENT: ("registration-docs", "parent_id_document_url"),
}

DASHBOARD_ENDPOINTS = {
    Role.LEARNER: "dashboards.learner",
    Role.TEACHER: "dashboards.teacher",
    Role.GRADE_HEAD: "dashboards.grade_head",
    Role.PRINCIPAL: "dashboards.principal",
    Role.DEPUTY_PRINCIPAL: "dashboards.deputy_principal",
    Role.HOD: "dashboards.hod",
    Role.LLC: "dashboards.llc",
    Role.ADMIN: "dashboards.admin",
    Role.FINANCE: "dashboards.finance",
    Role.LIBRARIAN: "dashboards.librarian",
}

for _table in (ROLE_LABELS, ROLE_SHAPES, DASHBOARD_ENDPOINTS):
    _missing = set(Role) - set(_table)
    if _missing:
        raise RuntimeError(f"role table incomplete, missing: {sorted(r.value for r in _missing)}")
for _table in (SHAPE_STEPS, SHAPE_REQUIRED_DOCUMENTS, SHAPE_OPTIONAL_DOCUMENTS):
    if set(_table) != set(RoleShape):
        raise RuntimeError("role shape table incomplete")
if set(DOCUMENT_STORAGE) != set(Document) or set(DOCUMENT_LABELS) != set(Document):
    raise RuntimeError("document table incomplete")

SELF_APPROVING_ROLES = frozenset({Role.ADMIN})

GRADES = ("Grade 8", "Grade 9", "Grade 10", "Grade 11", "Grade 12")
ELECTIVE_GRADES = frozenset({"Grade 10", "Grade 11", "Grade 12"})
REQUIRED_ELECTIVES = 4

ELECTIVE_SUBJECTS = (
    "Physical Sciences",
    "Life Sciences",
    "Geography",
    "History",
    "Accounting",
    "Business Studies",
    "Economics",
    "Technical Drawing",
    "Engineering Graphics and Design",
    "Civil Technology",
    "Electrical Technology",
    "Mechanical Technology",
    "Computer Applications Technology",
    "Information Technology",
)

SUBJECTS = (
    "Mathematics",
    "Mathematical Literacy",
    "English",
    "isiZulu",
    "Afrikaans",
    "Life Orientation",
) + ELECTIVE_SUBJECTS

DEPARTMENTS = (
    "Languages",
    "Mathematics",
    "Sciences",
    "Commerce",
    "Humanities",
    "Technology",
)


def shape_of(role: Role) -> RoleShape:
    return ROLE_SHAPES[role]


def steps_for(role: Role) -> tuple[Step, ...]:
    return SHAPE_STEPS[shape_of(role)]


def needs_parent_info(role: Role) -> bool:
    return shape_of(role) is RoleShape.LEARNER


def needs_professional_info(role: Role) -> bool:
    return shape_of(role) is RoleShape.TEACHING


def electives_required(grade: str | None) -> bool:
    return (grade or "").strip() in ELECTIVE_GRADES


def required_documents(role: Role) -> tuple[Document, ...]:
    return SHAPE_REQUIRED_DOCUMENTS[shape_of(role)]


def optional_documents(role: Role) -> tuple[Document, ...]:
    return SHAPE_OPTIONAL_DOCUMENTS[shape_of(role)]


def is_self_approving(role: Role) -> bool:
    return role in SELF_APPROVING_ROLES


def initial_status(role: Role) -> str:
    return "approved" if is_self_approving(role) else "pending"
