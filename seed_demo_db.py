import argparse
import os
import random
from pathlib import Path

from ogwini_portal.app import create_app
from ogwini_portal.app.services import db_service, registration_service
from ogwini_portal.app.services.accounts import AccountService
from ogwini_portal.app.services.roles import GRADES, Role, is_self_approving


DEMO_PASSWORD = "Demo@2024"

STAFF = [
    ("Thandi", "Mkhize", Role.ADMIN),
    ("Sipho", "Ndlovu", Role.PRINCIPAL),
    ("Lindiwe", "Zulu", Role.DEPUTY_PRINCIPAL),
    ("Bheki", "Dlamini", Role.TEACHER),
    ("Nokuthula", "Shezi", Role.GRADE_HEAD),
    ("Musa", "Khumalo", Role.HOD),
    ("Zodwa", "Ngcobo", Role.LLC),
    ("Ayanda", "Cele", Role.FINANCE),
    ("Sbu", "Mthembu", Role.LIBRARIAN),
]

LEARNERS = [
    ("Zanele", "Dube", "Grade 10", "10A"),
    ("Siyabonga", "Ndlovu", "Grade 10", "10B"),
    ("Nomsa", "Khumalo", "Grade 11", "11A"),
    ("Bongani", "Cele", "Grade 11", "11B"),
    ("Thobile", "Ngcobo", "Grade 12", "12A"),
    ("Mandla", "Sithole", "Grade 8", "8C"),
]

SUBJECT_MIX = ("Mathematics", "English", "Physical Sciences", "Accounting", "Technical Drawing")


def _email(first: str, last: str) -> str:
    return f"{first}.{last}".lower() + "@gmail.com"


def _account(accounts: AccountService, first: str, last: str, role: Role, reviewer_id: int | None) -> int:
    account_id = accounts.create_account(
        _email(first, last),
        DEMO_PASSWORD,
        {"first_name": first, "last_name": last, "role": role.value, "phone": "0821234567"},
    )
    if not is_self_approving(role) and reviewer_id is not None:
        reg = db_service.fetch_one("registrations", {"user_id": account_id})
        registration_service.review_registration(reg["id"], "approved", reviewer_id, "Seeded demo account")
    return account_id


def seed(db_path: Path) -> None:
    app = create_app({"DB_PATH": db_path})
    with app.app_context():
        db_service.init_db()
        accounts = AccountService({})
        rng = random.Random(7)

        admin_id = None
        staff_ids = {}
        for first, last, role in STAFF:
            account_id = _account(accounts, first, last, role, admin_id)
            staff_ids[role] = account_id
            if role is Role.ADMIN:
                admin_id = account_id

        db_service.update("registrations", {"grade_taught": "Grade 11"}, {"user_id": staff_ids[Role.GRADE_HEAD]})
        department = db_service.fetch_one("departments", {"name": "Mathematics"})
        db_service.insert(
            "department_heads",
            {"user_id": staff_ids[Role.HOD], "department_id": department["id"], "assigned_at": db_service.now_iso()},
        )

        for first, last, grade, class_name in LEARNERS:
            learner_id = _account(accounts, first, last, Role.LEARNER, admin_id)
            db_service.update("profiles", {"grade": grade, "class": class_name}, {"user_id": learner_id})
            for subject in SUBJECT_MIX:
                for assessment in ("Test 1", "Assignment 1"):
                    db_service.insert(
                        "marks",
                        {
                            "learner_id": learner_id,
                            "subject": subject,
                            "assessment_name": assessment,
                            "assessment_type": "test" if assessment.startswith("Test") else "assignment",
                            "marks_obtained": rng.randint(25, 98),
                            "total_marks": 100,
                            "term": "Term 1",
                            "year": 2024,
                            "recorded_by": staff_ids[Role.TEACHER],
                        },
                    )

        _account(accounts, "Lwazi", "Mnguni", Role.LEARNER, None)

        db_service.insert(
            "announcements",
            {
                "title": "Welcome back",
                "content": f"Term 1 starts on Monday. {', '.join(GRADES[:2])} orientation is in the hall.",
                "target_audience": "all",
                "created_by": staff_ids[Role.PRINCIPAL],
            },
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a demo ogwini.db with one account per role")
    parser.add_argument(
        "--db",
        default=str(Path(__file__).with_name("ogwini.db")),
        help="Path to sqlite db file (default: ./ogwini.db)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing db file if it exists",
    )
    args = parser.parse_args()

    db_path = Path(args.db).resolve()
    if db_path.exists():
        if not args.force:
            raise SystemExit(f"DB already exists at {db_path}. Re-run with --force to overwrite.")
        os.remove(db_path)

    seed(db_path)
    print(f"Demo database created at: {db_path}")
    print(f"All demo accounts use the password {DEMO_PASSWORD}")
    for first, last, role in STAFF:
        print(f"- {role.value}: {_email(first, last)}")
    print(f"- learner: {_email(*LEARNERS[0][:2])}")
    print(f"- pending learner: {_email('Lwazi', 'Mnguni')}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
