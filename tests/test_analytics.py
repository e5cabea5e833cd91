import pytest

from ogwini_portal.app.services import analytics


def mark(learner_id, subject, obtained, total=100):
    return {"learner_id": learner_id, "subject": subject, "marks_obtained": obtained, "total_marks": total}


PROFILES = [
    {"user_id": 1, "grade": "Grade 10", "class": "10A"},
    {"user_id": 2, "grade": "Grade 10", "class": "10B"},
    {"user_id": 3, "grade": "Grade 12", "class": "12A"},
]

MARKS = [
    mark(1, "Mathematics", 80),
    mark(1, "English", 35, 50),
    mark(2, "Mathematics", 30),
    mark(2, "English", 20, 50),
    mark(3, "Mathematics", 45),
]


def test_mark_percentage():
    assert analytics.mark_percentage(mark(1, "English", 35, 50)) == 70
    assert analytics.mark_percentage(mark(1, "English", 10, 0)) is None


def test_average_and_pass_rate_of_nothing():
    assert analytics.average([]) == 0.0
    assert analytics.pass_rate([]) == 0


def test_average_rounds_half_up():
    assert analytics.average([50, 50.25]) == 50.1
    assert analytics.average([66.65]) == 66.7


def test_pass_rate_counts_pass_mark_as_pass():
    assert analytics.pass_rate([49.9, 50, 80]) == 67
    assert analytics.pass_rate([10, 90]) == 50


def test_grade_stats_covers_every_grade():
    stats = {s["grade"]: s for s in analytics.grade_stats(MARKS, PROFILES)}
    assert list(stats) == ["Grade 8", "Grade 9", "Grade 10", "Grade 11", "Grade 12"]
    assert stats["Grade 8"] == {"grade": "Grade 8", "learners": 0, "records": 0, "average": 0.0, "pass_rate": 0}
    assert stats["Grade 10"]["learners"] == 2
    assert stats["Grade 10"]["records"] == 4
    assert stats["Grade 10"]["average"] == 55.0
    assert stats["Grade 10"]["pass_rate"] == 50
    assert stats["Grade 12"]["pass_rate"] == 0


def test_grades_below_ignores_grades_without_marks():
    stats = analytics.grade_stats(MARKS, PROFILES)
    assert analytics.grades_below(stats) == ["Grade 10", "Grade 12"]


def test_class_comparison():
    rows = analytics.class_comparison(MARKS, PROFILES, "Grade 10")
    assert [r["class"] for r in rows] == ["10A", "10B"]
    assert rows[0]["average"] == 75.0
    assert rows[1]["pass_rate"] == 0


def test_subject_performance_sorted_by_average():
    rows = analytics.subject_performance(MARKS)
    assert [r["subject"] for r in rows] == ["English", "Mathematics"]
    maths = rows[1]
    assert maths["average"] == 51.7
    assert maths["learners"] == 3
    assert maths["at_risk"] == 2
    assert maths["highest"] == 80
    assert maths["lowest"] == 30


def test_subject_performance_filters_subjects():
    rows = analytics.subject_performance(MARKS, ["English"])
    assert [r["subject"] for r in rows] == ["English"]


def test_at_risk_learners_weakest_first():
    rows = analytics.at_risk_learners(MARKS, {2: "Siyabonga Ndlovu"})
    assert [(r["learner_id"], r["average"]) for r in rows] == [(2, 35.0), (3, 45.0)]
    assert rows[0]["name"] == "Siyabonga Ndlovu"
    assert rows[1]["name"] == "Unknown"


def test_at_risk_learners_per_subject():
    rows = analytics.at_risk_learners(MARKS, per_subject=True)
    assert [(r["learner_id"], r["subject"]) for r in rows] == [
        (2, "Mathematics"),
        (2, "English"),
        (3, "Mathematics"),
    ]


def test_school_totals():
    roles = [{"role": "learner"}, {"role": "learner"}, {"role": "teacher"}]
    totals = analytics.school_totals(roles, MARKS, pending_registrations=4)
    assert totals["learners"] == 2
    assert totals["staff"] == 1
    assert totals["pending_registrations"] == 4
    assert totals["pass_rate"] == 40


def test_teacher_rating_summary():
    ratings = [
        {"teacher_id": 7, "subject": "Mathematics", "rating": 5},
        {"teacher_id": 7, "subject": "Accounting", "rating": 4},
        {"teacher_id": 8, "subject": "English", "rating": 2},
    ]
    rows = analytics.teacher_rating_summary(ratings, {7: "Bheki Dlamini"})
    assert rows[0] == {
        "teacher_id": 7,
        "name": "Bheki Dlamini",
        "subjects": ["Accounting", "Mathematics"],
        "average": 4.5,
        "count": 2,
    }
    assert rows[1]["name"] == "Unknown"


def test_score_quiz():
    questions = [
        {"id": 1, "correct_answer": "Pretoria", "marks": 2},
        {"id": 2, "correct_answer": "42", "marks": None},
        {"id": 3, "correct_answer": "Oxygen", "marks": 1},
    ]
    score, total = analytics.score_quiz(questions, {1: " pretoria ", "2": "41", 3: ""})
    assert (score, total) == (2, 4)


@pytest.mark.parametrize(
    "items,expected",
    [
        ([], 0.0),
        ([{"price": 850, "quantity": 2}, {"price": 120, "quantity": 1}], 1820.0),
    ],
)
def test_cart_total(items, expected):
    assert analytics.cart_total(items) == expected
