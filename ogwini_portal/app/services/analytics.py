"""Dashboard aggregations.

Everything here is a plain linear scan over rows already fetched from the
record store; nothing is cached between requests. Mark rows carry
``learner_id``, ``subject``, ``marks_obtained`` and ``total_marks``;
learner placement (grade and class) comes from ``profiles`` rows.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .roles import GRADES


PASS_MARK = 50
GRADE_PASS_RATE_TARGET = 75


def _round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def mark_percentage(row: dict) -> float | None:
    try:
        total = float(row.get("total_marks") or 0)
        obtained = float(row.get("marks_obtained") or 0)
    except (TypeError, ValueError):
        return None
    if total <= 0:
        return None
    return obtained / total * 100


def _percentages(marks: Iterable[dict]) -> list[float]:
    return [p for p in (mark_percentage(m) for m in marks) if p is not None]


def average(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return _round_half_up(sum(values) / len(values), 1)


def pass_rate(values: Iterable[float]) -> int:
    values = list(values)
    if not values:
        return 0
    passed = sum(1 for v in values if v >= PASS_MARK)
    return int(_round_half_up(passed / len(values) * 100))


def _placement(profiles: Iterable[dict]) -> dict:
    return {p["user_id"]: p for p in profiles}


def _summary(marks: list[dict]) -> dict:
    pcts = _percentages(marks)
    return {
        "learners": len({m["learner_id"] for m in marks}),
        "records": len(pcts),
        "average": average(pcts),
        "pass_rate": pass_rate(pcts),
    }


def grade_stats(marks: Iterable[dict], profiles: Iterable[dict]) -> list[dict]:
    """One row per grade (Grade 8 to 12), zeros where no marks exist."""
    placement = _placement(profiles)
    by_grade: dict[str, list[dict]] = defaultdict(list)
    for m in marks:
        grade = (placement.get(m["learner_id"]) or {}).get("grade")
        if grade:
            by_grade[grade].append(m)
    return [{"grade": grade, **_summary(by_grade.get(grade, []))} for grade in GRADES]


def class_comparison(marks: Iterable[dict], profiles: Iterable[dict], grade: str) -> list[dict]:
    placement = _placement(profiles)
    by_class: dict[str, list[dict]] = defaultdict(list)
    for m in marks:
        p = placement.get(m["learner_id"]) or {}
        if p.get("grade") == grade and p.get("class"):
            by_class[p["class"]].append(m)
    return [{"class": name, **_summary(rows)} for name, rows in sorted(by_class.items())]


def subject_performance(marks: Iterable[dict], subjects: Iterable[str] | None = None) -> list[dict]:
    wanted = set(subjects) if subjects is not None else None
    by_subject: dict[str, dict[int, list[float]]] = defaultdict(lambda: defaultdict(list))
    for m in marks:
        if wanted is not None and m["subject"] not in wanted:
            continue
        pct = mark_percentage(m)
        if pct is not None:
            by_subject[m["subject"]][m["learner_id"]].append(pct)

    rows = []
    for subject, learners in by_subject.items():
        scores = [p for pcts in learners.values() for p in pcts]
        rows.append(
            {
                "subject": subject,
                "average": average(scores),
                "pass_rate": pass_rate(scores),
                "learners": len(learners),
                "at_risk": sum(1 for pcts in learners.values() if sum(pcts) / len(pcts) < PASS_MARK),
                "highest": _round_half_up(max(scores)),
                "lowest": _round_half_up(min(scores)),
            }
        )
    rows.sort(key=lambda r: r["average"], reverse=True)
    return rows


def at_risk_learners(
    marks: Iterable[dict],
    names: dict | None = None,
    per_subject: bool = False,
) -> list[dict]:
    """Learners whose average is below the pass mark, weakest first.

    With ``per_subject`` a learner appears once per failing subject.
    """
    names = names or {}
    grouped: dict[tuple, list[float]] = defaultdict(list)
    for m in marks:
        pct = mark_percentage(m)
        if pct is None:
            continue
        key = (m["learner_id"], m["subject"]) if per_subject else (m["learner_id"], None)
        grouped[key].append(pct)

    rows = []
    for (learner_id, subject), pcts in grouped.items():
        raw = sum(pcts) / len(pcts)
        if raw < PASS_MARK:
            rows.append(
                {
                    "learner_id": learner_id,
                    "name": names.get(learner_id, "Unknown"),
                    "subject": subject,
                    "average": average(pcts),
                    "records": len(pcts),
                }
            )
    rows.sort(key=lambda r: r["average"])
    return rows


def grades_below(stats: Iterable[dict], threshold: int = GRADE_PASS_RATE_TARGET) -> list[str]:
    """Grades with marks on record whose pass rate is under ``threshold``."""
    return [s["grade"] for s in stats if s["records"] and s["pass_rate"] < threshold]


def school_totals(roles: Iterable[dict], marks: Iterable[dict], pending_registrations: int = 0) -> dict:
    roles = list(roles)
    learners = sum(1 for r in roles if r["role"] == "learner")
    summary = _summary(list(marks))
    return {
        "learners": learners,
        "staff": len(roles) - learners,
        "average": summary["average"],
        "pass_rate": summary["pass_rate"],
        "pending_registrations": pending_registrations,
    }


def teacher_rating_summary(ratings: Iterable[dict], names: dict | None = None) -> list[dict]:
    names = names or {}
    by_teacher: dict[int, list[dict]] = defaultdict(list)
    for r in ratings:
        by_teacher[r["teacher_id"]].append(r)
    rows = []
    for teacher_id, items in by_teacher.items():
        rows.append(
            {
                "teacher_id": teacher_id,
                "name": names.get(teacher_id, "Unknown"),
                "subjects": sorted({i["subject"] for i in items}),
                "average": average(i["rating"] for i in items),
                "count": len(items),
            }
        )
    rows.sort(key=lambda r: r["average"], reverse=True)
    return rows


def _normalise_answer(value) -> str:
    return str(value or "").strip().lower()


def score_quiz(questions: Iterable[dict], answers: dict) -> tuple[int, int]:
    """Return ``(score, total_marks)``; a question without marks is worth 1."""
    score = 0
    total = 0
    for q in questions:
        worth = int(q.get("marks") or 1)
        total += worth
        given = answers.get(q["id"], answers.get(str(q["id"])))
        if _normalise_answer(given) and _normalise_answer(given) == _normalise_answer(q["correct_answer"]):
            score += worth
    return score, total


def cart_total(items: Iterable[dict]) -> float:
    return float(sum(float(i["price"]) * int(i["quantity"]) for i in items))
