from __future__ import annotations

import json
from datetime import datetime

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from ..errors import PortalError, RecordStoreError
from ..services import analytics, db_service, notify_service, registration_service, storage_service
from ..services.auth_service import current_principal, dashboard_url, login_required, role_required
from ..services.roles import DEPARTMENTS, GRADES, ROLE_LABELS, SUBJECTS, Role


bp = Blueprint("dashboards", __name__, url_prefix="/dashboard")

LEADERSHIP = (Role.PRINCIPAL, Role.DEPUTY_PRINCIPAL)
TIMETABLE_EDITORS = (Role.ADMIN, Role.GRADE_HEAD)
MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
TEACHING_ROLES = ("teacher", "grade_head", "hod", "llc", "principal", "deputy_principal")


def _form(*names: str) -> dict:
    return {n: (request.form.get(n) or "").strip() for n in names}


def _int(value, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _names(user_ids=None) -> dict:
    where = {"user_id": list(user_ids)} if user_ids is not None else None
    return {p["user_id"]: f"{p['first_name']} {p['last_name']}" for p in db_service.fetch_all("profiles", where)}


def _users_with_role(*roles: str) -> list[int]:
    return [r["user_id"] for r in db_service.fetch_all("user_roles", {"role": list(roles)})]


def _learner_profiles() -> list[dict]:
    return db_service.fetch_all("profiles", {"user_id": _users_with_role("learner")}, order_by="last_name")


def _announcements_for(audience: str) -> list[dict]:
    today = datetime.now().date().isoformat()
    rows = db_service.fetch_all("announcements", {"target_audience": ["all", audience]}, order_by="created_at desc")
    return [a for a in rows if not a["expires_at"] or a["expires_at"] >= today]


def _back(endpoint: str, message: str | None = None, category: str = "success"):
    if message:
        flash(message, category)
    return redirect(url_for(endpoint))


def _upload(bucket: str, folder, kind: str, field: str = "file") -> str:
    return storage_service.upload_with_url(bucket, str(folder), kind, request.files.get(field))


def _render(template: str, role: Role, **context):
    return render_template(
        f"dashboards/{template}.html",
        page_title=f"{ROLE_LABELS[role]} Dashboard",
        active_page="dashboard",
        **context,
    )


@bp.get("/")
@login_required
def home():
    return redirect(dashboard_url(current_principal()))


@bp.get("/pending")
@login_required
def pending():
    principal = current_principal()
    if principal.is_approved:
        return redirect(dashboard_url(principal))
    registration = db_service.fetch_one("registrations", {"user_id": principal.account_id})
    return render_template(
        "dashboards/pending.html",
        page_title="Registration Status",
        active_page="dashboard",
        registration=registration,
        status=principal.status,
        requested_role=ROLE_LABELS.get(principal.requested_role, "") if principal.requested_role else "",
    )


# ---------------------------------------------------------------------------
# learner


@bp.get("/learner")
@role_required(Role.LEARNER)
def learner():
    me = current_principal().account_id
    profile = db_service.fetch_one("profiles", {"user_id": me}) or {}
    marks = db_service.fetch_all("marks", {"learner_id": me}, order_by="created_at desc")
    percentages = []
    for m in marks:
        pct = analytics.mark_percentage(m)
        m["percentage"] = analytics.average([pct]) if pct is not None else None
        if pct is not None:
            percentages.append(pct)
    grade = profile.get("grade")
    materials = db_service.fetch_all("learning_materials", {"grade": grade} if grade else None, order_by="created_at desc")
    quizzes = db_service.fetch_all(
        "quizzes", {"grade": grade, "status": "published"} if grade else {"status": "published"}, order_by="created_at desc"
    )
    attempts = {s["quiz_id"]: s for s in db_service.fetch_all("quiz_submissions", {"user_id": me})}
    teachers = _users_with_role(*TEACHING_ROLES)
    return _render(
        "learner",
        Role.LEARNER,
        profile=profile,
        marks=marks,
        overall_average=analytics.average(percentages),
        announcements=_announcements_for("learners"),
        notifications=db_service.fetch_all("notifications", {"user_id": me}, order_by="created_at desc"),
        complaints=db_service.fetch_all("complaints", {"learner_id": me}, order_by="created_at desc"),
        statements=db_service.fetch_all("statement_requests", {"learner_id": me}, order_by="created_at desc"),
        balance=db_service.fetch_one("student_balances", {"learner_id": me}),
        subscriptions=db_service.fetch_all("subscriptions", {"learner_id": me}, order_by="created_at desc"),
        subscription_amount=current_app.config["SUBSCRIPTION_AMOUNT"],
        months=MONTHS,
        materials=materials,
        homework=db_service.fetch_all("homework_submissions", {"learner_id": me}, order_by="created_at desc"),
        quizzes=quizzes,
        attempts=attempts,
        teachers=sorted(_names(teachers).items(), key=lambda kv: kv[1]),
        subjects=SUBJECTS,
        timetables=db_service.fetch_all("timetables", {"grade": grade}) if grade else [],
        library=db_service.fetch_all("library_materials", order_by="created_at desc"),
    )


@bp.post("/learner/notifications/read")
@role_required(Role.LEARNER)
def learner_mark_read():
    me = current_principal().account_id
    notification_id = _int(request.form.get("notification_id"))
    where = {"user_id": me}
    if notification_id is not None:
        where["id"] = notification_id
    try:
        db_service.update("notifications", {"is_read": 1}, where)
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner")


@bp.post("/learner/complaints")
@role_required(Role.LEARNER)
def learner_complaint():
    me = current_principal().account_id
    form = _form("subject", "complaint_text")
    if not form["complaint_text"]:
        return _back("dashboards.learner", "Please enter your complaint.", "error")
    profile = db_service.fetch_one("profiles", {"user_id": me}) or {}
    try:
        db_service.insert(
            "complaints",
            {
                "learner_id": me,
                "grade": profile.get("grade") or "Unknown",
                "subject": form["subject"] or None,
                "complaint_text": form["complaint_text"],
                "is_anonymous": 1 if request.form.get("is_anonymous") else 0,
            },
        )
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner", "Your complaint has been sent to the Deputy Principal and Principal.")


@bp.post("/learner/statements")
@role_required(Role.LEARNER)
def learner_statement():
    me = current_principal().account_id
    if db_service.count("statement_requests", {"learner_id": me, "status": "pending"}):
        return _back("dashboards.learner", "You already have a pending statement request.", "error")
    try:
        db_service.insert(
            "statement_requests",
            {"learner_id": me, "notes": (request.form.get("notes") or "").strip() or None},
        )
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner", "The finance department will process your statement request.")


@bp.post("/learner/subscriptions")
@role_required(Role.LEARNER)
def learner_subscription():
    me = current_principal().account_id
    month = (request.form.get("month") or "").strip()
    year = _int(request.form.get("year"), datetime.now().year)
    if month not in MONTHS:
        return _back("dashboards.learner", "Please select a month.", "error")
    if db_service.count("subscriptions", {"learner_id": me, "month": month, "year": year}):
        return _back("dashboards.learner", f"You already submitted for {month}.", "error")
    try:
        url = _upload("subscription-proofs", me, f"{month.lower()}-{year}")
        db_service.insert(
            "subscriptions",
            {
                "learner_id": me,
                "month": month,
                "year": year,
                "amount": current_app.config["SUBSCRIPTION_AMOUNT"],
                "payment_proof_url": url,
            },
        )
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner", "Your proof of payment has been sent for verification.")


@bp.post("/learner/homework")
@role_required(Role.LEARNER)
def learner_homework():
    me = current_principal().account_id
    material = db_service.fetch_one("learning_materials", {"id": _int(request.form.get("material_id"), 0)})
    if material is None:
        return _back("dashboards.learner", "Please choose an assignment.", "error")
    try:
        url = _upload("uploads", f"submissions/{me}", "homework")
        db_service.insert(
            "homework_submissions",
            {
                "learner_id": me,
                "material_id": material["id"],
                "file_url": url,
                "notes": (request.form.get("notes") or "").strip() or None,
            },
        )
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner", f"Your work for \"{material['title']}\" has been submitted.")


def _open_quiz(quiz_id: int, learner_id: int) -> dict:
    """Published quiz for the learner's grade, or 404."""
    profile = db_service.fetch_one("profiles", {"user_id": learner_id}) or {}
    where = {"id": quiz_id, "status": "published"}
    if profile.get("grade"):
        where["grade"] = profile["grade"]
    quiz = db_service.fetch_one("quizzes", where)
    if quiz is None:
        abort(404)
    return quiz


@bp.get("/learner/quizzes/<int:quiz_id>")
@role_required(Role.LEARNER)
def learner_quiz(quiz_id: int):
    quiz = _open_quiz(quiz_id, current_principal().account_id)
    questions = db_service.fetch_all("quiz_questions", {"quiz_id": quiz_id}, order_by="order_num")
    for q in questions:
        q["choices"] = json.loads(q["options"]) if q["options"] else []
    attempt = db_service.fetch_one("quiz_submissions", {"quiz_id": quiz_id, "user_id": current_principal().account_id})
    return _render("quiz", Role.LEARNER, quiz=quiz, questions=questions, attempt=attempt)


@bp.post("/learner/quizzes/<int:quiz_id>")
@role_required(Role.LEARNER)
def learner_quiz_submit(quiz_id: int):
    me = current_principal().account_id
    _open_quiz(quiz_id, me)
    if db_service.count("quiz_submissions", {"quiz_id": quiz_id, "user_id": me}):
        flash("You have already attempted this quiz.", "error")
        return redirect(url_for("dashboards.learner_quiz", quiz_id=quiz_id))
    questions = db_service.fetch_all("quiz_questions", {"quiz_id": quiz_id})
    answers = {q["id"]: (request.form.get(f"q{q['id']}") or "").strip() for q in questions}
    score, total = analytics.score_quiz(questions, answers)
    try:
        db_service.insert(
            "quiz_submissions",
            {
                "quiz_id": quiz_id,
                "user_id": me,
                "answers": json.dumps({str(k): v for k, v in answers.items()}),
                "score": score,
                "total_marks": total,
                "submitted_at": db_service.now_iso(),
            },
        )
    except PortalError as e:
        flash(e.message, "error")
    else:
        flash(f"You scored {score}/{total}", "success")
    return redirect(url_for("dashboards.learner_quiz", quiz_id=quiz_id))


@bp.post("/learner/ratings")
@role_required(Role.LEARNER)
def learner_rating():
    me = current_principal().account_id
    teacher_id = _int(request.form.get("teacher_id"))
    rating = _int(request.form.get("rating"))
    subject = (request.form.get("subject") or "").strip()
    if teacher_id not in _users_with_role(*TEACHING_ROLES) or not subject:
        return _back("dashboards.learner", "Please choose a teacher and subject.", "error")
    if rating is None or not 1 <= rating <= 5:
        return _back("dashboards.learner", "Please give a rating from 1 to 5.", "error")
    try:
        db_service.insert(
            "teacher_ratings",
            {
                "learner_id": me,
                "teacher_id": teacher_id,
                "subject": subject,
                "rating": rating,
                "feedback": (request.form.get("feedback") or "").strip() or None,
                "is_anonymous": 0 if request.form.get("show_name") else 1,
                "term": (request.form.get("term") or "").strip() or None,
                "year": datetime.now().year,
            },
        )
    except PortalError as e:
        return _back("dashboards.learner", e.message, "error")
    return _back("dashboards.learner", "Thank you for your feedback.")


# ---------------------------------------------------------------------------
# teacher


@bp.get("/teacher")
@role_required(Role.TEACHER)
def teacher():
    me = current_principal().account_id
    learners = _learner_profiles()
    submissions = db_service.fetch_all("homework_submissions", order_by="created_at desc")
    materials = db_service.fetch_all("learning_materials", {"uploaded_by": me}, order_by="created_at desc")
    return _render(
        "teacher",
        Role.TEACHER,
        learners=learners,
        names={p["user_id"]: f"{p['first_name']} {p['last_name']}" for p in learners},
        marks=db_service.fetch_all("marks", {"recorded_by": me}, order_by="created_at desc", limit=50),
        materials=materials,
        material_titles={m["id"]: m["title"] for m in db_service.fetch_all("learning_materials")},
        submissions=submissions,
        quizzes=db_service.fetch_all("quizzes", {"created_by": me}, order_by="created_at desc"),
        announcements=_announcements_for("staff"),
        grades=GRADES,
        subjects=SUBJECTS,
    )


@bp.post("/teacher/marks")
@role_required(Role.TEACHER)
def teacher_record_mark():
    me = current_principal().account_id
    form = _form("learner_id", "subject", "assessment_name", "assessment_type", "term", "feedback")
    obtained = _float(request.form.get("marks_obtained"))
    total = _float(request.form.get("total_marks"))
    if not form["subject"] or not form["assessment_name"] or _int(form["learner_id"]) is None:
        return _back("dashboards.teacher", "Please fill in all required fields.", "error")
    if obtained is None or total is None or total <= 0 or not 0 <= obtained <= total:
        return _back("dashboards.teacher", "Marks obtained must be between 0 and the total marks.", "error")
    try:
        db_service.insert(
            "marks",
            {
                "learner_id": int(form["learner_id"]),
                "subject": form["subject"],
                "assessment_name": form["assessment_name"],
                "assessment_type": form["assessment_type"] or "test",
                "marks_obtained": obtained,
                "total_marks": total,
                "term": form["term"] or None,
                "year": datetime.now().year,
                "feedback": form["feedback"] or None,
                "recorded_by": me,
            },
        )
    except PortalError as e:
        return _back("dashboards.teacher", e.message, "error")
    return _back("dashboards.teacher", "Student marks have been updated.")


@bp.post("/teacher/materials")
@role_required(Role.TEACHER)
def teacher_upload_material():
    me = current_principal().account_id
    form = _form("title", "description", "type", "subject", "grade", "week", "due_date")
    if not form["title"] or not form["type"]:
        return _back("dashboards.teacher", "Please fill in all required fields.", "error")
    try:
        url = _upload("uploads", f"materials/{me}", form["type"])
        db_service.insert(
            "learning_materials",
            {**{k: v or None for k, v in form.items()}, "file_url": url, "uploaded_by": me},
        )
    except PortalError as e:
        return _back("dashboards.teacher", e.message, "error")
    return _back("dashboards.teacher", f"{form['title']} has been uploaded.")


@bp.post("/teacher/homework/<int:submission_id>")
@role_required(Role.TEACHER)
def teacher_mark_homework(submission_id: int):
    me = current_principal().account_id
    submission = db_service.fetch_one("homework_submissions", {"id": submission_id})
    if submission is None:
        abort(404)
    obtained = _float(request.form.get("marks_obtained"))
    total = _float(request.form.get("total_marks"))
    if obtained is None or total is None or total <= 0 or not 0 <= obtained <= total:
        return _back("dashboards.teacher", "Marks obtained must be between 0 and the total marks.", "error")
    values = {
        "status": "marked",
        "marks_obtained": obtained,
        "total_marks": total,
        "teacher_feedback": (request.form.get("feedback") or "").strip() or None,
        "marked_by": me,
    }
    try:
        marked = request.files.get("marked_file")
        if marked is not None and (marked.filename or "").strip():
            values["marked_file_url"] = _upload("uploads", f"marked/{submission['learner_id']}", "marked", "marked_file")
        db_service.update("homework_submissions", values, {"id": submission_id})
    except PortalError as e:
        return _back("dashboards.teacher", e.message, "error")
    return _back("dashboards.teacher", "The submission has been marked and feedback sent.")


@bp.post("/teacher/quizzes")
@role_required(Role.TEACHER)
def teacher_create_quiz():
    form = _form("title", "description", "subject", "grade")
    if not form["title"] or not form["subject"] or form["grade"] not in GRADES:
        return _back("dashboards.teacher", "Title, subject and grade are required.", "error")
    try:
        db_service.insert(
            "quizzes",
            {
                **form,
                "description": form["description"] or None,
                "duration_minutes": _int(request.form.get("duration_minutes")),
                "created_by": current_principal().account_id,
            },
        )
    except PortalError as e:
        return _back("dashboards.teacher", e.message, "error")
    return _back("dashboards.teacher", "Quiz created. Add questions to publish it to learners.")


@bp.post("/teacher/quizzes/<int:quiz_id>/questions")
@role_required(Role.TEACHER)
def teacher_add_question(quiz_id: int):
    quiz = db_service.fetch_one("quizzes", {"id": quiz_id})
    if quiz is None or quiz["created_by"] != current_principal().account_id:
        abort(404)
    form = _form("question_text", "question_type", "options", "correct_answer")
    if not form["question_text"] or not form["correct_answer"]:
        return _back("dashboards.teacher", "Question and correct answer are required.", "error")
    options = [o.strip() for o in form["options"].split(",") if o.strip()]
    try:
        db_service.insert(
            "quiz_questions",
            {
                "quiz_id": quiz_id,
                "question_text": form["question_text"],
                "question_type": form["question_type"] or ("multiple_choice" if options else "short_answer"),
                "options": json.dumps(options) if options else None,
                "correct_answer": form["correct_answer"],
                "marks": _int(request.form.get("marks"), 1),
                "order_num": db_service.count("quiz_questions", {"quiz_id": quiz_id}) + 1,
            },
        )
    except PortalError as e:
        return _back("dashboards.teacher", e.message, "error")
    return _back("dashboards.teacher", "Question added.")


# ---------------------------------------------------------------------------
# grade head


def _grade_head_grade() -> str:
    wanted = (request.args.get("grade") or "").strip()
    if wanted in GRADES:
        return wanted
    reg = db_service.fetch_one("registrations", {"user_id": current_principal().account_id}) or {}
    return reg.get("grade_taught") if reg.get("grade_taught") in GRADES else GRADES[0]


@bp.get("/grade-head")
@role_required(Role.GRADE_HEAD)
def grade_head():
    grade = _grade_head_grade()
    profiles = [p for p in _learner_profiles() if p["grade"] == grade]
    ids = [p["user_id"] for p in profiles]
    marks = db_service.fetch_all("marks", {"learner_id": ids})
    names = {p["user_id"]: f"{p['first_name']} {p['last_name']}" for p in profiles}
    return _render(
        "grade_head",
        Role.GRADE_HEAD,
        grade=grade,
        grades=GRADES,
        learner_count=len(profiles),
        classes=analytics.class_comparison(marks, profiles, grade),
        at_risk=analytics.at_risk_learners(marks, names),
        timetables=db_service.fetch_all("timetables", {"grade": grade}, order_by="created_at desc"),
        announcements=_announcements_for("staff"),
    )


@bp.post("/timetables")
@role_required(*TIMETABLE_EDITORS)
def upload_timetable():
    principal = current_principal()
    endpoint = "dashboards.admin" if principal.role is Role.ADMIN else "dashboards.grade_head"
    form = _form("title", "timetable_type", "grade", "class")
    if not form["title"] or form["grade"] not in GRADES:
        return _back(endpoint, "Title and grade are required.", "error")
    try:
        url = _upload("uploads", f"timetables/{form['grade'].replace(' ', '-')}", "timetable")
        db_service.insert(
            "timetables",
            {
                **form,
                "timetable_type": form["timetable_type"] or "class",
                "class": form["class"] or None,
                "file_url": url,
                "uploaded_by": principal.account_id,
            },
        )
    except PortalError as e:
        return _back(endpoint, e.message, "error")
    return _back(endpoint, "The timetable is now visible to learners.")


# ---------------------------------------------------------------------------
# head of department


def _hod_department() -> dict | None:
    me = current_principal().account_id
    head = db_service.fetch_one("department_heads", {"user_id": me})
    if head is not None:
        return db_service.fetch_one("departments", {"id": head["department_id"]})
    reg = db_service.fetch_one("registrations", {"user_id": me}) or {}
    if reg.get("department"):
        return db_service.fetch_one("departments", {"name": reg["department"]})
    return None


@bp.get("/hod")
@role_required(Role.HOD)
def hod():
    department = _hod_department()
    subjects = (
        [s["name"] for s in db_service.fetch_all("subjects", {"department_id": department["id"]})] if department else []
    )
    marks = db_service.fetch_all("marks", {"subject": subjects})
    performance = analytics.subject_performance(marks, subjects)
    at_risk = analytics.at_risk_learners(marks, _names({m["learner_id"] for m in marks}), per_subject=True)
    return _render(
        "hod",
        Role.HOD,
        department=department,
        subjects=subjects,
        performance=performance,
        overall_average=analytics.average(p["average"] for p in performance),
        at_risk=at_risk,
        policies=db_service.fetch_all("curriculum_policies", {"department_id": department["id"]}, order_by="created_at desc")
        if department
        else [],
        announcements=_announcements_for("staff"),
    )


@bp.post("/hod/policies")
@role_required(Role.HOD)
def hod_create_policy():
    department = _hod_department()
    form = _form("title", "description")
    if department is None:
        return _back("dashboards.hod", "You are not assigned to a department.", "error")
    if not form["title"]:
        return _back("dashboards.hod", "Please enter a policy title.", "error")
    values = {
        "department_id": department["id"],
        "title": form["title"],
        "description": form["description"] or None,
        "created_by": current_principal().account_id,
    }
    try:
        document = request.files.get("file")
        if document is not None and (document.filename or "").strip():
            values["policy_document_url"] = _upload("uploads", f"policies/{department['id']}", "policy")
        db_service.insert("curriculum_policies", values)
    except PortalError as e:
        return _back("dashboards.hod", e.message, "error")
    return _back("dashboards.hod", "Policy saved as draft.")


@bp.post("/hod/policies/<int:policy_id>/publish")
@role_required(Role.HOD)
def hod_publish_policy(policy_id: int):
    department = _hod_department()
    if department is None:
        abort(404)
    try:
        changed = db_service.update(
            "curriculum_policies", {"status": "published"}, {"id": policy_id, "department_id": department["id"]}
        )
    except PortalError as e:
        return _back("dashboards.hod", e.message, "error")
    if not changed:
        abort(404)
    return _back("dashboards.hod", "Policy published.")


# ---------------------------------------------------------------------------
# learning & language coordinator


@bp.get("/llc")
@role_required(Role.LLC)
def llc():
    teachers = _users_with_role(*TEACHING_ROLES)
    return _render(
        "llc",
        Role.LLC,
        syllabi=db_service.fetch_all("syllabi", order_by="created_at desc"),
        ratings=analytics.teacher_rating_summary(db_service.fetch_all("teacher_ratings"), _names(teachers)),
        subjects=SUBJECTS,
        grades=GRADES,
        announcements=_announcements_for("staff"),
    )


@bp.post("/llc/syllabi")
@role_required(Role.LLC)
def llc_upload_syllabus():
    form = _form("subject", "grade", "title", "description")
    if not form["subject"] or not form["title"]:
        return _back("dashboards.llc", "Subject and title are required.", "error")
    subject = db_service.fetch_one("subjects", {"name": form["subject"]})
    try:
        url = _upload("uploads", f"syllabi/{form['subject'].replace(' ', '-')}", "syllabus")
        db_service.insert(
            "syllabi",
            {
                **form,
                "grade": form["grade"] or None,
                "description": form["description"] or None,
                "department_id": subject["department_id"] if subject else None,
                "file_url": url,
                "year": _int(request.form.get("year"), datetime.now().year),
                "uploaded_by": current_principal().account_id,
            },
        )
    except PortalError as e:
        return _back("dashboards.llc", e.message, "error")
    return _back("dashboards.llc", "Syllabus uploaded.")


# ---------------------------------------------------------------------------
# principal and deputy principal


def _leadership(role: Role):
    profiles = _learner_profiles()
    marks = db_service.fetch_all("marks")
    stats = analytics.grade_stats(marks, profiles)
    complaints = db_service.fetch_all("complaints", order_by="created_at desc")
    names = _names({c["learner_id"] for c in complaints})
    return _render(
        "leadership",
        role,
        role_key=role.value,
        totals=analytics.school_totals(
            db_service.fetch_all("user_roles"),
            marks,
            db_service.count("registrations", {"status": "pending"}),
        ),
        grade_stats=stats,
        grades_below=analytics.grades_below(stats),
        subject_performance=analytics.subject_performance(marks),
        complaints=complaints,
        complaint_names=names,
        meetings=db_service.fetch_all("meetings", order_by="meeting_date desc"),
        announcements=db_service.fetch_all("announcements", order_by="created_at desc"),
    )


def _leadership_endpoint() -> str:
    return "dashboards.principal" if current_principal().role is Role.PRINCIPAL else "dashboards.deputy_principal"


@bp.get("/principal")
@role_required(Role.PRINCIPAL)
def principal():
    return _leadership(Role.PRINCIPAL)


@bp.get("/deputy-principal")
@role_required(Role.DEPUTY_PRINCIPAL)
def deputy_principal():
    return _leadership(Role.DEPUTY_PRINCIPAL)


@bp.post("/complaints/<int:complaint_id>/respond")
@role_required(*LEADERSHIP)
def respond_complaint(complaint_id: int):
    response = (request.form.get("response") or "").strip()
    if not response:
        return _back(_leadership_endpoint(), "Please enter a response.", "error")
    try:
        changed = db_service.update(
            "complaints",
            {"response": response, "status": "resolved", "responded_by": current_principal().account_id},
            {"id": complaint_id},
        )
    except PortalError as e:
        return _back(_leadership_endpoint(), e.message, "error")
    if not changed:
        abort(404)
    return _back(_leadership_endpoint(), "The complaint has been resolved.")


@bp.post("/announcements")
@role_required(*LEADERSHIP)
def post_announcement():
    form = _form("title", "content", "type", "target_audience", "expires_at")
    if not form["title"] or not form["content"]:
        return _back(_leadership_endpoint(), "Title and message are required.", "error")
    if form["target_audience"] not in ("all", "learners", "staff"):
        form["target_audience"] = "all"
    try:
        db_service.insert(
            "announcements",
            {
                **form,
                "type": form["type"] or "announcement",
                "expires_at": form["expires_at"] or None,
                "created_by": current_principal().account_id,
            },
        )
    except PortalError as e:
        return _back(_leadership_endpoint(), e.message, "error")
    return _back(_leadership_endpoint(), "Announcement posted.")


@bp.post("/meetings")
@role_required(*LEADERSHIP)
def schedule_meeting():
    form = _form("title", "meeting_date", "attendees", "agenda")
    if not form["title"] or not form["meeting_date"]:
        return _back(_leadership_endpoint(), "Title and date are required.", "error")
    try:
        db_service.insert(
            "meetings",
            {**{k: v or None for k, v in form.items()}, "created_by": current_principal().account_id},
        )
    except PortalError as e:
        return _back(_leadership_endpoint(), e.message, "error")
    return _back(_leadership_endpoint(), "Meeting scheduled.")


@bp.post("/meetings/<int:meeting_id>/minutes")
@role_required(*LEADERSHIP)
def save_minutes(meeting_id: int):
    try:
        changed = db_service.update(
            "meetings",
            {"minutes": (request.form.get("minutes") or "").strip(), "status": "completed"},
            {"id": meeting_id},
        )
    except PortalError as e:
        return _back(_leadership_endpoint(), e.message, "error")
    if not changed:
        abort(404)
    return _back(_leadership_endpoint(), "Minutes saved.")


# ---------------------------------------------------------------------------
# admin


@bp.get("/admin")
@role_required(Role.ADMIN)
def admin():
    status = (request.args.get("status") or "pending").strip()
    where = {"status": status} if status in ("pending", "approved", "declined") else None
    registrations = db_service.fetch_all("registrations", where, order_by="created_at desc")
    for r in registrations:
        r["electives"] = json.loads(r["elective_subjects"]) if r["elective_subjects"] else []
        r["role_label"] = ROLE_LABELS.get(Role.parse(r["role"]), r["role"])
    return _render(
        "admin",
        Role.ADMIN,
        status=status,
        registrations=registrations,
        counts={s: db_service.count("registrations", {"status": s}) for s in ("pending", "approved", "declined")},
        timetables=db_service.fetch_all("timetables", order_by="created_at desc"),
        email_logs=db_service.fetch_all("email_logs", order_by="created_at desc", limit=20),
        grades=GRADES,
    )


@bp.post("/admin/registrations/<int:registration_id>")
@role_required(Role.ADMIN)
def admin_review(registration_id: int):
    decision = (request.form.get("decision") or "").strip()
    try:
        reg = registration_service.review_registration(
            registration_id,
            decision,
            current_principal().account_id,
            (request.form.get("admin_notes") or "").strip() or None,
        )
    except PortalError as e:
        return _back("dashboards.admin", e.message, "error")
    return _back("dashboards.admin", f"{reg['first_name']} {reg['last_name']} has been {decision}.")


def _bulk_recipients(group: str) -> list[str]:
    if group == "custom":
        raw = request.form.get("recipients") or ""
        return [r.strip() for r in raw.replace(";", ",").split(",") if r.strip()]
    if group == "learners":
        ids = _users_with_role("learner")
    elif group == "staff":
        ids = [r["user_id"] for r in db_service.fetch_all("user_roles") if r["role"] != "learner"]
    else:
        ids = None
    where = {"id": ids} if ids is not None else None
    return [a["email"] for a in db_service.fetch_all("accounts", where)]


@bp.post("/admin/email")
@role_required(Role.ADMIN)
def admin_bulk_email():
    principal = current_principal()
    try:
        result = notify_service.invoke(
            "send-bulk-email",
            {
                "recipients": _bulk_recipients((request.form.get("group") or "all").strip()),
                "subject": request.form.get("subject"),
                "body": request.form.get("body"),
                "sender_name": principal.display_name,
                "sender_id": principal.account_id,
            },
        )
    except PortalError as e:
        return _back("dashboards.admin", e.message, "error")
    return _back("dashboards.admin", result["message"])


# ---------------------------------------------------------------------------
# finance


@bp.get("/finance")
@role_required(Role.FINANCE)
def finance():
    learners = _learner_profiles()
    statements = db_service.fetch_all("statement_requests", order_by="created_at desc")
    subscriptions = db_service.fetch_all("subscriptions", order_by="created_at desc")
    return _render(
        "finance",
        Role.FINANCE,
        learners=learners,
        names={p["user_id"]: f"{p['first_name']} {p['last_name']}" for p in learners},
        statements=statements,
        balances=db_service.fetch_all("student_balances", order_by="updated_at desc"),
        subscriptions=subscriptions,
        pending_statements=sum(1 for s in statements if s["status"] == "pending"),
        pending_subscriptions=sum(1 for s in subscriptions if s["status"] == "pending"),
    )


@bp.post("/finance/statements/<int:request_id>")
@role_required(Role.FINANCE)
def finance_fulfil_statement(request_id: int):
    statement = db_service.fetch_one("statement_requests", {"id": request_id})
    if statement is None:
        abort(404)
    try:
        url = _upload("uploads", f"statements/{statement['learner_id']}", "statement")
        db_service.update("statement_requests", {"status": "fulfilled", "statement_url": url}, {"id": request_id})
        db_service.insert(
            "notifications",
            {
                "user_id": statement["learner_id"],
                "title": "Your Financial Statement is Ready",
                "message": "The finance office has uploaded your statement.",
                "type": "statement",
                "link_url": url,
                "link_label": "Download Statement",
            },
        )
    except PortalError as e:
        return _back("dashboards.finance", e.message, "error")
    return _back("dashboards.finance", "The statement has been uploaded and the learner has been notified.")


@bp.post("/finance/balances")
@role_required(Role.FINANCE)
def finance_set_balance():
    learner_id = _int(request.form.get("learner_id"))
    amount = _float(request.form.get("amount_owed"))
    if learner_id is None or amount is None:
        return _back("dashboards.finance", "Please choose a learner and enter an amount.", "error")
    values = {
        "amount_owed": amount,
        "notes": (request.form.get("notes") or "").strip() or None,
        "updated_by": current_principal().account_id,
    }
    try:
        if db_service.update("student_balances", values, {"learner_id": learner_id}):
            message = "Balance updated."
        else:
            db_service.insert("student_balances", {**values, "learner_id": learner_id})
            message = "Balance created."
    except PortalError as e:
        return _back("dashboards.finance", e.message, "error")
    return _back("dashboards.finance", message)


@bp.post("/finance/subscriptions/<int:subscription_id>")
@role_required(Role.FINANCE)
def finance_verify_subscription(subscription_id: int):
    status = (request.form.get("status") or "").strip()
    if status not in ("verified", "rejected"):
        return _back("dashboards.finance", "Invalid status.", "error")
    try:
        changed = db_service.update(
            "subscriptions",
            {"status": status, "verified_by": current_principal().account_id},
            {"id": subscription_id},
        )
    except PortalError as e:
        return _back("dashboards.finance", e.message, "error")
    if not changed:
        abort(404)
    return _back("dashboards.finance", f"Subscription {status}.")


# ---------------------------------------------------------------------------
# librarian


@bp.get("/librarian")
@role_required(Role.LIBRARIAN)
def librarian():
    return _render(
        "librarian",
        Role.LIBRARIAN,
        materials=db_service.fetch_all("library_materials", order_by="created_at desc"),
        subjects=SUBJECTS,
        grades=GRADES,
        departments=DEPARTMENTS,
    )


@bp.post("/librarian/materials")
@role_required(Role.LIBRARIAN)
def librarian_upload():
    me = current_principal().account_id
    form = _form("title", "description", "type", "subject", "grade")
    upload = request.files.get("file")
    if not form["title"] or not form["type"] or upload is None or not (upload.filename or "").strip():
        return _back("dashboards.librarian", "Please fill in all required fields.", "error")
    try:
        stored = storage_service.upload(
            "library-materials", f"{me}/{storage_service.object_name(form['type'], upload.filename)}", upload
        )
        db_service.insert(
            "library_materials",
            {
                **{k: v or None for k, v in form.items()},
                "file_url": storage_service.get_public_url("library-materials", stored),
                "storage_path": stored,
                "uploaded_by": me,
            },
        )
    except PortalError as e:
        return _back("dashboards.librarian", e.message, "error")
    return _back("dashboards.librarian", f"{form['title']} has been added to the library.")


@bp.post("/librarian/materials/<int:material_id>/delete")
@role_required(Role.LIBRARIAN)
def librarian_delete(material_id: int):
    material = db_service.fetch_one("library_materials", {"id": material_id})
    if material is None:
        abort(404)
    try:
        db_service.delete("library_materials", {"id": material_id})
    except RecordStoreError as e:
        return _back("dashboards.librarian", e.message, "error")
    if material["storage_path"]:
        storage_service.remove("library-materials", material["storage_path"])
    return _back("dashboards.librarian", "Deleted.")
