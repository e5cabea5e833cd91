from __future__ import annotations

from flask import Blueprint, render_template

from ..services import db_service
from ..services.roles import DEPARTMENTS, ELECTIVE_SUBJECTS, GRADES, SUBJECTS


bp = Blueprint("public", __name__)


@bp.get("/")
def home():
    announcements = db_service.fetch_all(
        "announcements",
        {"target_audience": "all"},
        order_by="created_at desc",
        limit=3,
    )
    return render_template(
        "home.html",
        page_title="Welcome",
        active_page="home",
        announcements=announcements,
    )


@bp.get("/about")
def about():
    return render_template("about.html", page_title="About Us", active_page="about")


@bp.get("/academics")
def academics():
    return render_template(
        "academics.html",
        page_title="Academics",
        active_page="academics",
        grades=GRADES,
        departments=DEPARTMENTS,
        subjects=SUBJECTS,
        elective_subjects=ELECTIVE_SUBJECTS,
    )
