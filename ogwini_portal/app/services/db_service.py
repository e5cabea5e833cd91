from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from flask import Flask, current_app, g

from ..errors import RecordStoreError


logger = logging.getLogger(__name__)

_ORDER_RE = re.compile(r"([a-z_]+)(?:\s+(asc|desc))?", re.IGNORECASE)


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")


def connect(db_path: Path | str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        g.db = connect(current_app.config["DB_PATH"])
    return g.db


def close_db(exception: Exception | None = None) -> None:
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def init_app(app: Flask) -> None:
    app.teardown_appcontext(close_db)


SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    requested_role TEXT NOT NULL,
    phone TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS profiles (
    user_id INTEGER PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    id_number TEXT,
    grade TEXT,
    class TEXT,
    address TEXT,
    department TEXT,
    elective_subjects TEXT,
    parent_name TEXT,
    parent_phone TEXT,
    parent_email TEXT,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id INTEGER PRIMARY KEY,
    role TEXT NOT NULL,
    FOREIGN KEY(user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS registrations (
    id INTEGER PRIMARY KEY,
    user_id INTEGER UNIQUE,
    role TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    email TEXT NOT NULL,
    id_number TEXT,
    date_of_birth TEXT,
    disability TEXT,
    phone TEXT,
    address TEXT,
    next_of_kin_name TEXT,
    next_of_kin_phone TEXT,
    grade TEXT,
    class TEXT,
    elective_subjects TEXT,
    previous_school TEXT,
    parent_name TEXT,
    parent_phone TEXT,
    parent_email TEXT,
    department TEXT,
    grade_taught TEXT,
    subjects TEXT,
    id_document_url TEXT,
    proof_of_address_url TEXT,
    report_url TEXT,
    payment_proof_url TEXT,
    qualification_url TEXT,
    parent_id_document_url TEXT,
    admin_notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(user_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS registration_drafts (
    token TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS announcements (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'announcement',
    target_audience TEXT NOT NULL DEFAULT 'all',
    target_grades TEXT,
    created_by INTEGER,
    expires_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    type TEXT NOT NULL,
    link_url TEXT,
    link_label TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS complaints (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    grade TEXT NOT NULL,
    subject TEXT,
    complaint_text TEXT NOT NULL,
    is_anonymous INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    response TEXT,
    responded_by INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS marks (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    subject TEXT NOT NULL,
    assessment_name TEXT NOT NULL,
    assessment_type TEXT NOT NULL,
    marks_obtained REAL NOT NULL,
    total_marks REAL NOT NULL,
    term TEXT,
    year INTEGER,
    feedback TEXT,
    recorded_by INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS learning_materials (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL,
    subject TEXT,
    grade TEXT,
    week TEXT,
    due_date TEXT,
    file_url TEXT NOT NULL,
    uploaded_by INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS homework_submissions (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    material_id INTEGER,
    file_url TEXT NOT NULL,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'submitted',
    marks_obtained REAL,
    total_marks REAL,
    teacher_feedback TEXT,
    marked_by INTEGER,
    marked_file_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS quizzes (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    subject TEXT NOT NULL,
    grade TEXT NOT NULL,
    duration_minutes INTEGER,
    status TEXT NOT NULL DEFAULT 'published',
    created_by INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS quiz_questions (
    id INTEGER PRIMARY KEY,
    quiz_id INTEGER NOT NULL,
    question_text TEXT NOT NULL,
    question_type TEXT NOT NULL DEFAULT 'short_answer',
    options TEXT,
    correct_answer TEXT NOT NULL,
    marks INTEGER,
    order_num INTEGER,
    FOREIGN KEY(quiz_id) REFERENCES quizzes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS quiz_submissions (
    id INTEGER PRIMARY KEY,
    quiz_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    answers TEXT NOT NULL,
    score INTEGER,
    total_marks INTEGER,
    submitted_at TEXT NOT NULL,
    UNIQUE(quiz_id, user_id),
    FOREIGN KEY(quiz_id) REFERENCES quizzes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS teacher_ratings (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    teacher_id INTEGER NOT NULL,
    subject TEXT NOT NULL,
    rating INTEGER NOT NULL,
    feedback TEXT,
    is_anonymous INTEGER NOT NULL DEFAULT 1,
    term TEXT,
    year INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS departments (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    code TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    code TEXT NOT NULL,
    department_id INTEGER,
    created_at TEXT NOT NULL,
    FOREIGN KEY(department_id) REFERENCES departments(id)
);

CREATE TABLE IF NOT EXISTS department_heads (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    department_id INTEGER NOT NULL,
    assigned_at TEXT NOT NULL,
    UNIQUE(user_id, department_id),
    FOREIGN KEY(department_id) REFERENCES departments(id)
);

CREATE TABLE IF NOT EXISTS curriculum_policies (
    id INTEGER PRIMARY KEY,
    department_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    policy_document_url TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    created_by INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(department_id) REFERENCES departments(id)
);

CREATE TABLE IF NOT EXISTS syllabi (
    id INTEGER PRIMARY KEY,
    department_id INTEGER,
    subject TEXT NOT NULL,
    grade TEXT,
    title TEXT NOT NULL,
    description TEXT,
    file_url TEXT NOT NULL,
    year INTEGER,
    uploaded_by INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS timetables (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    timetable_type TEXT NOT NULL,
    grade TEXT NOT NULL,
    class TEXT,
    file_url TEXT NOT NULL,
    uploaded_by INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS library_materials (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL,
    subject TEXT,
    grade TEXT,
    file_url TEXT NOT NULL,
    storage_path TEXT,
    uploaded_by INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS statement_requests (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    notes TEXT,
    statement_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS student_balances (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL UNIQUE,
    amount_owed REAL NOT NULL,
    last_payment_date TEXT,
    notes TEXT,
    updated_by INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY,
    learner_id INTEGER NOT NULL,
    month TEXT NOT NULL,
    year INTEGER NOT NULL,
    amount REAL NOT NULL,
    payment_proof_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    verified_by INTEGER,
    created_at TEXT NOT NULL,
    UNIQUE(learner_id, month, year)
);

CREATE TABLE IF NOT EXISTS merchandise_orders (
    id INTEGER PRIMARY KEY,
    reference TEXT NOT NULL UNIQUE,
    learner_id INTEGER,
    full_name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT NOT NULL,
    student_number TEXT,
    items TEXT NOT NULL,
    total_amount REAL NOT NULL,
    contact_message TEXT,
    payment_proof_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS email_logs (
    id INTEGER PRIMARY KEY,
    recipients TEXT NOT NULL,
    subject TEXT NOT NULL,
    body TEXT NOT NULL,
    status TEXT NOT NULL,
    sender_id INTEGER,
    error TEXT,
    sent_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS meetings (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    meeting_date TEXT NOT NULL,
    attendees TEXT,
    agenda TEXT,
    minutes TEXT,
    status TEXT NOT NULL DEFAULT 'scheduled',
    created_by INTEGER,
    created_at TEXT NOT NULL
);
"""

DEFAULT_DEPARTMENTS = (
    ("Languages", "LANG", ("English", "isiZulu", "Afrikaans")),
    ("Mathematics", "MATH", ("Mathematics", "Mathematical Literacy")),
    ("Sciences", "SCI", ("Physical Sciences", "Life Sciences")),
    ("Commerce", "COM", ("Accounting", "Business Studies", "Economics")),
    ("Humanities", "HUM", ("Geography", "History", "Life Orientation")),
    (
        "Technology",
        "TECH",
        (
            "Technical Drawing",
            "Engineering Graphics and Design",
            "Civil Technology",
            "Electrical Technology",
            "Mechanical Technology",
            "Computer Applications Technology",
            "Information Technology",
        ),
    ),
)


def init_db(db_path: Path | None = None) -> None:
    path = db_path or current_app.config["DB_PATH"]
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    db = connect(path)
    try:
        db.executescript(SCHEMA)

        departments_count = db.execute("SELECT COUNT(*) FROM departments").fetchone()[0]
        if departments_count == 0:
            now = now_iso()
            for name, code, subject_names in DEFAULT_DEPARTMENTS:
                cur = db.execute(
                    "INSERT INTO departments (name, code, created_at) VALUES (?, ?, ?)",
                    (name, code, now),
                )
                department_id = cur.lastrowid
                db.executemany(
                    "INSERT INTO subjects (name, code, department_id, created_at) VALUES (?, ?, ?, ?)",
                    [(s, s[:4].upper(), department_id, now) for s in subject_names],
                )
        db.commit()
    finally:
        db.close()


def table_columns(db: sqlite3.Connection, table: str) -> set[str]:
    return {r[1] for r in db.execute(f"PRAGMA table_info({table})").fetchall()}


def _checked_table(db: sqlite3.Connection, table: str) -> set[str]:
    cols = table_columns(db, table) if re.fullmatch(r"[a-z_]+", table) else set()
    if not cols:
        raise RecordStoreError(f"Unknown table: {table}")
    return cols


def _where_sql(cols: set[str], where: dict | None) -> tuple[str, list]:
    if not where:
        return "", []
    parts = []
    params: list = []
    for key, value in where.items():
        if key not in cols:
            raise RecordStoreError(f"Unknown column: {key}")
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                parts.append("0")
                continue
            parts.append(f"{key} IN ({', '.join(['?'] * len(values))})")
            params.extend(values)
        elif value is None:
            parts.append(f"{key} IS NULL")
        else:
            parts.append(f"{key} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(parts), params


def _order_sql(cols: set[str], order_by: str | None) -> str:
    if not order_by:
        return ""
    clauses = []
    for chunk in order_by.split(","):
        m = _ORDER_RE.fullmatch(chunk.strip())
        if not m or m.group(1) not in cols:
            raise RecordStoreError(f"Invalid ordering: {order_by}")
        clauses.append(f"{m.group(1)} {(m.group(2) or 'ASC').upper()}")
    return " ORDER BY " + ", ".join(clauses)


def _run(db: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
    try:
        return db.execute(sql, list(params))
    except sqlite3.Error as e:
        logger.exception("record store call failed: %s", sql.split("(")[0].strip())
        raise RecordStoreError(f"Database error: {e}") from e


def fetch_all(
    table: str,
    where: dict | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    db: sqlite3.Connection | None = None,
) -> list[dict]:
    db = db or get_db()
    cols = _checked_table(db, table)
    where_sql, params = _where_sql(cols, where)
    sql = f"SELECT * FROM {table}{where_sql}{_order_sql(cols, order_by)}"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return [dict(r) for r in _run(db, sql, params).fetchall()]


def fetch_one(table: str, where: dict, db: sqlite3.Connection | None = None) -> dict | None:
    rows = fetch_all(table, where, limit=1, db=db)
    return rows[0] if rows else None


def count(table: str, where: dict | None = None, db: sqlite3.Connection | None = None) -> int:
    db = db or get_db()
    cols = _checked_table(db, table)
    where_sql, params = _where_sql(cols, where)
    return int(_run(db, f"SELECT COUNT(*) FROM {table}{where_sql}", params).fetchone()[0])


def insert(table: str, row: dict, db: sqlite3.Connection | None = None, commit: bool = True) -> int:
    db = db or get_db()
    cols = _checked_table(db, table)
    payload = {k: v for k, v in row.items() if k in cols}
    if "created_at" in cols and "created_at" not in payload:
        payload["created_at"] = now_iso()
    if "updated_at" in cols and "updated_at" not in payload:
        payload["updated_at"] = payload.get("created_at") or now_iso()
    keys = list(payload.keys())
    placeholders = ", ".join(["?"] * len(keys))
    cur = _run(db, f"INSERT INTO {table} ({', '.join(keys)}) VALUES ({placeholders})", [payload[k] for k in keys])
    if commit:
        db.commit()
    return int(cur.lastrowid)


def update(
    table: str,
    values: dict,
    where: dict,
    db: sqlite3.Connection | None = None,
    commit: bool = True,
) -> int:
    if not where:
        raise RecordStoreError("Refusing to update without a filter.")
    db = db or get_db()
    cols = _checked_table(db, table)
    payload = {k: v for k, v in values.items() if k in cols}
    if "updated_at" in cols and "updated_at" not in payload:
        payload["updated_at"] = now_iso()
    if not payload:
        return 0
    set_sql = ", ".join(f"{k} = ?" for k in payload)
    where_sql, params = _where_sql(cols, where)
    cur = _run(db, f"UPDATE {table} SET {set_sql}{where_sql}", list(payload.values()) + params)
    if commit:
        db.commit()
    return int(cur.rowcount)


def delete(table: str, where: dict, db: sqlite3.Connection | None = None, commit: bool = True) -> int:
    if not where:
        raise RecordStoreError("Refusing to delete without a filter.")
    db = db or get_db()
    cols = _checked_table(db, table)
    where_sql, params = _where_sql(cols, where)
    cur = _run(db, f"DELETE FROM {table}{where_sql}", params)
    if commit:
        db.commit()
    return int(cur.rowcount)


def upsert(table: str, row: dict, conflict: str, db: sqlite3.Connection | None = None, commit: bool = True) -> None:
    db = db or get_db()
    cols = _checked_table(db, table)
    if conflict not in cols:
        raise RecordStoreError(f"Unknown column: {conflict}")
    payload = {k: v for k, v in row.items() if k in cols}
    if "created_at" in cols and "created_at" not in payload:
        payload["created_at"] = now_iso()
    if "updated_at" in cols:
        payload["updated_at"] = now_iso()
    keys = list(payload.keys())
    updates = ", ".join(f"{k} = excluded.{k}" for k in keys if k not in (conflict, "created_at", "id"))
    sql = (
        f"INSERT INTO {table} ({', '.join(keys)}) VALUES ({', '.join(['?'] * len(keys))}) "
        f"ON CONFLICT({conflict}) DO UPDATE SET {updates}"
    )
    _run(db, sql, [payload[k] for k in keys])
    if commit:
        db.commit()
