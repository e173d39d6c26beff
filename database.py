import sqlite3
from datetime import datetime, timezone
from contextlib import contextmanager
from typing import Optional
import logging

import config
from exceptions import Conflict, InvalidState

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT UNIQUE NOT NULL,
    password TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'student')),
    student_id TEXT,
    enrollment_date DATE,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS classrooms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    join_code TEXT UNIQUE NOT NULL,
    created_by INTEGER NOT NULL REFERENCES users(id),
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS classroom_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    classroom_id INTEGER NOT NULL REFERENCES classrooms(id),
    user_id INTEGER NOT NULL REFERENCES users(id),
    role TEXT NOT NULL CHECK (role IN ('admin', 'student')),
    joined_at TIMESTAMP NOT NULL,
    UNIQUE(classroom_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_classroom_members_user
    ON classroom_members(user_id);

CREATE TABLE IF NOT EXISTS attendance_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    classroom_id INTEGER NOT NULL REFERENCES classrooms(id),
    created_by INTEGER NOT NULL REFERENCES users(id),
    start_time TIMESTAMP NOT NULL,
    end_time TIMESTAMP,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'ended'))
);

-- At most one active session per classroom
CREATE UNIQUE INDEX IF NOT EXISTS idx_attendance_sessions_one_active
    ON attendance_sessions(classroom_id) WHERE status = 'active';

CREATE INDEX IF NOT EXISTS idx_attendance_sessions_classroom_start
    ON attendance_sessions(classroom_id, start_time);

CREATE TRIGGER IF NOT EXISTS attendance_sessions_ended_immutable
BEFORE UPDATE ON attendance_sessions
WHEN OLD.status = 'ended'
BEGIN
    SELECT RAISE(ABORT, 'attendance session has ended');
END;

CREATE TABLE IF NOT EXISTS session_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES attendance_sessions(id),
    student_id INTEGER NOT NULL REFERENCES users(id),
    status TEXT NOT NULL DEFAULT 'present' CHECK (status = 'present'),
    marked_at TIMESTAMP NOT NULL,
    UNIQUE(session_id, student_id)
);

CREATE TRIGGER IF NOT EXISTS session_records_no_update
BEFORE UPDATE ON session_records
BEGIN
    SELECT RAISE(ABORT, 'attendance records are immutable');
END;

CREATE TRIGGER IF NOT EXISTS session_records_no_delete
BEFORE DELETE ON session_records
BEGIN
    SELECT RAISE(ABORT, 'attendance records are immutable');
END;

-- Direct-mark records of the deprecated per-classroom API
CREATE TABLE IF NOT EXISTS attendance (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    classroom_id INTEGER NOT NULL REFERENCES classrooms(id),
    student_id INTEGER NOT NULL REFERENCES users(id),
    status TEXT NOT NULL CHECK (status IN ('present', 'absent', 'late')),
    created_at TIMESTAMP NOT NULL
);
"""

CLASSROOM_SELECT = """
    SELECT c.id, c.name, c.description, c.join_code, c.created_by, c.created_at,
           u.email AS creator_email
    FROM classrooms c
    JOIN users u ON u.id = c.created_by
"""

SESSION_SELECT = """
    SELECT s.id, s.classroom_id, s.created_by, s.start_time, s.end_time, s.status,
           u.email AS creator_email
    FROM attendance_sessions s
    JOIN users u ON u.id = s.created_by
"""


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize a timestamp so that stored values sort chronologically as text."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


@contextmanager
def get_db():
    conn = sqlite3.connect(config.DATABASE_PATH, timeout=config.DATABASE_TIMEOUT, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction():
    """Run a unit of work holding the database write lock from the first statement.

    BEGIN IMMEDIATE serializes concurrent writers, so a check followed by an
    insert inside one transaction cannot interleave with another request.
    """
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")


def init_db():
    """Initialize the database with necessary tables, indexes and triggers."""
    with get_db() as conn:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)
    logger.info(f"Database initialized at {config.DATABASE_PATH}")


# ----------------------
# Users
# ----------------------

def _user_from_row(row) -> Optional[dict]:
    if row is None:
        return None
    return {
        "id": row["id"],
        "email": row["email"],
        "password": row["password"],
        "role": row["role"],
        "student_id": row["student_id"],
        "enrollment_date": row["enrollment_date"],
        "created_at": row["created_at"],
    }


def add_user(email, password, role, student_id=None, enrollment_date=None):
    """Insert a user and return its id. The email column is unique."""
    try:
        with transaction() as conn:
            c = conn.execute("""
                INSERT INTO users (email, password, role, student_id, enrollment_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                email,
                password,
                role,
                student_id,
                enrollment_date.isoformat() if enrollment_date else None,
                to_iso(now_utc()),
            ))
            return c.lastrowid
    except sqlite3.IntegrityError as e:
        logger.warning(f"Registration rejected, email already in use: {email}")
        raise Conflict("User already exists") from e


def get_user_by_email(email: str):
    """Get user data by email."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
    return _user_from_row(row)


def get_user_by_id(user_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return _user_from_row(row)


# ----------------------
# Classrooms
# ----------------------

def _classroom_from_row(conn, row) -> Optional[dict]:
    if row is None:
        return None
    members = conn.execute("""
        SELECT m.user_id, u.email, m.role
        FROM classroom_members m
        JOIN users u ON u.id = m.user_id
        WHERE m.classroom_id = ?
        ORDER BY m.id
    """, (row["id"],)).fetchall()
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "joinCode": row["join_code"],
        "createdBy": {"id": row["created_by"], "email": row["creator_email"]},
        "members": [
            {"user": member["user_id"], "email": member["email"], "role": member["role"]}
            for member in members
        ],
        "createdAt": row["created_at"],
    }


def insert_classroom(name, description, creator_id, join_code):
    """Insert a classroom and enroll its creator as admin in one transaction.

    Raises Conflict when the join code is already taken.
    """
    created_at = to_iso(now_utc())
    try:
        with transaction() as conn:
            c = conn.execute("""
                INSERT INTO classrooms (name, description, join_code, created_by, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (name, description, join_code, creator_id, created_at))
            classroom_id = c.lastrowid
            conn.execute("""
                INSERT INTO classroom_members (classroom_id, user_id, role, joined_at)
                VALUES (?, ?, 'admin', ?)
            """, (classroom_id, creator_id, created_at))
            return classroom_id
    except sqlite3.IntegrityError as e:
        raise Conflict("Join code already in use") from e


def get_classroom(classroom_id: int):
    with get_db() as conn:
        row = conn.execute(CLASSROOM_SELECT + " WHERE c.id = ?", (classroom_id,)).fetchone()
        return _classroom_from_row(conn, row)


def get_classroom_by_join_code(join_code: str):
    with get_db() as conn:
        row = conn.execute(CLASSROOM_SELECT + " WHERE c.join_code = ?", (join_code,)).fetchone()
        return _classroom_from_row(conn, row)


def list_classrooms_for_user(user_id: int):
    """Get every classroom the user is a member of."""
    with get_db() as conn:
        rows = conn.execute(CLASSROOM_SELECT + """
            WHERE c.id IN (SELECT classroom_id FROM classroom_members WHERE user_id = ?)
            ORDER BY c.id
        """, (user_id,)).fetchall()
        return [_classroom_from_row(conn, row) for row in rows]


def is_member(classroom_id: int, user_id: int) -> bool:
    with get_db() as conn:
        row = conn.execute("""
            SELECT 1 FROM classroom_members WHERE classroom_id = ? AND user_id = ?
        """, (classroom_id, user_id)).fetchone()
    return row is not None


def add_member(classroom_id: int, user_id: int, role: str):
    """Append a member. (classroom_id, user_id) is unique."""
    try:
        with transaction() as conn:
            conn.execute("""
                INSERT INTO classroom_members (classroom_id, user_id, role, joined_at)
                VALUES (?, ?, ?, ?)
            """, (classroom_id, user_id, role, to_iso(now_utc())))
    except sqlite3.IntegrityError as e:
        raise Conflict("Already a member of this classroom") from e


# ----------------------
# Attendance sessions
# ----------------------

def _record_from_row(row) -> dict:
    return {
        "id": row["id"],
        "session": row["session_id"],
        "student": {
            "id": row["student_id"],
            "email": row["email"],
            "studentId": row["student_number"],
        },
        "status": row["status"],
        "markedAt": row["marked_at"],
    }


def _session_from_row(conn, row) -> Optional[dict]:
    if row is None:
        return None
    records = conn.execute("""
        SELECT r.id, r.session_id, r.student_id, r.status, r.marked_at,
               u.email, u.student_id AS student_number
        FROM session_records r
        JOIN users u ON u.id = r.student_id
        WHERE r.session_id = ?
        ORDER BY r.marked_at, r.id
    """, (row["id"],)).fetchall()
    return {
        "id": row["id"],
        "classroom": row["classroom_id"],
        "startTime": row["start_time"],
        "endTime": row["end_time"],
        "status": row["status"],
        "createdBy": {"id": row["created_by"], "email": row["creator_email"]},
        "records": [_record_from_row(record) for record in records],
    }


def insert_session(classroom_id: int, created_by: int):
    """Open an active session. Raises Conflict if the classroom already has one."""
    try:
        with transaction() as conn:
            active = conn.execute("""
                SELECT id FROM attendance_sessions WHERE classroom_id = ? AND status = 'active'
            """, (classroom_id,)).fetchone()
            if active:
                raise Conflict("An attendance session is already active for this classroom")
            c = conn.execute("""
                INSERT INTO attendance_sessions (classroom_id, created_by, start_time, status)
                VALUES (?, ?, ?, 'active')
            """, (classroom_id, created_by, to_iso(now_utc())))
            return c.lastrowid
    except sqlite3.IntegrityError as e:
        raise Conflict("An attendance session is already active for this classroom") from e


def close_session(session_id: int) -> bool:
    """Move an active session to ended. Returns False if it was not active."""
    with transaction() as conn:
        c = conn.execute("""
            UPDATE attendance_sessions
            SET status = 'ended', end_time = ?
            WHERE id = ? AND status = 'active'
        """, (to_iso(now_utc()), session_id))
        return c.rowcount == 1


def get_session(session_id: int):
    with get_db() as conn:
        row = conn.execute(SESSION_SELECT + " WHERE s.id = ?", (session_id,)).fetchone()
        return _session_from_row(conn, row)


def get_active_session(classroom_id: int):
    with get_db() as conn:
        row = conn.execute(SESSION_SELECT + """
            WHERE s.classroom_id = ? AND s.status = 'active'
        """, (classroom_id,)).fetchone()
        return _session_from_row(conn, row)


def list_sessions(classroom_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None):
    """Get sessions of a classroom, newest first, optionally limited to start <= startTime < end."""
    query = SESSION_SELECT + " WHERE s.classroom_id = ?"
    params = [classroom_id]
    if start:
        query += " AND s.start_time >= ?"
        params.append(to_iso(start))
    if end:
        query += " AND s.start_time < ?"
        params.append(to_iso(end))
    query += " ORDER BY s.start_time DESC, s.id DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_session_from_row(conn, row) for row in rows]


def insert_record(session_id: int, student_id: int):
    """Record a student as present.

    The session status is re-read inside the write transaction so a record can
    never land in a session that was ended concurrently.
    """
    try:
        with transaction() as conn:
            session = conn.execute(
                "SELECT status FROM attendance_sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if session is None or session["status"] != "active":
                raise InvalidState("Attendance session has ended")
            c = conn.execute("""
                INSERT INTO session_records (session_id, student_id, status, marked_at)
                VALUES (?, ?, 'present', ?)
            """, (session_id, student_id, to_iso(now_utc())))
            return c.lastrowid
    except sqlite3.IntegrityError as e:
        raise Conflict("Attendance already marked for this session") from e


def get_record(record_id: int):
    with get_db() as conn:
        row = conn.execute("""
            SELECT r.id, r.session_id, r.student_id, r.status, r.marked_at,
                   u.email, u.student_id AS student_number
            FROM session_records r
            JOIN users u ON u.id = r.student_id
            WHERE r.id = ?
        """, (record_id,)).fetchone()
    return _record_from_row(row) if row else None


# ----------------------
# Direct-mark attendance (deprecated)
# ----------------------

def _attendance_from_row(row) -> dict:
    return {
        "id": row["id"],
        "classroom": row["classroom_id"],
        "student": {"id": row["student_id"], "email": row["email"]},
        "status": row["status"],
        "createdAt": row["created_at"],
    }


def record_attendance(classroom_id: int, student_id: int, status: str):
    """Insert a direct-mark attendance row and return it."""
    with transaction() as conn:
        c = conn.execute("""
            INSERT INTO attendance (classroom_id, student_id, status, created_at)
            VALUES (?, ?, ?, ?)
        """, (classroom_id, student_id, status, to_iso(now_utc())))
        row = conn.execute("""
            SELECT a.id, a.classroom_id, a.student_id, a.status, a.created_at, u.email
            FROM attendance a
            JOIN users u ON u.id = a.student_id
            WHERE a.id = ?
        """, (c.lastrowid,)).fetchone()
    logger.info(f"Attendance recorded for student {student_id} in classroom {classroom_id} as {status}")
    return _attendance_from_row(row)


def get_class_attendance(classroom_id: int):
    with get_db() as conn:
        rows = conn.execute("""
            SELECT a.id, a.classroom_id, a.student_id, a.status, a.created_at, u.email
            FROM attendance a
            JOIN users u ON u.id = a.student_id
            WHERE a.classroom_id = ?
            ORDER BY a.created_at DESC, a.id DESC
        """, (classroom_id,)).fetchall()
    return [_attendance_from_row(row) for row in rows]
