"""Attendance session engine.

A classroom moves through ``no active session -> active -> ended`` and may
start a new session once the previous one has ended. Students record their
own presence while a session is active. The invariants (one active session per
classroom, one record per student per session) are enforced by the database,
see ``database.SCHEMA``.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
import logging

import database
from classrooms import is_member, require_admin
from exceptions import Conflict, Forbidden, InvalidState, NotFound
from models import Role, SessionStatus

logger = logging.getLogger(__name__)


def utc_day_bounds(day: date):
    """Return the [start, end) datetimes of a calendar day in UTC."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _require_session(session_id: int) -> dict:
    session = database.get_session(session_id)
    if not session:
        raise NotFound("Attendance session not found")
    return session


def _require_admin_or_member(classroom_id: int, user_id: int):
    user = database.get_user_by_id(user_id)
    if user and user["role"] == Role.ADMIN:
        return
    if not is_member(classroom_id, user_id):
        logger.warning(f"User {user_id} denied access to attendance of classroom {classroom_id}")
        raise Forbidden("Not authorized to view attendance for this classroom")


def start_session(classroom_id: int, requester_id: int) -> dict:
    require_admin(requester_id, "Only admins can start attendance sessions")
    if not database.get_classroom(classroom_id):
        raise NotFound("Classroom not found")

    session_id = database.insert_session(classroom_id, requester_id)
    logger.info(f"Attendance session {session_id} started for classroom {classroom_id} by user {requester_id}")
    return database.get_session(session_id)


def end_session(session_id: int, requester_id: int) -> dict:
    require_admin(requester_id, "Only admins can end attendance sessions")
    session = _require_session(session_id)
    if session["status"] != SessionStatus.ACTIVE or not database.close_session(session_id):
        raise Conflict("Attendance session has already ended")

    logger.info(f"Attendance session {session_id} ended by user {requester_id}")
    return database.get_session(session_id)


def mark_present(session_id: int, student_id: int) -> dict:
    """Record the calling student as present in an active session.

    A second mark by the same student is rejected with Conflict.
    """
    session = _require_session(session_id)
    if session["status"] != SessionStatus.ACTIVE:
        raise InvalidState("Attendance session has ended")

    student = database.get_user_by_id(student_id)
    if not student or student["role"] != Role.STUDENT:
        raise Forbidden("Only students can mark attendance")
    if not is_member(session["classroom"], student_id):
        raise Forbidden("Not a member of this classroom")

    try:
        record_id = database.insert_record(session_id, student_id)
    except Conflict:
        logger.warning(f"Student {student_id} already marked present in session {session_id}")
        raise
    logger.info(f"Student {student_id} marked present in session {session_id}")
    return database.get_record(record_id)


def get_active_session(classroom_id: int) -> Optional[dict]:
    """Return the active session of a classroom, or None when there is none."""
    return database.get_active_session(classroom_id)


def list_session_history(classroom_id: int, requester_id: int, on: Optional[date] = None) -> list:
    _require_admin_or_member(classroom_id, requester_id)
    if not database.get_classroom(classroom_id):
        raise NotFound("Classroom not found")

    if on:
        start, end = utc_day_bounds(on)
        return database.list_sessions(classroom_id, start, end)
    return database.list_sessions(classroom_id)


def get_session(session_id: int, requester_id: int) -> dict:
    session = _require_session(session_id)
    _require_admin_or_member(session["classroom"], requester_id)
    return session


# ----------------------
# Direct-mark attendance (deprecated)
# ----------------------

def mark_attendance(classroom_id: int, user_id: int, status: str) -> dict:
    """Mark any member with any status, without sessions or a double-mark guard."""
    if not is_member(classroom_id, user_id):
        raise NotFound("Classroom not found")
    return database.record_attendance(classroom_id, user_id, status)


def list_attendance(classroom_id: int, user_id: int) -> list:
    if not is_member(classroom_id, user_id):
        raise NotFound("Classroom not found")
    return database.get_class_attendance(classroom_id)
