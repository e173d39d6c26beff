"""Classroom registry: creation, membership and join codes."""
import logging
import secrets
import string

import config
import database
from exceptions import Conflict, Forbidden, InvalidInput, NotFound
from models import Role

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code(length: int = config.JOIN_CODE_LENGTH) -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def require_admin(user_id: int, message: str = "Not authorized") -> dict:
    """Return the user if it exists and is an admin, raise Forbidden otherwise."""
    user = database.get_user_by_id(user_id)
    if not user or user["role"] != Role.ADMIN:
        logger.warning(f"User {user_id} denied admin action: {message}")
        raise Forbidden(message)
    return user


def is_member(classroom_id: int, user_id: int) -> bool:
    return database.is_member(classroom_id, user_id)


def create_classroom(creator_id: int, name: str, description=None) -> dict:
    """Create a classroom owned by an admin, who is enrolled as its first member.

    Join code collisions are detected by the unique constraint on insert and
    retried with a fresh code up to JOIN_CODE_MAX_ATTEMPTS times.
    """
    require_admin(creator_id, "Only admins can create classrooms")

    name = (name or "").strip()
    if not name:
        raise InvalidInput("Classroom name is required")
    description = (description or "").strip() or None

    for attempt in range(1, config.JOIN_CODE_MAX_ATTEMPTS + 1):
        join_code = generate_join_code()
        try:
            classroom_id = database.insert_classroom(name, description, creator_id, join_code)
        except Conflict:
            logger.warning(f"Join code collision on attempt {attempt}: {join_code}")
            continue
        logger.info(f"Classroom {classroom_id} '{name}' created by user {creator_id}")
        return database.get_classroom(classroom_id)

    raise Conflict("Could not generate a unique join code, please try again")


def list_classrooms_for_user(user_id: int) -> list:
    return database.list_classrooms_for_user(user_id)


def get_classroom(classroom_id: int, user_id: int) -> dict:
    """Get a classroom visible to the user.

    Missing classrooms and classrooms the user is not a member of both raise
    NotFound, so the existence of a classroom never leaks to outsiders.
    """
    if not database.is_member(classroom_id, user_id):
        raise NotFound("Classroom not found")
    return database.get_classroom(classroom_id)


def join_classroom(user_id: int, join_code: str) -> dict:
    classroom = database.get_classroom_by_join_code(join_code)
    if not classroom:
        raise NotFound("Invalid join code")

    if any(member["user"] == user_id for member in classroom["members"]):
        raise Conflict("Already a member of this classroom")

    database.add_member(classroom["id"], user_id, Role.STUDENT.value)
    logger.info(f"User {user_id} joined classroom {classroom['id']}")
    return database.get_classroom(classroom["id"])
