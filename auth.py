from datetime import timedelta
from typing import Optional
import bcrypt
from jose import jwt, JWTError
import logging

import config
from database import add_user, get_user_by_email, get_user_by_id, now_utc
from exceptions import InvalidInput

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def get_password_hash(password: str) -> str:
    """Generate a bcrypt hash of the password"""
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(
            plain_password.encode(),
            hashed_password.encode()
        )
    except ValueError:
        return False


def public_user(user: dict) -> dict:
    """Strip the password hash and rename fields for API responses."""
    return {
        "id": user["id"],
        "email": user["email"],
        "role": user["role"],
        "studentId": user.get("student_id"),
        "enrollmentDate": user.get("enrollment_date"),
    }


def register_user(email: str, password: str, role: str, student_id=None, enrollment_date=None) -> dict:
    """Create a user. studentId defaults to the local part of the email for students."""
    if role == "student":
        student_id = student_id or email.split("@", 1)[0]
    else:
        student_id = None
        enrollment_date = None

    user_id = add_user(email, get_password_hash(password), role, student_id, enrollment_date)
    logger.info(f"Registered {role} user {user_id}: {email}")
    return get_user_by_id(user_id)


def authenticate_user(email: str, password: str) -> dict:
    """Authenticate a user and return user data if successful.

    Unknown emails and wrong passwords fail with the same message.
    """
    user = get_user_by_email(email)
    if not user:
        logger.warning(f"Login attempt with unknown email: {email}")
        raise InvalidInput(INVALID_CREDENTIALS)
    if not verify_password(password, user["password"]):
        logger.warning(f"Failed login attempt for email: {email}")
        raise InvalidInput(INVALID_CREDENTIALS)
    logger.info(f"User authenticated successfully: {email}")
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a new JWT token"""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": now_utc() + expires_delta})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def create_user_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token({"sub": str(user["id"]), "role": user["role"]}, expires_delta)


def decode_token(token: str):
    """Decode and verify a JWT token. Returns None for invalid or expired tokens."""
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        return None
    except JWTError as e:
        logger.warning(f"Invalid token: {str(e)}")
        return None
