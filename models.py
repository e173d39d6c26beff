from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class Role(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserLogin(RequestModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserRegistration(UserLogin):
    role: Role
    student_id: Optional[str] = Field(None, alias="studentId")
    enrollment_date: Optional[date] = Field(None, alias="enrollmentDate")

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip().lower()
        local, _, domain = value.partition("@")
        if not local or not domain:
            raise ValueError("A valid email address is required")
        return value

    @field_validator("password")
    @classmethod
    def check_password_length(cls, value: str) -> str:
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value

    @field_validator("student_id")
    @classmethod
    def strip_student_id(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)


class ClassroomCreate(RequestModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Classroom name is required")
        return value

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)


class JoinClassroom(RequestModel):
    join_code: str = Field(..., alias="joinCode")

    @field_validator("join_code")
    @classmethod
    def code_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Join code is required")
        return value


class AttendanceMark(RequestModel):
    """Body of the deprecated direct-mark route."""

    status: AttendanceStatus = AttendanceStatus.PRESENT
