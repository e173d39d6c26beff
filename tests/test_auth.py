from datetime import date, timedelta

import pytest
from jose import jwt

import auth
import database
from exceptions import Conflict, InvalidInput


def test_register_student_defaults_student_id_to_email_local_part(student):
    assert student["role"] == "student"
    assert student["student_id"] == "s"
    assert student["password"] != "secret1"


def test_register_student_keeps_explicit_fields():
    user = auth.register_user("ana@x.com", "secret1", "student", "S-100", date(2024, 9, 1))
    assert user["student_id"] == "S-100"
    assert user["enrollment_date"] == "2024-09-01"


def test_register_admin_drops_student_fields():
    user = auth.register_user("boss@x.com", "secret1", "admin", "S-1", date(2024, 9, 1))
    assert user["student_id"] is None
    assert user["enrollment_date"] is None


def test_duplicate_email_is_rejected(admin):
    with pytest.raises(Conflict, match="User already exists"):
        auth.register_user("t@x.com", "another", "student")


def test_password_hash_verifies():
    hashed = auth.get_password_hash("secret1")
    assert auth.verify_password("secret1", hashed)
    assert not auth.verify_password("secret2", hashed)
    assert not auth.verify_password("secret1", "not-a-bcrypt-hash")


def test_authenticate_user(student):
    user = auth.authenticate_user("s@x.com", "secret1")
    assert user["id"] == student["id"]


@pytest.mark.parametrize("email,password", [
    ("s@x.com", "wrong"),
    ("nobody@x.com", "secret1"),
])
def test_authenticate_failures_share_one_message(student, email, password):
    with pytest.raises(InvalidInput) as exc_info:
        auth.authenticate_user(email, password)
    assert exc_info.value.message == "Invalid email or password"


def test_token_carries_subject_and_role(admin):
    payload = auth.decode_token(auth.create_user_token(admin))
    assert payload["sub"] == str(admin["id"])
    assert payload["role"] == "admin"


def test_token_defaults_to_24_hours(admin):
    payload = auth.decode_token(auth.create_user_token(admin))
    remaining = payload["exp"] - database.now_utc().timestamp()
    assert timedelta(hours=23, minutes=59).total_seconds() < remaining <= timedelta(hours=24).total_seconds()


def test_expired_token_is_rejected(admin):
    token = auth.create_user_token(admin, expires_delta=timedelta(seconds=-5))
    assert auth.decode_token(token) is None


def test_forged_token_is_rejected(admin):
    token = jwt.encode({"sub": str(admin["id"]), "role": "admin"}, "someone-else", algorithm="HS256")
    assert auth.decode_token(token) is None
    assert auth.decode_token("garbage") is None


def test_public_user_hides_password(student):
    public = auth.public_user(student)
    assert "password" not in public
    assert public == {
        "id": student["id"],
        "email": "s@x.com",
        "role": "student",
        "studentId": "s",
        "enrollmentDate": None,
    }
