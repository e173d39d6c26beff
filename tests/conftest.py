import pytest
from fastapi.testclient import TestClient

import api
import auth
import classrooms
import config
import database


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATABASE_PATH", str(tmp_path / "attendance.db"))
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    database.init_db()


@pytest.fixture
def client():
    return TestClient(api.app)


@pytest.fixture
def admin():
    return auth.register_user("t@x.com", "secret1", "admin")


@pytest.fixture
def student():
    return auth.register_user("s@x.com", "secret1", "student")


@pytest.fixture
def other_student():
    return auth.register_user("o@x.com", "secret1", "student")


@pytest.fixture
def classroom(admin):
    return classrooms.create_classroom(admin["id"], "Math", "Algebra and geometry")


@pytest.fixture
def enrolled(classroom, student):
    """Classroom the default student has joined."""
    return classrooms.join_classroom(student["id"], classroom["joinCode"])
