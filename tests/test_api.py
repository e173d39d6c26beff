import asyncio
import re
import sqlite3
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import api
import auth
import classrooms
import config
from database import get_user_by_email


def register(client, email, role, password="secret1", **extra):
    response = client.post("/auth/register", json={"email": email, "password": password, "role": role, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def teacher(client):
    return bearer(register(client, "t@x.com", "admin")["token"])


@pytest.fixture
def pupil(client):
    return bearer(register(client, "s@x.com", "student")["token"])


@pytest.fixture
def math(client, teacher, pupil):
    classroom = client.post("/classrooms", json={"name": "Math"}, headers=teacher).json()
    client.post("/classrooms/join", json={"joinCode": classroom["joinCode"]}, headers=pupil)
    return classroom


def test_health(client):
    assert client.get("/").json()["message"] == "Attendance backend running"


def test_register_returns_user_and_token(client):
    data = register(client, "  New@X.com ", "student", studentId="S-9", enrollmentDate="2024-09-01")
    assert data["user"]["email"] == "new@x.com"
    assert data["user"]["studentId"] == "S-9"
    assert data["user"]["enrollmentDate"] == "2024-09-01"
    assert "password" not in data["user"]
    assert client.get("/auth/me", headers=bearer(data["token"])).json()["id"] == data["user"]["id"]


def test_register_duplicate_email(client, teacher):
    response = client.post("/auth/register", json={"email": "t@x.com", "password": "x", "role": "student"})
    assert response.status_code == 409
    assert response.json() == {"message": "User already exists"}


@pytest.mark.parametrize("body", [
    {"email": "a@x.com", "password": "secret1"},
    {"email": "a@x.com", "password": "secret1", "role": "teacher"},
    {"email": "not-an-email", "password": "secret1", "role": "student"},
    {"email": "a@x.com", "password": "", "role": "student"},
    {"email": "a@x.com", "password": "p" * 73, "role": "student"},
])
def test_register_validation(client, body):
    response = client.post("/auth/register", json=body)
    assert response.status_code == 400
    assert response.json()["message"]


def test_login(client, teacher):
    response = client.post("/auth/login", json={"email": "t@x.com", "password": "secret1"})
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"
    assert auth.decode_token(response.json()["token"])["role"] == "admin"


def test_scenario_create_and_join(client, teacher, pupil):
    response = client.post("/classrooms", json={"name": "Math"}, headers=teacher)
    assert response.status_code == 201
    classroom = response.json()
    assert re.fullmatch(r"[A-Z0-9]{6}", classroom["joinCode"])

    response = client.post("/classrooms/join", json={"joinCode": classroom["joinCode"]}, headers=pupil)
    assert response.status_code == 200

    names = [c["name"] for c in client.get("/classrooms", headers=pupil).json()]
    assert "Math" in names


def test_scenario_session_lifecycle(client, teacher, pupil, math):
    response = client.post(f"/attendance/session/start/{math['id']}", headers=teacher)
    assert response.status_code == 201
    session = response.json()

    response = client.post(f"/attendance/session/{session['id']}/mark", headers=pupil)
    assert response.status_code == 201

    active = client.get(f"/attendance/session/active/{math['id']}", headers=pupil).json()
    assert len(active["records"]) == 1
    assert active["records"][0]["student"]["email"] == "s@x.com"

    response = client.post(f"/attendance/session/{session['id']}/end", headers=teacher)
    assert response.status_code == 200

    response = client.get(f"/attendance/session/active/{math['id']}", headers=pupil)
    assert response.status_code == 200
    assert response.json() is None

    history = client.get(f"/attendance/session/records/{math['id']}", headers=teacher).json()
    assert len(history) == 1
    assert history[0]["status"] == "ended"
    assert len(history[0]["records"]) == 1


def test_scenario_forbidden_and_hidden(client, teacher, pupil):
    response = client.post("/classrooms", json={"name": "Art"}, headers=pupil)
    assert response.status_code == 403
    assert response.json() == {"message": "Only admins can create classrooms"}

    classroom = client.post("/classrooms", json={"name": "Art"}, headers=teacher).json()
    response = client.get(f"/classrooms/{classroom['id']}", headers=pupil)
    assert response.status_code == 404
    assert response.json() == {"message": "Classroom not found"}


def test_scenario_wrong_password(client, teacher):
    for email in ("t@x.com", "ghost@x.com"):
        response = client.post("/auth/login", json={"email": email, "password": "wrong"})
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid email or password"}


def test_missing_token(client):
    response = client.get("/classrooms")
    assert response.status_code == 401
    assert response.json() == {"message": "Authentication required"}


def test_invalid_and_expired_tokens(client, teacher):
    user = get_user_by_email("t@x.com")
    expired = auth.create_user_token(user, expires_delta=timedelta(seconds=-1))
    for token in ("not-a-token", expired):
        response = client.get("/classrooms", headers=bearer(token))
        assert response.status_code == 403
        assert response.json() == {"message": "Invalid or expired token"}


def test_token_for_unknown_user(client):
    token = auth.create_access_token({"sub": "999", "role": "admin"})
    assert client.get("/classrooms", headers=bearer(token)).status_code == 403


def test_empty_classroom_name(client, teacher):
    response = client.post("/classrooms", json={"name": "   "}, headers=teacher)
    assert response.status_code == 400
    assert "Classroom name is required" in response.json()["message"]


def test_join_errors(client, pupil, math):
    response = client.post("/classrooms/join", json={"joinCode": "NOPE00"}, headers=pupil)
    assert response.status_code == 404
    assert response.json() == {"message": "Invalid join code"}

    response = client.post("/classrooms/join", json={"joinCode": math["joinCode"]}, headers=pupil)
    assert response.status_code == 409
    assert response.json() == {"message": "Already a member of this classroom"}


def test_session_errors(client, teacher, pupil, math):
    assert client.post(f"/attendance/session/start/{math['id']}", headers=pupil).status_code == 403
    session = client.post(f"/attendance/session/start/{math['id']}", headers=teacher).json()
    assert client.post(f"/attendance/session/start/{math['id']}", headers=teacher).status_code == 409

    assert client.post(f"/attendance/session/{session['id']}/mark", headers=teacher).status_code == 403
    assert client.post(f"/attendance/session/{session['id']}/mark", headers=pupil).status_code == 201
    assert client.post(f"/attendance/session/{session['id']}/mark", headers=pupil).status_code == 409

    assert client.post(f"/attendance/session/{session['id']}/end", headers=pupil).status_code == 403
    assert client.post(f"/attendance/session/{session['id']}/end", headers=teacher).status_code == 200
    assert client.post(f"/attendance/session/{session['id']}/end", headers=teacher).status_code == 409

    response = client.post(f"/attendance/session/{session['id']}/mark", headers=pupil)
    assert response.status_code == 400
    assert response.json() == {"message": "Attendance session has ended"}

    assert client.get("/attendance/session/9999", headers=pupil).status_code == 404
    assert client.get(f"/attendance/session/{session['id']}", headers=pupil).json()["status"] == "ended"


def test_history_date_filter(client, teacher, math):
    client.post(f"/attendance/session/start/{math['id']}", headers=teacher)
    url = f"/attendance/session/records/{math['id']}"

    assert client.get(url, params={"date": "2000-01-01"}, headers=teacher).json() == []
    assert client.get(url, params={"date": "yesterday"}, headers=teacher).status_code == 400


def test_history_forbidden_for_outsider(client, math):
    outsider = bearer(register(client, "o@x.com", "student")["token"])
    response = client.get(f"/attendance/session/records/{math['id']}", headers=outsider)
    assert response.status_code == 403


def test_unknown_route_uses_message_body(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"message": "Not Found"}


def test_legacy_direct_mark(client, pupil, math):
    response = client.post(f"/attendance/{math['id']}/mark", json={"status": "late"}, headers=pupil)
    assert response.status_code == 201
    assert response.json()["status"] == "late"

    assert client.post(f"/attendance/{math['id']}/mark", json={"status": "asleep"}, headers=pupil).status_code == 400

    records = client.get(f"/attendance/{math['id']}", headers=pupil).json()
    assert [r["status"] for r in records] == ["late"]


@pytest.mark.parametrize("method, path", [
    ("get", "/classrooms/99999999999999999999"),
    ("get", "/attendance/session/99999999999999999999"),
    ("get", "/attendance/session/active/99999999999999999999"),
    ("get", "/attendance/session/records/99999999999999999999"),
    ("post", "/attendance/session/start/99999999999999999999"),
    ("post", "/attendance/session/99999999999999999999/mark"),
    ("post", "/attendance/session/99999999999999999999/end"),
    ("get", "/attendance/99999999999999999999"),
    ("get", "/classrooms/0"),
])
def test_out_of_range_ids_are_invalid_input(client, teacher, method, path):
    response = getattr(client, method)(path, headers=teacher)
    assert response.status_code == 400
    assert "error" not in response.json()


def test_login_with_malformed_email(client, teacher):
    response = client.post("/auth/login", json={"email": "not-an-email", "password": "secret1"})
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid email or password"}


@pytest.fixture
def failing_client(teacher, monkeypatch):
    def explode(user_id):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(classrooms, "list_classrooms_for_user", explode)
    return TestClient(api.app, raise_server_exceptions=False)


def test_unexpected_error_hides_detail_in_production(failing_client, teacher, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    response = failing_client.get("/classrooms", headers=teacher)
    assert response.status_code == 500
    assert response.json() == {"message": "An unexpected error occurred"}


def test_unexpected_error_shows_detail_in_development(failing_client, teacher, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "development")
    response = failing_client.get("/classrooms", headers=teacher)
    assert response.status_code == 500
    assert response.json() == {"message": "An unexpected error occurred", "error": "disk on fire"}


def test_startup_fails_when_database_cannot_be_initialized(monkeypatch):
    def broken_init():
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(api, "init_db", broken_init)
    with pytest.raises(sqlite3.OperationalError):
        asyncio.run(api.startup_event())
