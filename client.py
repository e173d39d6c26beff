"""
HTTP client for the attendance API, used by the Streamlit views.
One method per route; failed calls raise ApiError with the server's message.
"""
from datetime import date
from typing import Any, Dict, List, Optional
import logging

import requests

import config


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AttendanceClient:
    """Talks to the REST API with an optional bearer token.

    ``session`` may be anything with a requests-style ``request`` method, which
    lets tests pass FastAPI's TestClient.
    """

    def __init__(
        self,
        base_url: str = config.API_URL,
        token: Optional[str] = None,
        session=None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.session.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            self.logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
            raise ApiError(response.status_code, message)
        return response.json()

    # Auth

    def _store_token(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.token = data["token"]
        return data

    def register(
        self,
        email: str,
        password: str,
        role: str,
        student_id: Optional[str] = None,
        enrollment_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        body = {"email": email, "password": password, "role": role}
        if student_id:
            body["studentId"] = student_id
        if enrollment_date:
            body["enrollmentDate"] = enrollment_date.isoformat()
        return self._store_token(self._request("POST", "/auth/register", json=body))

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._store_token(self._request("POST", "/auth/login", json={"email": email, "password": password}))

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/me")

    # Classrooms

    def list_classrooms(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/classrooms")

    def get_classroom(self, classroom_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/classrooms/{classroom_id}")

    def create_classroom(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/classrooms", json={"name": name, "description": description})

    def join_classroom(self, join_code: str) -> Dict[str, Any]:
        return self._request("POST", "/classrooms/join", json={"joinCode": join_code})

    # Attendance sessions

    def start_session(self, classroom_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/attendance/session/start/{classroom_id}")

    def end_session(self, session_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/attendance/session/{session_id}/end")

    def mark_present(self, session_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/attendance/session/{session_id}/mark")

    def get_active_session(self, classroom_id: int) -> Optional[Dict[str, Any]]:
        return self._request("GET", f"/attendance/session/active/{classroom_id}")

    def get_session(self, session_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/attendance/session/{session_id}")

    def list_session_history(self, classroom_id: int, on: Optional[date] = None) -> List[Dict[str, Any]]:
        params = {"date": on.isoformat()} if on else None
        return self._request("GET", f"/attendance/session/records/{classroom_id}", params=params)
