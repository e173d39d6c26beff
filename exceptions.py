class AttendanceError(Exception):
    """Base exception for business rule violations.

    Every subclass carries the HTTP status the API answers with and a default
    human-readable message.
    """

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AttendanceError):
    """Raised when request data is malformed or missing required fields."""

    status_code = 400
    default_message = "Invalid input"


class AuthenticationRequired(AttendanceError):
    """Raised when a protected route is called without a bearer token."""

    status_code = 401
    default_message = "Authentication required"


class InvalidToken(AttendanceError):
    """Raised when a bearer token is malformed, forged or expired."""

    status_code = 403
    default_message = "Invalid or expired token"


class Forbidden(AttendanceError):
    """Raised when a user lacks the role or membership for an action."""

    status_code = 403
    default_message = "Not authorized"


class NotFound(AttendanceError):
    """Raised when a user, classroom or session does not exist or is hidden from the caller."""

    status_code = 404
    default_message = "Not found"


class Conflict(AttendanceError):
    """Raised on uniqueness or state machine violations."""

    status_code = 409
    default_message = "Conflict"


class InvalidState(AttendanceError):
    """Raised when an action targets a session that is no longer active."""

    status_code = 400
    default_message = "Attendance session is not active"
