# proctor_service/errors.py
from typing import Optional, Any


class ProctoringError(Exception):
    """Expected, recoverable failure of a session operation."""

    code = "proctoring_error"
    status_code = 400

    def __init__(self, message: str, session_id: Optional[str] = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.detail = detail if detail is not None else message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, "session_id": self.session_id}


class DuplicateSession(ProctoringError):
    code = "duplicate_session"
    status_code = 409


class SessionNotFound(ProctoringError):
    code = "session_not_found"
    status_code = 404


class InvalidTransition(ProctoringError):
    code = "invalid_transition"
    status_code = 409


class InvalidEvent(ProctoringError):
    code = "invalid_event"
    status_code = 422


class SessionClosed(ProctoringError):
    code = "session_closed"
    status_code = 409


class ConcurrentUpdateError(ProctoringError):
    """Raised by a store when optimistic retries are exhausted."""

    code = "concurrent_update"
    status_code = 503
