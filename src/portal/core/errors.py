"""Error taxonomy of the quiz attempt and progression engine."""

from __future__ import annotations


class PortalError(Exception):
    """Base class for engine errors."""

    pass


class ValidationError(PortalError):
    """Manual submission with unanswered questions (no state change)."""

    def __init__(self, message: str, missing_question_ids: list[str] | None = None):
        self.missing_question_ids = missing_question_ids or []
        super().__init__(message)


class LockedError(PortalError):
    """Attempt creation or lesson access is not allowed."""

    def __init__(self, message: str, reason: str | None = None):
        self.reason = reason
        super().__init__(message)


class NotFoundError(PortalError):
    """Quiz, lesson, or attempt does not exist."""

    pass


class ConflictError(PortalError):
    """A uniqueness constraint rejected a write (lost creation race)."""

    pass


class TransientNetworkError(PortalError):
    """A store call failed in a way that may succeed on retry."""

    pass
