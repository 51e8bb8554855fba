"""Typed engine errors surfaced to the HTTP layer for status-code mapping."""
from typing import Any


class EngineError(Exception):
    """Base class for every error the engine raises on purpose."""

    code = "engine_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class NotFound(EngineError):
    code = "not_found"


class AccessDenied(EngineError):
    code = "access_denied"


class ValidationError(EngineError):
    """Malformed answer payload, bad question data or unknown question type."""

    code = "validation_error"


class RetryLimitExceeded(EngineError):
    code = "retry_limit_exceeded"

    def __init__(self, attempts_used: int, attempts_allowed: int) -> None:
        super().__init__(
            f"Retry limit reached ({attempts_used}/{attempts_allowed} attempts used)",
            attempts_used=attempts_used,
            attempts_allowed=attempts_allowed,
        )
        self.attempts_used = attempts_used
        self.attempts_allowed = attempts_allowed


class Conflict(EngineError):
    code = "conflict"

    def __init__(self, message: str, timestamp: float | None = None) -> None:
        if timestamp is None:
            super().__init__(message)
        else:
            super().__init__(message, timestamp=timestamp)
        self.timestamp = timestamp


class InternalError(EngineError):
    """Opaque wrapper for repository / transaction failures."""

    code = "internal_error"

    def __init__(self, message: str = "Internal error") -> None:
        super().__init__(message)


__all__ = [
    "EngineError",
    "NotFound",
    "AccessDenied",
    "ValidationError",
    "RetryLimitExceeded",
    "Conflict",
    "InternalError",
]
