from typing import Any, Dict, Optional
from fastapi import status


class LifecycleError(Exception):
    """
    Base class for every rejection raised by the lifecycle engine.
    Carries the HTTP status it maps to and a structured detail payload.
    Raising one guarantees that no ticket state was changed.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Lifecycle error"

    def __init__(self, reason: str, **context: Any):
        super().__init__(reason)
        self.reason = reason
        self.context = context

    @property
    def detail(self) -> Dict[str, Any]:
        return {"error": self.error, "reason": self.reason, **self.context}


class PermissionDenied(LifecycleError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Permission denied"


class InvalidStateTransition(LifecycleError):
    status_code = status.HTTP_409_CONFLICT
    error = "Invalid state transition"


class ValidationFailed(LifecycleError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "Validation failed"


class NotFound(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConcurrentModification(LifecycleError):
    status_code = status.HTTP_409_CONFLICT
    error = "Concurrent modification"


def require_text(value: Optional[str], field: str) -> str:
    """Trim a required free-text input, rejecting empty or whitespace-only values."""
    text = (value or "").strip()
    if not text:
        raise ValidationFailed(f"{field} is required", field=field)
    return text
