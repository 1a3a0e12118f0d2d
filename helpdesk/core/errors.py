"""Domain errors raised by the service layer and rendered by ``main.py``."""

from typing import Any


class HelpdeskError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(HelpdeskError):
    """Missing or malformed input; the operation was not attempted."""

    status_code = 400
    code = "INVALID_REQUEST"


class InvalidStaffError(ValidationError):
    code = "INVALID_STAFF"

    def __init__(self, message: str = "Invalid staff member") -> None:
        super().__init__(message)


class InvalidTransitionError(ValidationError):
    code = "INVALID_TRANSITION"


class NotFoundError(HelpdeskError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(HelpdeskError):
    """Availability conflicts found and the caller did not force the change."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, conflicts: list | None = None) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["conflicts"] = [c.to_dict() if hasattr(c, "to_dict") else c for c in self.conflicts]
        return data


class PersistenceError(HelpdeskError):
    status_code = 500
    code = "PERSISTENCE_ERROR"


class ObservabilityError(HelpdeskError):
    """Audit, history or notification write failure. Logged, never propagated."""

    code = "OBSERVABILITY_ERROR"
