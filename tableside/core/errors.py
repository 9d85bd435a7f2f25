"""
Domain error taxonomy.

Every error raised by the services layer derives from ``TablesideError`` and
carries the HTTP status the API layer answers with. None of them are retried
automatically; the caller decides whether to resubmit.
"""

from __future__ import annotations

from typing import Optional


class TablesideError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationFailed(TablesideError):
    """A required field is missing or malformed."""

    status_code = 400
    error = "Validation Error"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, detail=field)
        self.field = field


class NotFound(TablesideError):
    """An unknown id was referenced."""

    status_code = 404
    error = "Not Found"

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class StateConflict(TablesideError):
    """The requested transition is not valid from the current state."""

    status_code = 409
    error = "State Conflict"

    def __init__(self, message: str, current: Optional[str] = None) -> None:
        super().__init__(message, detail=current)
        self.current = current


class PaymentFailed(TablesideError):
    """The payment provider declined or could not be reached."""

    status_code = 402
    error = "Payment Failed"

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message, detail=error_code)
        self.error_code = error_code
