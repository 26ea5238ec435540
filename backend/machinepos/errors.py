# Overview: Typed error variants raised by the services and rendered by the routes.

"""
Error taxonomy for sale, return and order operations.

Every service failure is one of the classes below. Routes never inspect
exception fields to guess a status code; they hand the exception to
error_response(), which reads the status from the class.

    PosError
    ├── ValidationError         400  caller sent malformed or missing input
    ├── NotFoundError           404  machine / order / customer / line missing
    ├── InsufficientStockError  400  requested quantity exceeds on-hand stock
    ├── ConflictError           400  unique key already taken (phone, NIC, item code)
    └── TransactionAbortError   500  unit of work failed and was rolled back
"""

from __future__ import annotations

from typing import Any


class PosError(Exception):
    """Base for all business errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError):
    """Malformed or missing input. Never retried."""

    status_code = 400

    def __init__(self, message: str, errors: dict[str, str] | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(PosError):
    status_code = 404


class InsufficientStockError(PosError):
    status_code = 400

    def __init__(self, machine_id: int, name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, Requested: {requested}",
            details={
                "machine_id": machine_id,
                "name": name,
                "available": available,
                "requested": requested,
            },
        )
        self.machine_id = machine_id
        self.available = available
        self.requested = requested


class ConflictError(PosError):
    """Unique key collision; ``field`` names the column that collided."""

    status_code = 400

    def __init__(self, field: str, value: Any = None, message: str | None = None):
        super().__init__(
            message or f"Duplicate {field}",
            details={"field": field, "value": value},
        )
        self.field = field
        self.value = value


class TransactionAbortError(PosError):
    """
    The atomic unit of work failed for a reason that is not a business error
    (driver error, lock timeout, bug). The original exception is chained as
    __cause__ for logging; callers only see a generic processing failure.
    """

    status_code = 500

    def __init__(self, message: str = "Error processing transaction"):
        super().__init__(message)


def error_response(exc: PosError) -> tuple[dict, int]:
    """Render a business error as a JSON body and status."""
    return exc.to_dict(), exc.status_code
