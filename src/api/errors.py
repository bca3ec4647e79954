"""Billing error types and HTTP response helpers for the calling layer."""

from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class PeriodNotFoundError(AppError):
    """Billing period does not exist."""

    def __init__(self, period_id: int):
        self.period_id = period_id
        super().__init__(
            f"Period {period_id} not found", "period_not_found", status.HTTP_404_NOT_FOUND
        )


class PeriodNotReadyError(AppError):
    """Period failed a calculation precondition (status or receipt totals)."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "; ".join(self.errors) or "Period is not ready for calculation",
            "period_not_ready",
            status.HTTP_400_BAD_REQUEST,
        )


class InvalidTransitionError(AppError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_transition", status.HTTP_400_BAD_REQUEST)


class ReadingValidationError(AppError):
    """Submitted meter reading is invalid."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_reading", status.HTTP_400_BAD_REQUEST)


class ReopenError(AppError):
    """Only closed periods can be reopened."""

    def __init__(self, message: str = "Can only reopen closed periods"):
        super().__init__(message, "reopen_not_allowed", status.HTTP_409_CONFLICT)


class BillNotFoundError(AppError):
    """Bill does not exist."""

    def __init__(self, bill_id: int):
        self.bill_id = bill_id
        super().__init__(f"Bill {bill_id} not found", "bill_not_found", status.HTTP_404_NOT_FOUND)


class UnitNotFoundError(AppError):
    """Unit does not exist."""

    def __init__(self, unit_id: int):
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id} not found", "unit_not_found", status.HTTP_404_NOT_FOUND)


class InsufficientPrivilegeError(AppError):
    """Actor role is not allowed to perform the action."""

    def __init__(self, message: str = "Insufficient privilege"):
        super().__init__(message, "insufficient_privilege", status.HTTP_403_FORBIDDEN)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body: Dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }
    if isinstance(error, PeriodNotReadyError):
        body["errors"] = error.errors
    return {"error": body}


__all__ = [
    "AppError",
    "PeriodNotFoundError",
    "PeriodNotReadyError",
    "InvalidTransitionError",
    "ReadingValidationError",
    "ReopenError",
    "BillNotFoundError",
    "UnitNotFoundError",
    "InsufficientPrivilegeError",
    "error_response",
]
