"""Custom exception classes and handlers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse


class ErrorKind(StrEnum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_FINALIZED = "already_finalized"
    INVALID_CANDIDATE_INDEX = "invalid_candidate_index"
    OVERPAYMENT_REJECTED = "overpayment_rejected"
    CONFLICT_DETECTED = "conflict_detected"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    PROVIDER_UNAVAILABLE = "provider_unavailable"


class BusinessLogicError(Exception):
    """Raised for domain-specific validation errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_status: int = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, detail: str, status_code: int | None = None):
        self.detail = detail
        self.status_code = status_code or self.default_status
        super().__init__(detail)

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "code": self.kind.value, "message": self.detail}


class ValidationError(BusinessLogicError):
    """Malformed input: non-positive price, deposit above price, stale candidate times."""


class NotFoundError(BusinessLogicError):
    kind = ErrorKind.NOT_FOUND
    default_status = status.HTTP_404_NOT_FOUND


class InvalidTransitionError(BusinessLogicError):
    """Raised when a status change is not allowed from the current status."""

    kind = ErrorKind.INVALID_TRANSITION
    default_status = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str, new_status: str, allowed: list[str] | None = None):
        self.current_status = current_status
        self.new_status = new_status
        self.allowed = list(allowed or [])
        message = f"Cannot transition from '{current_status}' to '{new_status}'."
        if self.allowed:
            message += f" Allowed transitions: {', '.join(self.allowed)}"
        else:
            message += " No transitions are allowed from this status."
        super().__init__(message)


class AlreadyFinalizedError(InvalidTransitionError):
    """Raised when an operation targets a completed or cancelled appointment."""

    kind = ErrorKind.ALREADY_FINALIZED

    def __init__(self, current_status: str, attempted: str):
        super().__init__(current_status, attempted, [])
        self.detail = f"Appointment is already {current_status.lower()}; cannot {attempted.lower()}."
        self.args = (self.detail,)


class InvalidCandidateIndexError(BusinessLogicError):
    kind = ErrorKind.INVALID_CANDIDATE_INDEX

    def __init__(self, index: int | None, candidate_count: int):
        self.index = index
        self.candidate_count = candidate_count
        if index is None:
            detail = f"A candidate index is required when {candidate_count} start times are proposed."
        else:
            detail = f"Candidate index {index} is out of range (0..{candidate_count - 1})."
        super().__init__(detail)


class OverpaymentRejectedError(BusinessLogicError):
    kind = ErrorKind.OVERPAYMENT_REJECTED

    def __init__(self, amount, outstanding):
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(f"Payment of {amount} exceeds outstanding balance {outstanding}.")


class ConflictDetectedError(BusinessLogicError):
    """Raised by callers that refuse to book over error-severity conflicts."""

    kind = ErrorKind.CONFLICT_DETECTED
    default_status = status.HTTP_409_CONFLICT

    def __init__(self, conflicts: list[Any]):
        self.conflicts = conflicts
        messages = "; ".join(conflict.message for conflict in conflicts)
        super().__init__(f"Scheduling conflicts detected: {messages}")

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["conflicts"] = [conflict.model_dump(mode="json") for conflict in self.conflicts]
        return payload


class ConcurrentModificationError(BusinessLogicError):
    kind = ErrorKind.CONCURRENT_MODIFICATION
    default_status = status.HTTP_409_CONFLICT


class ProviderUnavailableError(BusinessLogicError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    default_status = status.HTTP_502_BAD_GATEWAY


def register_exception_handlers(app: FastAPI) -> None:
    """Attach shared exception handlers to the FastAPI app."""

    @app.exception_handler(BusinessLogicError)
    async def _business_error_handler(_: FastAPI, exc: BusinessLogicError):
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)
