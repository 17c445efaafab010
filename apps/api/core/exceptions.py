"""
Custom exception classes and error handling.

Provides consistent error responses across the API.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None, status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_code=error_code
        )


class ForbiddenError(APIException):
    """Access denied."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class AlreadyVerifiedTodayError(ConflictError):
    """The habit already has a verified completion for the caller's local day."""

    def __init__(self, completed_date: Optional[str] = None):
        super().__init__(
            detail="Already verified today! Come back tomorrow.",
            error_code="ALREADY_VERIFIED_TODAY"
        )
        self.completed_date = completed_date


class EvidenceRejectedError(APIException):
    """Submitted evidence could not be used and there was nothing to fall back on."""

    def __init__(self, detail: str, too_large: bool = False):
        super().__init__(
            status_code=(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if too_large
                else status.HTTP_422_UNPROCESSABLE_ENTITY
            ),
            detail=detail,
            error_code="EVIDENCE_TOO_LARGE" if too_large else "EVIDENCE_UNUSABLE"
        )
