"""
Domain exceptions for the booking and billing engine.

Services raise these; the API layer renders them through ``to_http_exception``
so callers get a stable ``code`` alongside the human-readable message.
"""

from typing import Any, Optional

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base exception for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class SlotConflict(DomainError):
    """Requested slot is already reserved or administratively blocked."""

    status_code = status.HTTP_409_CONFLICT


class DuplicateInvoice(DomainError):
    """Appointment already has an active invoice."""

    status_code = status.HTTP_409_CONFLICT


class InvalidAmount(DomainError):
    """Computed or supplied amount is not positive, or nothing is billable."""

    status_code = 422


class StaleSubscriptionWrite(DomainError):
    """Concurrent edit detected on the subscription fragment; re-read and retry."""

    status_code = status.HTTP_412_PRECONDITION_FAILED


class StorageUnavailable(DomainError):
    """Transport or infrastructure failure. Nothing was committed; retry with backoff."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class IllegalTransition(DomainError):
    """Requested state-machine edge does not exist."""

    status_code = status.HTTP_409_CONFLICT


class ConfirmationRequired(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
