# backend/studio_ledger/core/exceptions.py
"""
Domain-specific exceptions for the studio ledger.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Each carries a stable machine-readable ``code`` that clients switch on.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
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


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when user is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Not authenticated", **kwargs: Any) -> None:
        kwargs.setdefault("code", "not_authenticated")
        super().__init__(message, **kwargs)

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"WWW-Authenticate": "Bearer"}
        return exc


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class ClassNotFoundException(NotFoundException):
    def __init__(self, class_id: str):
        super().__init__(
            message="Class not found",
            code="class_not_found",
            details={"class_id": class_id},
        )


class BookingNotFoundException(NotFoundException):
    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking not found or already cancelled",
            code="booking_not_found",
            details={"booking_id": booking_id},
        )


class PassNotFoundException(NotFoundException):
    def __init__(self, pass_id: str):
        super().__init__(
            message="Pass not found",
            code="pass_not_found",
            details={"pass_id": pass_id},
        )


class ClassFullException(ConflictException):
    """Raised when every seat of a class is already booked."""

    def __init__(self, class_id: str, capacity: int):
        super().__init__(
            message="This class is full",
            code="class_full",
            details={"class_id": class_id, "capacity": capacity},
        )


class NoEligiblePassException(BusinessRuleException):
    """Raised when the user has neither an unlimited window nor a credit to spend."""

    def __init__(self, user_id: str):
        super().__init__(
            message="No active pass with remaining credits",
            code="no_credits",
            details={"user_id": user_id},
        )


class TooLateToCancelException(BusinessRuleException):
    """Raised when a cancellation lands inside the cutoff window."""

    def __init__(self, booking_id: str, cutoff_hours: float, hours_until_start: float):
        super().__init__(
            message=f"Bookings cannot be cancelled less than {cutoff_hours:g} hours before class",
            code="too_late_to_cancel",
            details={
                "booking_id": booking_id,
                "cutoff_hours": cutoff_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class CheckInClosedException(BusinessRuleException):
    def __init__(self, booking_id: str, opens_at: str, closes_at: str):
        super().__init__(
            message="Check-in is not open for this class",
            code="check_in_closed",
            details={"booking_id": booking_id, "opens_at": opens_at, "closes_at": closes_at},
        )


class InvalidOperationException(BusinessRuleException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="invalid_operation", details=details)


class UnknownPassKindException(BusinessRuleException):
    """Raised when a payment references a plan the pass table does not know."""

    def __init__(self, plan_id: Optional[str]):
        super().__init__(
            message="Unknown pass plan",
            code="unknown_pass_kind",
            details={"plan_id": plan_id},
        )


class PaymentNotCompletedException(ConflictException):
    """
    Raised when the provider reports the payment as not yet final.

    Retryable: the same session can be confirmed again once it settles.
    """

    def __init__(self, reference: str, provider_status: Optional[str]):
        super().__init__(
            message="Payment not completed",
            code="payment_not_completed",
            details={"reference": reference, "provider_status": provider_status},
        )


class PaymentProviderException(ServiceException):
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="payment_provider_error", details=details)


class StoreUnavailableException(ServiceException):
    """Raised when the database times out or drops the connection."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Service temporarily unavailable. Please retry."):
        super().__init__(message=message, code="store_unavailable")

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "2"}
        return exc


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as query failures or constraint violations.
    """


class ConstraintViolationException(RepositoryException):
    """Raised when a uniqueness or check constraint rejects a write."""
