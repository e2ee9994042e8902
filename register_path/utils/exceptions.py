"""
Custom exceptions for the Register Path service.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the service."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Registration workflow errors
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    CONFLICTING_STATE = "CONFLICTING_STATE"

    # External service errors
    PAYMENT_PROVIDER_UNAVAILABLE = "PAYMENT_PROVIDER_UNAVAILABLE"
    WEBHOOK_SIGNATURE_INVALID = "WEBHOOK_SIGNATURE_INVALID"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


class RegisterPathError(Exception):
    """Base exception class for the service."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(RegisterPathError):
    """Bad input shape or range; raised before any mutation."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field_errors": field_errors} if field_errors else None,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(RegisterPathError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class EventNotFoundError(NotFoundError):

    def __init__(self, event_id: str, **kwargs):
        super().__init__(
            f"Event {event_id} not found",
            resource_type="event",
            resource_id=str(event_id),
            suggestions=["Check the event ID", "Browse published events"],
            **kwargs
        )


class RegistrationNotFoundError(NotFoundError):

    def __init__(self, registration_id: str, **kwargs):
        super().__init__(
            f"Registration {registration_id} not found",
            resource_type="registration",
            resource_id=str(registration_id),
            **kwargs
        )


class TicketNotFoundError(NotFoundError):

    def __init__(self, ticket_code: str, **kwargs):
        super().__init__(
            f"Ticket {ticket_code} not found",
            resource_type="ticket",
            resource_id=ticket_code,
            suggestions=["Re-scan the QR code", "Type the ticket code manually"],
            **kwargs
        )


class AuthenticationError(RegisterPathError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Admin authentication required", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Log in as an administrator"],
            **kwargs
        )


class BusinessLogicError(RegisterPathError):
    """Base exception for registration workflow violations."""
    pass


class CapacityExceededError(BusinessLogicError):
    """No seats left and the event does not accept a waitlist."""

    def __init__(self, requested: int, available: int, event_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Event is full: requested {requested} seats, {available} remaining",
            error_code=ErrorCode.CAPACITY_EXCEEDED,
            details={"requested": requested, "available": available, "event_id": event_id},
            suggestions=["Try registering for fewer seats", "Check other events"],
            **kwargs
        )


class AlreadyCheckedInError(BusinessLogicError):
    """Duplicate scan of a ticket that was already used."""

    def __init__(self, ticket_code: str, checked_in_at: Optional[str] = None, **kwargs):
        super().__init__(
            f"Ticket {ticket_code} already checked in",
            error_code=ErrorCode.ALREADY_CHECKED_IN,
            details={"ticket_code": ticket_code, "checked_in_at": checked_in_at},
            **kwargs
        )
        self.ticket_code = ticket_code


class ConflictingStateError(BusinessLogicError):
    """Operation is not valid for the resource's current state."""

    def __init__(self, message: str, current_state: Optional[str] = None, required_state: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if current_state:
            details["current_state"] = current_state
        if required_state:
            details["required_state"] = required_state
        super().__init__(
            message,
            error_code=ErrorCode.CONFLICTING_STATE,
            details=details,
            **kwargs
        )


class ExternalServiceError(RegisterPathError):
    """Exception raised for external service failures."""

    def __init__(self, service_name: str, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.EXTERNAL_SERVICE_ERROR)
        kwargs.setdefault("suggestions", ["Try again later"])
        details = {"service_name": service_name, "status_code": status_code}
        details.update(kwargs.pop("details", None) or {})
        super().__init__(
            f"{service_name} service error: {message}",
            details=details,
            **kwargs
        )
        self.service_name = service_name


class PaymentProviderUnavailableError(ExternalServiceError):
    """The payment provider could not be reached; safe to retry."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retry_after", 5)
        super().__init__(
            "payment",
            message,
            error_code=ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE,
            **kwargs
        )


class NotificationDeliveryError(ExternalServiceError):
    """An email could not be delivered."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            "email",
            message,
            error_code=ErrorCode.NOTIFICATION_FAILED,
            **kwargs
        )


class WebhookSignatureError(RegisterPathError):
    """Inbound provider notification failed signature or payload checks."""

    def __init__(self, message: str = "Invalid webhook signature", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.WEBHOOK_SIGNATURE_INVALID,
            **kwargs
        )
