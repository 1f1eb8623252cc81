"""
Typed errors raised by the booking, lifecycle and payment services.

Each error is an ``HTTPException`` so routers can let it propagate; the
application handler in ``main`` renders it as
``{"success": false, "message": ..., "error": code}``.
"""
from fastapi import HTTPException, status


class BookingError(HTTPException):
    """Base class for domain errors scoped to a single request."""

    code = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, detail: str = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_message,
        )

    @property
    def message(self) -> str:
        return self.detail


class NotFoundError(BookingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class UnauthorizedError(BookingError):
    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to perform this action"


class InvalidStateError(BookingError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Appointment is not in a valid state for this action"


class DoctorUnavailableError(InvalidStateError):
    default_message = "Doctor not available"


class AlreadyTerminalError(InvalidStateError):
    default_message = "Appointment is already cancelled or completed"


class SlotTakenError(BookingError):
    code = "slot_taken"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Slot not available"


class InvalidSignatureError(BookingError):
    code = "invalid_signature"
    default_message = "Invalid payment signature"


class InvalidAmountError(BookingError):
    code = "invalid_amount"
    default_message = "Invalid appointment amount"


class InvalidRequestError(BookingError):
    code = "invalid_request"
    default_message = "Missing or malformed request details"


class GatewayError(BookingError):
    code = "gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment gateway request failed"


class PersistenceError(BookingError):
    code = "persistence_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage error, please retry"


class LockTimeoutError(BookingError):
    code = "lock_timeout"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Resource is busy, please retry"
