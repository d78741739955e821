"""Domain errors raised by the booking services.

Every error is recoverable at the request boundary; ``api.errors`` maps each
class onto an HTTP status and a ``code`` string.
"""

from __future__ import annotations


class BookingError(Exception):
    code = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    code = "validation_error"

    def __init__(self, errors: dict[str, list[str]], message: str = "Invalid input") -> None:
        super().__init__(message)
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]}, message)


class SlotNotFoundError(BookingError):
    code = "slot_not_found"

    def __init__(self, message: str = "Time slot not found") -> None:
        super().__init__(message)


class SlotBlockedError(BookingError):
    code = "slot_blocked"

    def __init__(self, message: str = "This date is blocked for bookings") -> None:
        super().__init__(message)


class SlotInUseError(BookingError):
    code = "slot_in_use"

    def __init__(self, message: str = "Cannot delete slot with existing bookings") -> None:
        super().__init__(message)


class CapacityExceededError(BookingError):
    code = "capacity_exceeded"

    def __init__(self, remaining: int) -> None:
        super().__init__(f"Only {remaining} spots remaining")
        self.remaining = remaining


class BookingNotFoundError(BookingError):
    code = "booking_not_found"

    def __init__(self, message: str = "Booking not found") -> None:
        super().__init__(message)


class AlreadyCancelledError(BookingError):
    code = "already_cancelled"

    def __init__(self, message: str = "Booking is already cancelled") -> None:
        super().__init__(message)


class InvalidTransitionError(BookingError):
    code = "invalid_transition"


class PaymentNotFoundError(BookingError):
    code = "payment_not_found"

    def __init__(self, message: str = "Payment not found") -> None:
        super().__init__(message)


class GatewayUnavailableError(BookingError):
    code = "gateway_unavailable"


__all__ = [
    "BookingError",
    "ValidationError",
    "SlotNotFoundError",
    "SlotBlockedError",
    "SlotInUseError",
    "CapacityExceededError",
    "BookingNotFoundError",
    "AlreadyCancelledError",
    "InvalidTransitionError",
    "PaymentNotFoundError",
    "GatewayUnavailableError",
]
