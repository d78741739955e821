from . import (
    availability_service,
    booking_service,
    capacity_service,
    payment_service,
)
__all__ = [
    "availability_service",
    "booking_service",
    "capacity_service",
    "payment_service",
]
