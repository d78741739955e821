from . import (
    auth,
    availability,
    bookings,
    payments,
    cron,
    misc,
)

__all__ = [
    "auth",
    "availability",
    "bookings",
    "payments",
    "cron",
    "misc",
]
