from .availability import (
    AvailabilitySlot,
    AvailabilitySlotCreate,
    AvailabilitySlotUpdate,
    BlockDate,
    CapacityCheck,
    RecurringSlotsCreate,
)
from .booking import (
    Booking,
    BookingCancel,
    BookingCreate,
    BookingCreated,
    BookingItemCreate,
)
from .payment import Payment, PaymentCheckout, PaymentCreate
