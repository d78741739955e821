from .business import Business
from .service import Service
from .availability import AvailabilitySlot
from .booking import Booking, BookingItem, BookingItemType, BookingStatus
from .payment import Payment, PaymentChannel, PaymentGateway, PaymentStatus, TERMINAL_PAYMENT_STATUSES
from .staff_user import StaffUser, StaffRole
from .audit_log import AuditLog, ActorType
