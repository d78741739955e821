from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import (
    CHAR,
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class PaymentStatus(str, PyEnum):
    pending = "pending"
    processing = "processing"
    succeeded = "succeeded"
    failed = "failed"
    refunded = "refunded"


TERMINAL_PAYMENT_STATUSES = (
    PaymentStatus.succeeded,
    PaymentStatus.failed,
    PaymentStatus.refunded,
)


class PaymentGateway(str, PyEnum):
    stub = "stub"
    bayarcash = "bayarcash"


class PaymentChannel(str, PyEnum):
    """Channels enabled for checkout; values are the gateway's channel names."""

    FPX = "FPX"
    FPX_LINE_OF_CREDIT = "FPX_LINE_OF_CREDIT"
    DUITNOW_DOBW = "DUITNOW_DOBW"
    DUITNOW_QR = "DUITNOW_QR"


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(CHAR(3), default="MYR")
    status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), default=PaymentStatus.pending)
    gateway: Mapped[PaymentGateway] = mapped_column(Enum(PaymentGateway))
    method: Mapped[str | None] = mapped_column(String(32))
    gateway_session_id: Mapped[str | None] = mapped_column(String(128), index=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(128))
    exchange_ref_number: Mapped[str | None] = mapped_column(String(128))
    payer_bank_code: Mapped[str | None] = mapped_column(String(64))
    checkout_url: Mapped[str | None] = mapped_column(String(512))
    gateway_payload: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES
