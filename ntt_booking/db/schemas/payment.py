from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel

from ..models.payment import PaymentChannel, PaymentGateway, PaymentStatus


class PaymentCreate(BaseModel):
    booking_id: int
    payment_channel: PaymentChannel


class PaymentCheckout(BaseModel):
    success: bool = True
    checkout_url: str
    payment_id: int


class Payment(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    gateway: PaymentGateway
    method: str | None = None
    gateway_session_id: str | None = None
    gateway_payment_id: str | None = None
    exchange_ref_number: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
