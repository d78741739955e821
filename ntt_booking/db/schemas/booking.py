import re
from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from ..models.booking import BookingItemType, BookingStatus

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BookingItemCreate(BaseModel):
    type: BookingItemType
    item_id: str = Field(min_length=1)
    name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)


class BookingCreate(BaseModel):
    business_id: int
    service_id: int | None = None
    availability_id: int
    customer_name: str = Field(min_length=1)
    customer_email: str
    customer_phone: str = Field(min_length=1)
    pax: int = Field(ge=1)
    items: list[BookingItemCreate] = Field(default_factory=list)
    subtotal: Decimal = Field(default=Decimal("0"), ge=0)
    addons_total: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None

    @field_validator("customer_name", "customer_phone", mode="before")
    @classmethod
    def strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email")
        return value


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingItem(BaseModel):
    type: BookingItemType
    item_id: str
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


class Booking(BaseModel):
    id: int
    ref_code: str
    business_id: int
    service_id: int | None = None
    availability_id: int | None = None
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    booking_date: date
    start_time: time
    pax: int
    status: BookingStatus
    subtotal: Decimal
    addons_total: Decimal
    total_amount: Decimal
    notes: str | None = None
    expires_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_reason: str | None = None
    created_at: datetime | None = None
    items: list[BookingItem] = Field(default_factory=list)

    class Config:
        from_attributes = True


class BookingCreated(BaseModel):
    success: bool = True
    booking_id: int
    ref_code: str
    expires_at: datetime | None = None
