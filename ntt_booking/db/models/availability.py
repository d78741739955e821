import datetime as dt
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class AvailabilitySlot(Base):
    __tablename__ = "availability"
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "service_id",
            "date",
            "start_time",
            name="uq_availability_business_service_time",
        ),
        CheckConstraint("capacity > 0", name="ck_availability_capacity_positive"),
        CheckConstraint("booked_count >= 0", name="ck_availability_booked_non_negative"),
        CheckConstraint("booked_count <= capacity", name="ck_availability_booked_within_capacity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), index=True)
    service_id: Mapped[int | None] = mapped_column(ForeignKey("services.id", ondelete="SET NULL"))
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    start_time: Mapped[dt.time] = mapped_column(Time)
    end_time: Mapped[dt.time] = mapped_column(Time)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(255))

    business = relationship("Business", back_populates="slots")
    service = relationship("Service")
    bookings = relationship("Booking", back_populates="slot", passive_deletes=True)

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked_count, 0)
