from datetime import datetime
from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ...core.constants import DEFAULT_AUTO_CANCEL_MINUTES
from ..session import Base


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_cancel_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_cancel_timeout: Mapped[int] = mapped_column(Integer, default=DEFAULT_AUTO_CANCEL_MINUTES)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    services = relationship("Service", back_populates="business")
    slots = relationship("AvailabilitySlot", back_populates="business")
