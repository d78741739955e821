import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class AvailabilitySlotBase(BaseModel):
    service_id: int | None = None
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    capacity: int = Field(ge=1)
    notes: str | None = None

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AvailabilitySlotCreate(AvailabilitySlotBase):
    business_id: int | None = None


class AvailabilitySlotUpdate(BaseModel):
    service_id: int | None = None
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    capacity: int | None = Field(default=None, ge=1)
    notes: str | None = None


class RecurringSlotsCreate(BaseModel):
    business_id: int | None = None
    service_id: int | None = None
    pattern_type: Literal["weekly", "monthly", "custom"] = "weekly"
    # 0 = Sunday ... 6 = Saturday
    days_of_week: list[int] = Field(default_factory=list)
    monthly_week: Literal["all", "first", "second", "third", "fourth", "last"] = "all"
    custom_dates: list[dt.date] = Field(default_factory=list)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    start_time: dt.time
    end_time: dt.time
    capacity: int = Field(ge=1)

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, value: list[int]) -> list[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("days_of_week entries must be between 0 and 6")
        return value

    @model_validator(mode="after")
    def check_range(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.pattern_type != "custom":
            if self.start_date is None or self.end_date is None:
                raise ValueError("Start and end dates are required")
            if self.end_date < self.start_date:
                raise ValueError("end_date must not be before start_date")
        return self


class BlockDate(BaseModel):
    business_id: int | None = None
    date: dt.date
    blocked: bool = True


class AvailabilitySlot(BaseModel):
    id: int
    business_id: int
    service_id: int | None = None
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    capacity: int
    booked_count: int
    is_blocked: bool
    notes: str | None = None

    class Config:
        from_attributes = True


class CapacityCheck(BaseModel):
    available: bool
    remaining: int
    capacity: int = 0
    booked: int = 0
    error: str | None = None
