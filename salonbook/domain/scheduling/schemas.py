"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_email, validate_phone
from .status import AppointmentStatus


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment (registered client or walk-in)"""

    clientId: Optional[int] = None
    clientName: Optional[str] = None
    clientEmail: Optional[str] = None
    clientPhone: Optional[str] = None
    staffId: Optional[int] = None  # None = auto-assign
    serviceIds: list[int] = Field(min_length=1)
    date: date
    startTime: time
    notes: Optional[str] = None

    @field_validator("clientEmail")
    @classmethod
    def validate_client_email(cls, v):
        if v:
            return validate_email(v)
        return v

    @field_validator("clientPhone")
    @classmethod
    def validate_client_phone(cls, v):
        if v:
            return validate_phone(v)
        return v


class RecurringAppointmentCreate(AppointmentCreate):
    """Schema for booking a recurring series; rule is WEEKLY, BIWEEKLY or MONTHLY"""

    recurrenceRule: str
    count: int


class StatusUpdate(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None


class RescheduleRequest(BaseModel):
    date: date
    startTime: time
    staffId: Optional[int] = None  # None = keep current staff member


class WorkingHoursEntry(BaseModel):
    """One day of a weekly schedule. dayOfWeek: 0 = Monday ... 6 = Sunday"""

    dayOfWeek: int = Field(ge=0, le=6)
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    breakStartTime: Optional[time] = None
    breakEndTime: Optional[time] = None
    isOpen: bool = True


class WorkingHoursUpdate(BaseModel):
    days: list[WorkingHoursEntry]


class BlockedSlotCreate(BaseModel):
    staffId: Optional[int] = None  # None = whole facility
    date: date
    startTime: time
    endTime: time
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_order(self):
        if self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


# ============================================================================
# RESPONSES
# ============================================================================


class AppointmentServiceItemResponse(BaseModel):
    service_id: int
    service_title: Optional[str] = None
    price: Decimal
    duration_minutes: int
    buffer_minutes: int
    sort_order: int

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    staff_id: Optional[int]
    client_id: Optional[int]
    client_name: Optional[str]
    client_email: Optional[str]
    client_phone: Optional[str]
    date: date
    start_time: time
    end_time: time
    total_duration_minutes: int
    total_price: Decimal
    status: str
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    recurring_group_id: Optional[str] = None
    recurrence_rule: Optional[str] = None
    line_items: list[AppointmentServiceItemResponse] = []

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    startTime: time
    endTime: time
    available: bool


class StaffAvailabilityResponse(BaseModel):
    staffId: int
    staffName: str
    slots: list[SlotResponse]


class RecurringResultResponse(BaseModel):
    groupId: str
    created: list[AppointmentResponse]
    skippedDates: list[date]
    totalRequested: int
    totalCreated: int


class WorkingHoursResponse(BaseModel):
    id: int
    staff_id: Optional[int]
    day_of_week: int
    start_time: Optional[time]
    end_time: Optional[time]
    break_start: Optional[time]
    break_end: Optional[time]
    is_open: bool

    class Config:
        from_attributes = True


class BlockedSlotResponse(BaseModel):
    id: int
    staff_id: Optional[int]
    date: date
    start_time: time
    end_time: time
    reason: Optional[str]

    class Config:
        from_attributes = True
