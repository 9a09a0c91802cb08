from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

ROLE_CLIENT = "CLIENT"
ROLE_STAFF = "STAFF"
ROLE_TENANT_ADMIN = "TENANT_ADMIN"
BOOKABLE_ROLES = (ROLE_STAFF, ROLE_TENANT_ADMIN)


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SiteSettings(Base):
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), unique=True, nullable=False)
    timezone = Column(String(64), default="Europe/Istanbul", nullable=False)  # IANA zone name
    cancellation_policy_hours = Column(Integer, default=24, nullable=False)
    default_slot_duration_minutes = Column(Integer, default=30, nullable=False)  # Slot step
    auto_confirm_appointments = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class User(Base):
    """Clients and staff share one table; role decides what a row is"""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default=ROLE_CLIENT, nullable=False)  # CLIENT, STAFF, TENANT_ADMIN
    is_active = Column(Boolean, default=True, nullable=False)
    no_show_count = Column(Integer, default=0, nullable=False)
    is_blacklisted = Column(Boolean, default=False, nullable=False)
    blacklisted_at = Column(DateTime(timezone=True), nullable=True)
    blacklist_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, default=0, nullable=False)  # Dead time after the service
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    client_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    # Walk-in / public bookings carry the contact details directly
    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    date = Column(Date, index=True, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)  # start + sum of service durations, never the buffer
    total_duration_minutes = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), default="PENDING", index=True, nullable=False)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    recurring_group_id = Column(String(36), index=True, nullable=True)
    recurrence_rule = Column(String(20), nullable=True)  # WEEKLY, BIWEEKLY, MONTHLY
    reminder_24h_sent = Column(Boolean, default=False, nullable=False)
    reminder_1h_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    line_items = relationship(
        "AppointmentServiceItem",
        order_by="AppointmentServiceItem.sort_order",
        cascade="all, delete-orphan",
    )


class AppointmentServiceItem(Base):
    """Snapshot of a service as it was priced and timed at booking time"""

    __tablename__ = "appointment_services"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    service_title = Column(String(255), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, default=0, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)


class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (
        UniqueConstraint("tenant_id", "staff_id", "day_of_week", name="uq_working_hours_scope_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)  # NULL = facility
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    start_time = Column(Time, nullable=True)  # NULL on closed days
    end_time = Column(Time, nullable=True)
    break_start = Column(Time, nullable=True)
    break_end = Column(Time, nullable=True)
    is_open = Column(Boolean, default=True, nullable=False)


class BlockedTimeSlot(Base):
    __tablename__ = "blocked_time_slots"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)  # NULL = facility
    date = Column(Date, index=True, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class StaffDayLock(Base):
    """One row per (tenant, staff, date); bookings lock it before re-checking conflicts"""

    __tablename__ = "staff_day_locks"
    __table_args__ = (
        UniqueConstraint("tenant_id", "staff_id", "date", name="uq_staff_day_locks"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    staff_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    version = Column(Integer, default=0, nullable=False)  # Bumped on every booking write


class JobLease(Base):
    __tablename__ = "job_leases"

    name = Column(String(100), primary_key=True)
    locked_until = Column(DateTime, nullable=False)  # Naive UTC
    locked_at = Column(DateTime, nullable=False)
    locked_by = Column(String(255), nullable=False)
