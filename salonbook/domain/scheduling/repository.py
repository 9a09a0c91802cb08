"""Scheduling repository - Database operations for appointments, hours and blocks"""

from datetime import date, time
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    BOOKABLE_ROLES,
    Appointment,
    BlockedTimeSlot,
    Service,
    SiteSettings,
    StaffDayLock,
    Tenant,
    User,
    WorkingHours,
)
from .status import NON_BLOCKING_STATUSES, AppointmentStatus


class SchedulingRepository:
    """Repository for scheduling database operations. Every query is tenant-scoped."""

    # ------------------------------------------------------------------
    # Tenants & settings
    # ------------------------------------------------------------------

    @staticmethod
    def get_active_tenant_ids(db: Session) -> list[int]:
        rows = db.query(Tenant.id).filter(Tenant.is_active.is_(True)).order_by(Tenant.id).all()
        return [row.id for row in rows]

    @staticmethod
    def get_site_settings(db: Session, tenant_id: int) -> Optional[SiteSettings]:
        return db.query(SiteSettings).filter(SiteSettings.tenant_id == tenant_id).first()

    # ------------------------------------------------------------------
    # Users & services
    # ------------------------------------------------------------------

    @staticmethod
    def get_user(
        db: Session, tenant_id: int, user_id: int, for_update: bool = False
    ) -> Optional[User]:
        query = db.query(User).filter(User.tenant_id == tenant_id, User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_user_by_email(db: Session, tenant_id: int, email: str) -> Optional[User]:
        return (
            db.query(User)
            .filter(User.tenant_id == tenant_id, User.email == email.strip().lower())
            .first()
        )

    @staticmethod
    def get_bookable_staff(db: Session, tenant_id: int, staff_id: int) -> Optional[User]:
        """The staff member if they are active and may take bookings"""
        return (
            db.query(User)
            .filter(
                User.tenant_id == tenant_id,
                User.id == staff_id,
                User.is_active.is_(True),
                User.role.in_(BOOKABLE_ROLES),
            )
            .first()
        )

    @staticmethod
    def get_active_staff(db: Session, tenant_id: int) -> list[User]:
        """Active bookable staff in creation order (id ascending)"""
        return (
            db.query(User)
            .filter(
                User.tenant_id == tenant_id,
                User.is_active.is_(True),
                User.role.in_(BOOKABLE_ROLES),
            )
            .order_by(User.id)
            .all()
        )

    @staticmethod
    def get_services_by_ids(db: Session, tenant_id: int, service_ids: list[int]) -> list[Service]:
        """Services in the order they were requested (duplicates dropped)"""
        found = (
            db.query(Service)
            .filter(Service.tenant_id == tenant_id, Service.id.in_(service_ids))
            .all()
        )
        by_id = {service.id: service for service in found}
        ordered = []
        for service_id in dict.fromkeys(service_ids):
            if service_id in by_id:
                ordered.append(by_id[service_id])
        return ordered

    # ------------------------------------------------------------------
    # Working hours
    # ------------------------------------------------------------------

    @staticmethod
    def get_working_hours(
        db: Session, tenant_id: int, staff_id: Optional[int], day_of_week: int
    ) -> Optional[WorkingHours]:
        """Hours for exactly one scope; staff_id=None means facility-wide"""
        query = db.query(WorkingHours).filter(
            WorkingHours.tenant_id == tenant_id, WorkingHours.day_of_week == day_of_week
        )
        if staff_id is None:
            query = query.filter(WorkingHours.staff_id.is_(None))
        else:
            query = query.filter(WorkingHours.staff_id == staff_id)
        return query.first()

    @staticmethod
    def list_working_hours(db: Session, tenant_id: int, staff_id: Optional[int]) -> list[WorkingHours]:
        query = db.query(WorkingHours).filter(WorkingHours.tenant_id == tenant_id)
        if staff_id is None:
            query = query.filter(WorkingHours.staff_id.is_(None))
        else:
            query = query.filter(WorkingHours.staff_id == staff_id)
        return query.order_by(WorkingHours.day_of_week).all()

    @staticmethod
    def delete_working_hours(db: Session, tenant_id: int, staff_id: Optional[int]) -> int:
        """Delete a scope's hours without committing"""
        query = db.query(WorkingHours).filter(WorkingHours.tenant_id == tenant_id)
        if staff_id is None:
            query = query.filter(WorkingHours.staff_id.is_(None))
        else:
            query = query.filter(WorkingHours.staff_id == staff_id)
        return query.delete(synchronize_session=False)

    # ------------------------------------------------------------------
    # Overlap queries
    # ------------------------------------------------------------------

    @staticmethod
    def find_overlapping_appointments(
        db: Session,
        tenant_id: int,
        staff_id: int,
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Active appointments whose [start, end) intersects the window"""
        query = db.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.staff_id == staff_id,
            Appointment.date == day,
            Appointment.status.notin_(NON_BLOCKING_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.all()

    @staticmethod
    def find_overlapping_blocks(
        db: Session, tenant_id: int, staff_id: Optional[int], day: date, start: time, end: time
    ) -> list[BlockedTimeSlot]:
        """Blocks for this staff member or the whole facility that intersect the window"""
        return (
            db.query(BlockedTimeSlot)
            .filter(
                BlockedTimeSlot.tenant_id == tenant_id,
                BlockedTimeSlot.date == day,
                or_(BlockedTimeSlot.staff_id == staff_id, BlockedTimeSlot.staff_id.is_(None)),
                BlockedTimeSlot.start_time < end,
                BlockedTimeSlot.end_time > start,
            )
            .all()
        )

    @staticmethod
    def get_active_appointments_for_day(
        db: Session, tenant_id: int, staff_id: int, day: date
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.tenant_id == tenant_id,
                Appointment.staff_id == staff_id,
                Appointment.date == day,
                Appointment.status.notin_(NON_BLOCKING_STATUSES),
            )
            .order_by(Appointment.start_time)
            .all()
        )

    @staticmethod
    def get_blocks_for_day(
        db: Session, tenant_id: int, staff_id: Optional[int], day: date
    ) -> list[BlockedTimeSlot]:
        return (
            db.query(BlockedTimeSlot)
            .filter(
                BlockedTimeSlot.tenant_id == tenant_id,
                BlockedTimeSlot.date == day,
                or_(BlockedTimeSlot.staff_id == staff_id, BlockedTimeSlot.staff_id.is_(None)),
            )
            .order_by(BlockedTimeSlot.start_time)
            .all()
        )

    # ------------------------------------------------------------------
    # Booking lock
    # ------------------------------------------------------------------

    @staticmethod
    def lock_staff_day(db: Session, tenant_id: int, staff_id: int, day: date) -> None:
        """
        Take the write lock for one staff member's day.

        The UPDATE holds a row lock until the surrounding transaction ends, so two
        bookings for the same staff and date serialize here. The first booking of a
        day inserts the row inside a savepoint; if a concurrent booking inserted it
        first, fall back to the UPDATE, which then waits on that writer.
        """
        filters = (
            StaffDayLock.tenant_id == tenant_id,
            StaffDayLock.staff_id == staff_id,
            StaffDayLock.date == day,
        )
        bump = {StaffDayLock.version: StaffDayLock.version + 1}

        updated = db.query(StaffDayLock).filter(*filters).update(bump, synchronize_session=False)
        if updated:
            return

        try:
            with db.begin_nested():
                db.add(StaffDayLock(tenant_id=tenant_id, staff_id=staff_id, date=day, version=1))
        except IntegrityError:
            db.query(StaffDayLock).filter(*filters).update(bump, synchronize_session=False)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    @staticmethod
    def get_appointment(
        db: Session, tenant_id: int, appointment_id: int, for_update: bool = False
    ) -> Optional[Appointment]:
        query = db.query(Appointment).filter(
            Appointment.tenant_id == tenant_id, Appointment.id == appointment_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_staff_calendar(db: Session, tenant_id: int, staff_id: int, day: date) -> list[Appointment]:
        """A staff member's day, cancelled appointments excluded"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.tenant_id == tenant_id,
                Appointment.staff_id == staff_id,
                Appointment.date == day,
                Appointment.status != AppointmentStatus.CANCELLED.value,
            )
            .order_by(Appointment.start_time)
            .all()
        )

    @staticmethod
    def get_client_appointments(db: Session, tenant_id: int, client_id: int) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.tenant_id == tenant_id, Appointment.client_id == client_id)
            .order_by(Appointment.date.desc(), Appointment.start_time.desc())
            .all()
        )

    @staticmethod
    def get_recurring_group(db: Session, tenant_id: int, group_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.tenant_id == tenant_id, Appointment.recurring_group_id == group_id)
            .order_by(Appointment.date)
            .all()
        )

    @staticmethod
    def find_confirmed_ended_by(
        db: Session, tenant_id: int, cutoff_date: date, cutoff_time: time
    ) -> list[Appointment]:
        """CONFIRMED appointments whose scheduled end is at or before the cutoff"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.tenant_id == tenant_id,
                Appointment.status == AppointmentStatus.CONFIRMED.value,
                or_(
                    Appointment.date < cutoff_date,
                    (Appointment.date == cutoff_date) & (Appointment.end_time <= cutoff_time),
                ),
            )
            .order_by(Appointment.date, Appointment.end_time, Appointment.id)
            .all()
        )

    @staticmethod
    def find_confirmed_starting_between(
        db: Session, tenant_id: int, day: date, window_start: time, window_end: time, sent_flag
    ) -> list[Appointment]:
        """CONFIRMED appointments on `day` starting in [window_start, window_end] whose flag is unset"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.tenant_id == tenant_id,
                Appointment.status == AppointmentStatus.CONFIRMED.value,
                Appointment.date == day,
                Appointment.start_time >= window_start,
                Appointment.start_time <= window_end,
                sent_flag.is_(False),
            )
            .order_by(Appointment.start_time, Appointment.id)
            .all()
        )

    # ------------------------------------------------------------------
    # Blocked slots
    # ------------------------------------------------------------------

    @staticmethod
    def list_blocked_slots(
        db: Session, tenant_id: int, staff_id: Optional[int] = None
    ) -> list[BlockedTimeSlot]:
        query = db.query(BlockedTimeSlot).filter(BlockedTimeSlot.tenant_id == tenant_id)
        if staff_id is not None:
            query = query.filter(BlockedTimeSlot.staff_id == staff_id)
        return query.order_by(BlockedTimeSlot.date, BlockedTimeSlot.start_time).all()

    @staticmethod
    def get_blocked_slot(db: Session, tenant_id: int, slot_id: int) -> Optional[BlockedTimeSlot]:
        return (
            db.query(BlockedTimeSlot)
            .filter(BlockedTimeSlot.tenant_id == tenant_id, BlockedTimeSlot.id == slot_id)
            .first()
        )

    @staticmethod
    def create_blocked_slot(db: Session, tenant_id: int, **slot_data) -> BlockedTimeSlot:
        slot = BlockedTimeSlot(tenant_id=tenant_id, **slot_data)
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    @staticmethod
    def delete_blocked_slot(db: Session, slot: BlockedTimeSlot) -> None:
        db.delete(slot)
        db.commit()
