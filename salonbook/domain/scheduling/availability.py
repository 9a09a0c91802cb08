"""Availability calculation and staff auto-assignment"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Service, User
from .conflicts import has_appointment_conflict, is_time_slot_blocked, overlaps_any
from .exceptions import InvalidRequest, NotFound
from .repository import SchedulingRepository
from .tenant_settings import load_tenant_settings
from .timeutil import add_minutes, to_minutes
from .working_hours import Slot, generate_slots, is_within_working_hours, resolve_for_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableSlot:
    start: time
    end: time
    available: bool


@dataclass(frozen=True)
class StaffAvailability:
    staff_id: int
    staff_name: str
    slots: list[AvailableSlot]


class AvailabilityService:
    """Composes working hours, slot generation and conflict checks"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def available_slots(
        self, tenant_id: int, day: date, service_ids: list[int], staff_id: Optional[int] = None
    ) -> list[StaffAvailability]:
        """
        Bookable slots per staff member for a set of services on one day.

        Slots are as long as the services combined. A slot is available when the
        slot plus the last service's buffer fits the working hours and overlaps no
        active appointment or blocked period. Staff who are closed that day are
        left out rather than returned with no slots.
        """
        services = load_services(self.db, tenant_id, service_ids)

        duration = sum(service.duration_minutes for service in services)
        buffer = trailing_buffer(services)
        step = load_tenant_settings(self.db, tenant_id).slot_step_minutes

        if staff_id is not None:
            staff = self.repo.get_bookable_staff(self.db, tenant_id, staff_id)
            if staff is None:
                raise NotFound(f"Staff member {staff_id} not found")
            candidates = [staff]
        else:
            candidates = self.repo.get_active_staff(self.db, tenant_id)

        result = []
        for staff in candidates:
            staff_slots = self._staff_slots(tenant_id, staff, day, duration, buffer, step)
            if staff_slots:
                result.append(StaffAvailability(staff.id, staff.full_name, staff_slots))
        return result

    def _staff_slots(
        self, tenant_id: int, staff: User, day: date, duration: int, buffer: int, step: int
    ) -> list[AvailableSlot]:
        hours = resolve_for_date(self.db, tenant_id, staff.id, day)
        if hours is None:
            return []

        # One query each for the day's bookings and blocks, then check slots in memory
        appointments = self.repo.get_active_appointments_for_day(self.db, tenant_id, staff.id, day)
        blocks = self.repo.get_blocks_for_day(self.db, tenant_id, staff.id, day)

        slots = []
        for slot in generate_slots(hours, duration, step):
            buffered_end = _buffered_end(slot, buffer)
            available = (
                buffered_end is not None
                and is_within_working_hours(hours, slot.start, buffered_end)
                and not overlaps_any(appointments, slot.start, buffered_end)
                and not overlaps_any(blocks, slot.start, buffered_end)
            )
            slots.append(AvailableSlot(slot.start, slot.end, available))
        return slots

    def find_available_staff(
        self, tenant_id: int, day: date, start: time, end: time
    ) -> Optional[int]:
        """
        First active staff member (creation order) free for [start, end).

        Returns None when nobody qualifies; callers treat that as no capacity.
        """
        for staff in self.repo.get_active_staff(self.db, tenant_id):
            hours = resolve_for_date(self.db, tenant_id, staff.id, day)
            if not is_within_working_hours(hours, start, end):
                continue
            if is_time_slot_blocked(self.db, tenant_id, staff.id, day, start, end):
                continue
            if has_appointment_conflict(self.db, tenant_id, staff.id, day, start, end):
                continue
            return staff.id
        logger.info(f"⚠️ [tenant={tenant_id}] No staff available on {day} {start}-{end}")
        return None


def _buffered_end(slot: Slot, buffer: int) -> Optional[time]:
    """Slot end plus buffer, or None if that runs past midnight"""
    if to_minutes(slot.end) + buffer >= 24 * 60:
        return None
    return add_minutes(slot.end, buffer)


def trailing_buffer(services: list[Service]) -> int:
    """Only the last service's buffer counts"""
    return services[-1].buffer_minutes if services else 0


def load_services(db: Session, tenant_id: int, service_ids: list[int]) -> list[Service]:
    """Requested services in request order; every id must exist for this tenant"""
    if not service_ids:
        raise InvalidRequest("At least one service is required")
    if len(set(service_ids)) != len(service_ids):
        raise InvalidRequest("A service can only be booked once per appointment")
    services = SchedulingRepository.get_services_by_ids(db, tenant_id, service_ids)
    if len(services) != len(service_ids):
        raise NotFound("One or more services not found")
    return services
