"""Conflict detection against existing bookings and blocked periods"""

from datetime import date, time
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .repository import SchedulingRepository


def intervals_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open [start, end) overlap; intervals that only touch do not overlap"""
    return a_start < b_end and a_end > b_start


def overlaps_any(rows: Iterable, start: time, end: time) -> bool:
    """True if any row with start_time/end_time intersects [start, end)"""
    return any(intervals_overlap(row.start_time, row.end_time, start, end) for row in rows)


def has_appointment_conflict(
    db: Session,
    tenant_id: int,
    staff_id: int,
    day: date,
    start: time,
    end: time,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    return bool(
        SchedulingRepository.find_overlapping_appointments(
            db, tenant_id, staff_id, day, start, end, exclude_appointment_id
        )
    )


def is_time_slot_blocked(
    db: Session, tenant_id: int, staff_id: Optional[int], day: date, start: time, end: time
) -> bool:
    """Blocked for this staff member, or for the whole facility"""
    return bool(SchedulingRepository.find_overlapping_blocks(db, tenant_id, staff_id, day, start, end))


def has_conflict(
    db: Session,
    tenant_id: int,
    staff_id: int,
    day: date,
    start: time,
    end: time,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    """
    True if [start, end) overlaps an active appointment or a blocked period.

    Pass the buffered end (service end plus the last service's buffer) when checking
    a new booking. CANCELLED and NO_SHOW appointments never conflict.
    """
    return has_appointment_conflict(
        db, tenant_id, staff_id, day, start, end, exclude_appointment_id
    ) or is_time_slot_blocked(db, tenant_id, staff_id, day, start, end)
