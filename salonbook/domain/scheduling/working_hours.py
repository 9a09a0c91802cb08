"""Working hours resolution, slot generation and weekly-hours administration"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from ...models import WorkingHours
from .exceptions import InvalidRequest, NotFound
from .repository import SchedulingRepository
from .schemas import WorkingHoursEntry
from .timeutil import from_minutes, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenInterval:
    """The bookable window of one day, with an optional break"""

    start: time
    end: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None

    @classmethod
    def from_record(cls, record: WorkingHours) -> "OpenInterval":
        return cls(
            start=record.start_time,
            end=record.end_time,
            break_start=record.break_start,
            break_end=record.break_end,
        )


@dataclass(frozen=True)
class Slot:
    start: time
    end: time


def resolve_working_hours(
    db: Session, tenant_id: int, staff_id: Optional[int], day_of_week: int
) -> Optional[OpenInterval]:
    """
    Open interval for a staff member (or the facility) on a day of the week.

    Staff-specific hours win over facility hours. Returns None when neither exists
    or when the record that applies is marked closed.
    """
    record = None
    if staff_id is not None:
        record = SchedulingRepository.get_working_hours(db, tenant_id, staff_id, day_of_week)
    if record is None:
        record = SchedulingRepository.get_working_hours(db, tenant_id, None, day_of_week)
    if record is None or not record.is_open:
        return None
    return OpenInterval.from_record(record)


def resolve_for_date(
    db: Session, tenant_id: int, staff_id: Optional[int], day: date
) -> Optional[OpenInterval]:
    return resolve_working_hours(db, tenant_id, staff_id, day.weekday())


def generate_slots(hours: OpenInterval, duration_minutes: int, step_minutes: int) -> Iterator[Slot]:
    """
    Candidate [start, end) slots of `duration_minutes`, stepping by `step_minutes`.

    A candidate that overlaps the break is skipped and generation resumes at the
    break's end. Generation stops once a candidate would run past closing time.
    Each call returns a fresh iterator over the same sequence.
    """
    if duration_minutes <= 0:
        raise InvalidRequest("Slot duration must be positive")
    if step_minutes <= 0:
        raise InvalidRequest("Slot step must be positive")
    return _iter_slots(hours, duration_minutes, step_minutes)


def _iter_slots(hours: OpenInterval, duration: int, step: int) -> Iterator[Slot]:
    current = to_minutes(hours.start)
    closing = to_minutes(hours.end)
    break_start = to_minutes(hours.break_start) if hours.has_break else None
    break_end = to_minutes(hours.break_end) if hours.has_break else None

    while current + duration <= closing:
        slot_end = current + duration
        if break_start is not None and current < break_end and slot_end > break_start:
            current = break_end
            continue
        yield Slot(from_minutes(current), from_minutes(slot_end))
        current += step


def is_within_working_hours(hours: Optional[OpenInterval], start: time, end: time) -> bool:
    """True if [start, end) sits inside the open interval and clear of the break"""
    if hours is None:
        return False
    if start < hours.start or end > hours.end:
        return False
    if hours.has_break and start < hours.break_end and end > hours.break_start:
        return False
    return True


class WorkingHoursService:
    """Weekly hours administration. A scope's week is always replaced as a whole."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def get_hours(self, tenant_id: int, staff_id: Optional[int] = None) -> list[WorkingHours]:
        if staff_id is not None:
            self._require_staff(tenant_id, staff_id)
        return self.repo.list_working_hours(self.db, tenant_id, staff_id)

    def replace_hours(
        self, tenant_id: int, entries: list[WorkingHoursEntry], staff_id: Optional[int] = None
    ) -> list[WorkingHours]:
        """Delete the scope's hours and insert the new week in one transaction"""
        if staff_id is not None:
            self._require_staff(tenant_id, staff_id)
        validate_week(entries)

        scope = f"staff {staff_id}" if staff_id is not None else "facility"
        try:
            self.repo.delete_working_hours(self.db, tenant_id, staff_id)
            for entry in entries:
                self.db.add(
                    WorkingHours(
                        tenant_id=tenant_id,
                        staff_id=staff_id,
                        day_of_week=entry.dayOfWeek,
                        start_time=entry.startTime,
                        end_time=entry.endTime,
                        break_start=entry.breakStartTime,
                        break_end=entry.breakEndTime,
                        is_open=entry.isOpen,
                    )
                )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ [tenant={tenant_id}] Failed to replace working hours for {scope}: {e}")
            raise

        logger.info(f"✅ [tenant={tenant_id}] Replaced working hours for {scope} ({len(entries)} days)")
        return self.repo.list_working_hours(self.db, tenant_id, staff_id)

    def _require_staff(self, tenant_id: int, staff_id: int) -> None:
        if self.repo.get_user(self.db, tenant_id, staff_id) is None:
            raise NotFound(f"Staff member {staff_id} not found")


def validate_week(entries: list[WorkingHoursEntry]) -> None:
    seen = set()
    for entry in entries:
        if entry.dayOfWeek in seen:
            raise InvalidRequest(f"Day {entry.dayOfWeek} appears more than once")
        seen.add(entry.dayOfWeek)

        if not entry.isOpen:
            continue
        if entry.startTime is None or entry.endTime is None:
            raise InvalidRequest(f"Day {entry.dayOfWeek}: open days need opening and closing times")
        if entry.endTime <= entry.startTime:
            raise InvalidRequest(f"Day {entry.dayOfWeek}: closing time must be after opening time")

        has_start = entry.breakStartTime is not None
        has_end = entry.breakEndTime is not None
        if has_start != has_end:
            raise InvalidRequest(f"Day {entry.dayOfWeek}: break needs both a start and an end")
        if has_start:
            if entry.breakEndTime <= entry.breakStartTime:
                raise InvalidRequest(f"Day {entry.dayOfWeek}: break end must be after break start")
            if entry.breakStartTime < entry.startTime or entry.breakEndTime > entry.endTime:
                raise InvalidRequest(f"Day {entry.dayOfWeek}: break must fall within working hours")
