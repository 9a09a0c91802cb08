"""Recurring series expansion - one independent booking per occurrence"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...models import Appointment
from ...shared.results import attempt, fold
from .exceptions import InvalidRequest
from .lifecycle import AppointmentService
from .schemas import RecurringAppointmentCreate

logger = logging.getLogger(__name__)

RECURRENCE_STEPS = {
    "WEEKLY": lambda index: relativedelta(weeks=index),
    "BIWEEKLY": lambda index: relativedelta(weeks=2 * index),
    "MONTHLY": lambda index: relativedelta(months=index),
}

MIN_OCCURRENCES = 2
MAX_OCCURRENCES = 52


@dataclass
class RecurringResult:
    group_id: str
    total_requested: int
    created: list[Appointment] = field(default_factory=list)
    skipped_dates: list[date] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return len(self.created)


def occurrence_dates(base: date, rule: str, count: int) -> list[date]:
    """
    Candidate dates for a series. MONTHLY uses calendar months, so Jan 31 is
    followed by the last day of February.
    """
    step = RECURRENCE_STEPS.get(rule)
    if step is None:
        raise InvalidRequest(f"Unsupported recurrence rule: {rule}. Use WEEKLY, BIWEEKLY or MONTHLY")
    if count < 1:
        raise InvalidRequest("Occurrence count must be positive")
    return [base + step(index) for index in range(count)]


class RecurringService:
    """Books each occurrence on its own; a failed occurrence is skipped, not rolled back"""

    def __init__(self, db: Session, appointments: AppointmentService):
        self.db = db
        self.appointments = appointments

    def create_recurring(self, tenant_id: int, data: RecurringAppointmentCreate) -> RecurringResult:
        rule = data.recurrenceRule.strip().upper()
        if not MIN_OCCURRENCES <= data.count <= MAX_OCCURRENCES:
            raise InvalidRequest(
                f"Occurrence count must be between {MIN_OCCURRENCES} and {MAX_OCCURRENCES}"
            )
        dates = occurrence_dates(data.date, rule, data.count)

        results = [
            (day, attempt(self.appointments.create, tenant_id, data.model_copy(update={"date": day})))
            for day in dates
        ]
        outcome = fold(results)

        result = RecurringResult(group_id=str(uuid.uuid4()), total_requested=data.count)
        for day, err in outcome.failed:
            logger.warning(f"⚠️ [tenant={tenant_id}] Skipped recurring occurrence on {day}: {err.message}")
            result.skipped_dates.append(day)

        if outcome.succeeded:
            for appointment in outcome.succeeded:
                appointment.recurring_group_id = result.group_id
                appointment.recurrence_rule = rule
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            result.created = outcome.succeeded

        logger.info(
            f"📊 [tenant={tenant_id}] Recurring series {result.group_id} ({rule}): "
            f"{result.total_created}/{result.total_requested} created"
        )
        return result
