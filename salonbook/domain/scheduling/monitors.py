"""
Batch monitors run by the worker

NoShowMonitor flips CONFIRMED appointments whose end passed more than the grace
period ago to NO_SHOW. ReminderMonitor sends the 24h and 1h reminders. Both work
one tenant at a time in that tenant's timezone, and evaluate each appointment into
its own result so one bad record cannot stop the rest.
"""

import logging
from datetime import datetime, time, timedelta

from sqlalchemy.orm import Session

from ... import config
from ...models import Appointment
from ...services.notification_service import (
    NotificationDispatcher,
    NotificationKind,
    appointment_context,
)
from ...shared.results import BatchOutcome, Err, attempt, fold
from .lifecycle import AppointmentService
from .repository import SchedulingRepository
from .status import AppointmentStatus
from .tenant_settings import load_tenant_settings
from .timeutil import Clock, tenant_now, utc_now

logger = logging.getLogger(__name__)


class NotificationFailed(Exception):
    pass


def summarize(outcomes: dict) -> dict:
    """Collapse per-tenant outcomes into a job summary"""
    summary = {"tenants": len(outcomes), "processed": 0, "failed": 0, "errors": []}
    for tenant_id, outcome in outcomes.items():
        if isinstance(outcome, Err):
            summary["errors"].append(f"tenant {tenant_id}: {outcome.message}")
            continue
        summary["processed"] += len(outcome.succeeded)
        summary["failed"] += len(outcome.failed)
        for key, err in outcome.failed:
            summary["errors"].append(f"tenant {tenant_id}, appointment {key}: {err.message}")
    return summary


class NoShowMonitor:
    def __init__(self, db: Session, notifier: NotificationDispatcher, clock: Clock = utc_now):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.repo = SchedulingRepository()
        self.appointments = AppointmentService(db, notifier=notifier, clock=clock)

    def run(self) -> dict:
        outcomes = {}
        for tenant_id in self.repo.get_active_tenant_ids(self.db):
            result = attempt(self.run_for_tenant, tenant_id)
            if isinstance(result, Err):
                self.db.rollback()
                logger.error(f"❌ [tenant={tenant_id}] No-show check failed: {result.message}")
                outcomes[tenant_id] = result
            else:
                outcomes[tenant_id] = result.value
        summary = summarize(outcomes)
        logger.info(
            f"📊 No-show check: {summary['processed']} marked, {summary['failed']} failed "
            f"across {summary['tenants']} tenants"
        )
        return summary

    def run_for_tenant(self, tenant_id: int) -> BatchOutcome:
        settings = load_tenant_settings(self.db, tenant_id)
        now = tenant_now(self.clock, settings.timezone)
        cutoff = now - timedelta(minutes=config.NO_SHOW_GRACE_MINUTES)

        overdue = self.repo.find_confirmed_ended_by(self.db, tenant_id, cutoff.date(), cutoff.time())
        if not overdue:
            return BatchOutcome()

        ids = [appointment.id for appointment in overdue]
        outcome = fold(
            (appointment_id, attempt(self._mark, tenant_id, appointment_id))
            for appointment_id in ids
        )
        for appointment_id, err in outcome.failed:
            logger.error(f"❌ [tenant={tenant_id}] Could not mark appointment {appointment_id} as no-show: {err.message}")
        if outcome.succeeded:
            logger.info(f"🔔 [tenant={tenant_id}] Marked {len(outcome.succeeded)} appointments as NO_SHOW")
        return outcome

    def _mark(self, tenant_id: int, appointment_id: int) -> int:
        self.appointments.update_status(tenant_id, appointment_id, AppointmentStatus.NO_SHOW)
        return appointment_id


REMINDERS = (
    # (lead time, flag column, notification kind)
    (timedelta(hours=24), "reminder_24h_sent", NotificationKind.REMINDER_24H),
    (timedelta(hours=1), "reminder_1h_sent", NotificationKind.REMINDER_1H),
)


class ReminderMonitor:
    """Sends each reminder at most once; the flag is set only after a successful send"""

    def __init__(self, db: Session, notifier: NotificationDispatcher, clock: Clock = utc_now):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.repo = SchedulingRepository()

    async def run(self) -> dict:
        outcomes = {}
        for tenant_id in self.repo.get_active_tenant_ids(self.db):
            try:
                outcomes[tenant_id] = await self.run_for_tenant(tenant_id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ [tenant={tenant_id}] Reminder check failed: {e}")
                outcomes[tenant_id] = Err(e)
        summary = summarize(outcomes)
        logger.info(
            f"📊 Reminders: {summary['processed']} sent, {summary['failed']} failed "
            f"across {summary['tenants']} tenants"
        )
        return summary

    async def run_for_tenant(self, tenant_id: int) -> BatchOutcome:
        settings = load_tenant_settings(self.db, tenant_id)
        now = tenant_now(self.clock, settings.timezone)

        results = []
        for lead, flag, kind in REMINDERS:
            for appointment in self._due(tenant_id, now + lead, flag):
                results.append((appointment.id, await self._remind(appointment, flag, kind)))
        return fold(results)

    def _due(self, tenant_id: int, target: datetime, flag: str) -> list[Appointment]:
        window = timedelta(minutes=config.REMINDER_WINDOW_MINUTES)
        day = target.date()
        low, high = target - window, target + window
        window_start = low.time() if low.date() == day else time.min
        window_end = high.time() if high.date() == day else time.max
        return self.repo.find_confirmed_starting_between(
            self.db, tenant_id, day, window_start, window_end, getattr(Appointment, flag)
        )

    async def _remind(self, appointment: Appointment, flag: str, kind: NotificationKind):
        if not await self.notifier.send(appointment_context(appointment, kind)):
            return Err(NotificationFailed(f"{kind.value} could not be delivered"))
        return attempt(self._mark_sent, appointment, flag)

    def _mark_sent(self, appointment: Appointment, flag: str) -> int:
        try:
            setattr(appointment, flag, True)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return appointment.id
