import asyncio
from datetime import time

from salonbook.domain.scheduling.monitors import NoShowMonitor, ReminderMonitor
from salonbook.models import Appointment, Tenant, User
from salonbook.services.notification_service import NotificationDispatcher, NotificationKind

from conftest import MONDAY, SUNDAY, RecordingSender, add_appointment


def status_of(db, appointment_id: int) -> str:
    db.expire_all()
    return db.get(Appointment, appointment_id).status


# ============================================================================
# NO-SHOW
# ============================================================================


def test_no_show_waits_for_grace_period(db, data, tenant_id, notifier, clock) -> None:
    appointment = add_appointment(
        db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(10, 30), client=data["client"]
    )
    monitor = NoShowMonitor(db, notifier, clock=clock)

    clock.set(MONDAY, time(11, 29))
    summary = monitor.run()
    assert summary == {"tenants": 1, "processed": 0, "failed": 0, "errors": []}
    assert status_of(db, appointment.id) == "CONFIRMED"

    clock.set(MONDAY, time(11, 30))
    summary = monitor.run()
    assert summary["processed"] == 1
    assert status_of(db, appointment.id) == "NO_SHOW"
    assert db.get(User, data["client"].id).no_show_count == 1
    assert [context.kind for context in notifier.outbox] == [NotificationKind.NO_SHOW_WARNING]


def test_earlier_days_are_caught_up(db, data, tenant_id, notifier, clock) -> None:
    appointment = add_appointment(db, tenant_id, data["ayse"], SUNDAY, time(16, 0), time(17, 0))
    clock.set(MONDAY, time(0, 30))

    NoShowMonitor(db, notifier, clock=clock).run()

    assert status_of(db, appointment.id) == "NO_SHOW"


def test_only_confirmed_appointments_are_marked(db, data, tenant_id, notifier, clock) -> None:
    pending = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(9, 0), time(9, 30), status="PENDING")
    completed = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(10, 30), status="COMPLETED")
    clock.set(MONDAY, time(15, 0))

    summary = NoShowMonitor(db, notifier, clock=clock).run()

    assert summary["processed"] == 0
    assert status_of(db, pending.id) == "PENDING"
    assert status_of(db, completed.id) == "COMPLETED"


def test_one_failure_does_not_stop_the_batch(db, data, tenant_id, notifier, clock, monkeypatch) -> None:
    first = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(9, 0), time(9, 30))
    second = add_appointment(db, tenant_id, data["mehmet"], MONDAY, time(9, 0), time(9, 30))
    clock.set(MONDAY, time(15, 0))

    monitor = NoShowMonitor(db, notifier, clock=clock)
    original = monitor.appointments.update_status

    def flaky(tenant, appointment_id, status, reason=None):
        if appointment_id == first.id:
            raise RuntimeError("row vanished")
        return original(tenant, appointment_id, status, reason)

    monkeypatch.setattr(monitor.appointments, "update_status", flaky)

    summary = monitor.run()

    assert summary["processed"] == 1
    assert summary["failed"] == 1
    assert summary["errors"] == [f"tenant {tenant_id}, appointment {first.id}: row vanished"]
    assert status_of(db, first.id) == "CONFIRMED"
    assert status_of(db, second.id) == "NO_SHOW"


def test_inactive_tenants_are_skipped(db, data, tenant_id, notifier, clock) -> None:
    appointment = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(9, 0), time(9, 30))
    db.get(Tenant, tenant_id).is_active = False
    db.commit()
    clock.set(MONDAY, time(15, 0))

    summary = NoShowMonitor(db, notifier, clock=clock).run()

    assert summary["tenants"] == 0
    assert status_of(db, appointment.id) == "CONFIRMED"


def test_repeat_no_shows_blacklist_from_the_monitor(db, data, tenant_id, notifier, clock) -> None:
    client = data["client"]
    for hour in (9, 10, 11):
        add_appointment(db, tenant_id, data["ayse"], MONDAY, time(hour, 0), time(hour, 30), client=client)
    clock.set(MONDAY, time(15, 0))

    summary = NoShowMonitor(db, notifier, clock=clock).run()

    assert summary["processed"] == 3
    refreshed = db.get(User, client.id)
    assert refreshed.no_show_count == 3
    assert refreshed.is_blacklisted is True
    assert [context.kind for context in notifier.outbox].count(NotificationKind.BLACKLIST) == 1


# ============================================================================
# REMINDERS
# ============================================================================


def test_day_ahead_reminder_sent_once(db, data, tenant_id, notifier, sender, clock) -> None:
    due = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(10, 30), client=data["client"])
    add_appointment(db, tenant_id, data["mehmet"], MONDAY, time(10, 10), time(10, 40))
    add_appointment(db, tenant_id, data["mehmet"], MONDAY, time(9, 55), time(10, 5), status="PENDING")
    clock.set(SUNDAY, time(10, 0))
    monitor = ReminderMonitor(db, notifier, clock=clock)

    summary = asyncio.run(monitor.run())

    assert summary["processed"] == 1
    assert len(sender.sent) == 1
    assert sender.sent[0].context.kind == NotificationKind.REMINDER_24H
    assert sender.sent[0].context.recipient_email == "elif@example.com"
    db.expire_all()
    assert db.get(Appointment, due.id).reminder_24h_sent is True

    assert asyncio.run(monitor.run())["processed"] == 0
    assert len(sender.sent) == 1


def test_hour_ahead_reminder(db, data, tenant_id, notifier, sender, clock) -> None:
    appointment = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(10, 30))
    clock.set(MONDAY, time(9, 3))

    summary = asyncio.run(ReminderMonitor(db, notifier, clock=clock).run())

    assert summary["processed"] == 1
    assert [message.context.kind for message in sender.sent] == [NotificationKind.REMINDER_1H]
    db.expire_all()
    reloaded = db.get(Appointment, appointment.id)
    assert reloaded.reminder_1h_sent is True
    assert reloaded.reminder_24h_sent is False


def test_failed_reminder_is_retried_next_run(db, data, tenant_id, clock) -> None:
    appointment = add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(10, 30))
    clock.set(MONDAY, time(9, 0))
    failing = RecordingSender(failures=3)
    monitor = ReminderMonitor(db, NotificationDispatcher(sender=failing, max_attempts=3, retry_delay=0), clock=clock)

    summary = asyncio.run(monitor.run())

    assert summary["failed"] == 1
    assert failing.calls == 3
    db.expire_all()
    assert db.get(Appointment, appointment.id).reminder_1h_sent is False

    # Provider is back
    assert asyncio.run(monitor.run())["processed"] == 1
    assert len(failing.sent) == 1
