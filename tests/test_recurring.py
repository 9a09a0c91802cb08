from datetime import date, time

import pytest

from salonbook.domain.scheduling.exceptions import InvalidRequest
from salonbook.domain.scheduling.lifecycle import AppointmentService
from salonbook.domain.scheduling.recurring import RecurringService, occurrence_dates
from salonbook.domain.scheduling.repository import SchedulingRepository
from salonbook.domain.scheduling.schemas import RecurringAppointmentCreate

from conftest import MONDAY, add_block


@pytest.fixture
def recurring(db, notifier, clock) -> RecurringService:
    return RecurringService(db, AppointmentService(db, notifier=notifier, clock=clock))


def series(data, rule: str = "WEEKLY", count: int = 4, **overrides) -> RecurringAppointmentCreate:
    fields = {
        "clientId": data["client"].id,
        "staffId": data["ayse"].id,
        "serviceIds": [data["haircut"].id],
        "date": MONDAY,
        "startTime": time(10, 0),
        "recurrenceRule": rule,
        "count": count,
    }
    fields.update(overrides)
    return RecurringAppointmentCreate(**fields)


def test_weekly_dates() -> None:
    assert occurrence_dates(MONDAY, "WEEKLY", 3) == [date(2030, 1, 7), date(2030, 1, 14), date(2030, 1, 21)]


def test_biweekly_dates() -> None:
    assert occurrence_dates(MONDAY, "BIWEEKLY", 3) == [date(2030, 1, 7), date(2030, 1, 21), date(2030, 2, 4)]


def test_monthly_dates_clamp_to_month_end() -> None:
    assert occurrence_dates(date(2030, 1, 31), "MONTHLY", 3) == [
        date(2030, 1, 31),
        date(2030, 2, 28),
        date(2030, 3, 31),
    ]


def test_unknown_rule() -> None:
    with pytest.raises(InvalidRequest):
        occurrence_dates(MONDAY, "DAILY", 3)


def test_series_skips_blocked_occurrence(recurring, db, data, tenant_id) -> None:
    add_block(db, tenant_id, date(2030, 1, 14), time(10, 0), time(11, 0))

    result = recurring.create_recurring(tenant_id, series(data))

    assert result.total_requested == 4
    assert result.total_created == 3
    assert result.skipped_dates == [date(2030, 1, 14)]
    assert [appointment.date for appointment in result.created] == [
        date(2030, 1, 7),
        date(2030, 1, 21),
        date(2030, 1, 28),
    ]

    stored = SchedulingRepository.get_recurring_group(db, tenant_id, result.group_id)
    assert [appointment.id for appointment in stored] == [appointment.id for appointment in result.created]
    assert {appointment.recurrence_rule for appointment in stored} == {"WEEKLY"}


def test_rule_is_case_insensitive(recurring, data, tenant_id) -> None:
    result = recurring.create_recurring(tenant_id, series(data, rule="biweekly", count=2))

    assert result.total_created == 2
    assert result.created[0].recurrence_rule == "BIWEEKLY"


def test_every_occurrence_failing_is_not_an_error(recurring, db, data, tenant_id) -> None:
    for day in (date(2030, 1, 7), date(2030, 1, 14)):
        add_block(db, tenant_id, day, time(9, 0), time(18, 0))

    result = recurring.create_recurring(tenant_id, series(data, count=2))

    assert result.total_created == 0
    assert result.skipped_dates == [date(2030, 1, 7), date(2030, 1, 14)]


def test_one_notification_per_created_occurrence(recurring, data, tenant_id, notifier) -> None:
    recurring.create_recurring(tenant_id, series(data, count=3))

    assert len(notifier.outbox) == 3


@pytest.mark.parametrize("count", [0, 1, 53])
def test_occurrence_count_bounds(recurring, data, tenant_id, count) -> None:
    with pytest.raises(InvalidRequest):
        recurring.create_recurring(tenant_id, series(data, count=count))


def test_invalid_rule_books_nothing(recurring, db, data, tenant_id) -> None:
    with pytest.raises(InvalidRequest):
        recurring.create_recurring(tenant_id, series(data, rule="YEARLY"))

    assert SchedulingRepository.get_client_appointments(db, tenant_id, data["client"].id) == []
