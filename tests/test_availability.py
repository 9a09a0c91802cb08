from datetime import time

import pytest
from sqlalchemy import event

from salonbook.domain.scheduling.availability import AvailabilityService, load_services
from salonbook.domain.scheduling.exceptions import InvalidRequest, NotFound
from salonbook.models import User, WorkingHours

from conftest import MONDAY, SUNDAY, add_appointment, add_block


def slot_map(result, staff_id: int) -> dict:
    for staff in result:
        if staff.staff_id == staff_id:
            return {slot.start: slot.available for slot in staff.slots}
    raise AssertionError(f"staff {staff_id} missing from result")


def test_every_active_staff_member_gets_slots(db, data, tenant_id) -> None:
    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["haircut"].id])

    assert [staff.staff_name for staff in result] == ["Ayse Demir", "Mehmet Kaya"]
    slots = result[0].slots
    assert len(slots) == 14
    assert (slots[0].start, slots[0].end) == (time(9, 0), time(9, 45))
    assert all(slot.available for slot in slots)


def test_durations_of_all_services_are_summed(db, data, tenant_id) -> None:
    result = AvailabilityService(db).available_slots(
        tenant_id, MONDAY, [data["haircut"].id, data["coloring"].id], data["ayse"].id
    )

    first = result[0].slots[0]
    assert (first.start, first.end) == (time(9, 0), time(10, 45))


def test_booked_time_is_unavailable(db, data, tenant_id) -> None:
    add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(11, 0))

    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["haircut"].id])
    ayse = slot_map(result, data["ayse"].id)
    mehmet = slot_map(result, data["mehmet"].id)

    assert ayse[time(9, 0)] is True
    assert ayse[time(9, 30)] is False
    assert ayse[time(10, 0)] is False
    assert ayse[time(10, 30)] is False
    assert ayse[time(11, 0)] is True
    assert all(mehmet.values())


def test_buffer_keeps_slot_clear_of_next_booking(db, data, tenant_id) -> None:
    add_appointment(db, tenant_id, data["ayse"], MONDAY, time(9, 50), time(10, 30))
    service = AvailabilityService(db)

    # 9:00-9:45 plus a 10 minute buffer runs into the 9:50 booking
    haircut = slot_map(service.available_slots(tenant_id, MONDAY, [data["haircut"].id]), data["ayse"].id)
    assert haircut[time(9, 0)] is False

    quick = slot_map(service.available_slots(tenant_id, MONDAY, [data["quick"].id]), data["ayse"].id)
    assert quick[time(9, 0)] is True


def test_buffer_must_fit_before_break_and_closing(db, data, tenant_id) -> None:
    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["coloring"].id], data["ayse"].id)
    slots = slot_map(result, data["ayse"].id)

    assert slots[time(10, 30)] is True
    assert slots[time(11, 0)] is False
    assert slots[time(17, 0)] is False


def test_blocked_period_is_unavailable(db, data, tenant_id) -> None:
    add_block(db, tenant_id, MONDAY, time(14, 0), time(15, 0))

    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["quick"].id])

    for staff in result:
        slots = {slot.start: slot.available for slot in staff.slots}
        assert slots[time(13, 30)] is True
        assert slots[time(14, 0)] is False
        assert slots[time(14, 30)] is False
        assert slots[time(15, 0)] is True


def test_closed_staff_member_is_omitted(db, data, tenant_id) -> None:
    db.add(WorkingHours(tenant_id=tenant_id, staff_id=data["ayse"].id, day_of_week=0, is_open=False))
    db.commit()

    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["haircut"].id])

    assert [staff.staff_id for staff in result] == [data["mehmet"].id]


def test_closed_day_returns_nothing(db, data, tenant_id) -> None:
    assert AvailabilityService(db).available_slots(tenant_id, SUNDAY, [data["haircut"].id]) == []


def test_inactive_staff_are_not_candidates(db, data, tenant_id) -> None:
    mehmet = db.get(User, data["mehmet"].id)
    mehmet.is_active = False
    db.commit()

    result = AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["haircut"].id])

    assert [staff.staff_id for staff in result] == [data["ayse"].id]


def test_unknown_staff_member(db, data, tenant_id) -> None:
    with pytest.raises(NotFound):
        AvailabilityService(db).available_slots(tenant_id, MONDAY, [data["haircut"].id], 9999)


def test_requested_staff_must_be_bookable(db, data, tenant_id) -> None:
    service = AvailabilityService(db)

    with pytest.raises(NotFound):
        service.available_slots(tenant_id, MONDAY, [data["haircut"].id], data["client"].id)

    mehmet = db.get(User, data["mehmet"].id)
    mehmet.is_active = False
    db.commit()

    with pytest.raises(NotFound):
        service.available_slots(tenant_id, MONDAY, [data["haircut"].id], data["mehmet"].id)


def test_service_lookup_errors(db, data, tenant_id) -> None:
    haircut_id = data["haircut"].id

    with pytest.raises(InvalidRequest):
        load_services(db, tenant_id, [])
    with pytest.raises(InvalidRequest):
        load_services(db, tenant_id, [haircut_id, haircut_id])
    with pytest.raises(NotFound):
        load_services(db, tenant_id, [haircut_id, 9999])
    with pytest.raises(NotFound):
        load_services(db, tenant_id + 1, [haircut_id])


def test_services_keep_request_order(db, data, tenant_id) -> None:
    services = load_services(db, tenant_id, [data["coloring"].id, data["haircut"].id])

    assert [service.title for service in services] == ["Coloring", "Haircut"]


def test_find_available_staff_takes_first_free_in_creation_order(db, data, tenant_id) -> None:
    service = AvailabilityService(db)

    assert service.find_available_staff(tenant_id, MONDAY, time(10, 0), time(10, 55)) == data["ayse"].id

    add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(11, 0))
    assert service.find_available_staff(tenant_id, MONDAY, time(10, 0), time(10, 55)) == data["mehmet"].id

    add_appointment(db, tenant_id, data["mehmet"], MONDAY, time(10, 30), time(11, 0))
    assert service.find_available_staff(tenant_id, MONDAY, time(10, 0), time(10, 55)) is None


def test_find_available_staff_respects_hours_and_blocks(db, data, tenant_id) -> None:
    service = AvailabilityService(db)

    assert service.find_available_staff(tenant_id, MONDAY, time(8, 0), time(8, 45)) is None
    assert service.find_available_staff(tenant_id, MONDAY, time(11, 30), time(12, 15)) is None
    assert service.find_available_staff(tenant_id, SUNDAY, time(10, 0), time(10, 45)) is None

    add_block(db, tenant_id, MONDAY, time(16, 0), time(17, 0), staff=data["ayse"])
    assert service.find_available_staff(tenant_id, MONDAY, time(16, 0), time(16, 45)) == data["mehmet"].id


def test_find_available_staff_checks_blocks_once_per_staff_member(engine, db, data, tenant_id) -> None:
    add_appointment(db, tenant_id, data["ayse"], MONDAY, time(10, 0), time(11, 0))
    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", record)
    try:
        staff_id = AvailabilityService(db).find_available_staff(tenant_id, MONDAY, time(10, 0), time(10, 45))
    finally:
        event.remove(engine, "before_cursor_execute", record)

    assert staff_id == data["mehmet"].id
    assert sum("FROM blocked_time_slots" in statement for statement in statements) == 2
