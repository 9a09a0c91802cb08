import pytest

from salonbook.domain.scheduling.status import AppointmentStatus

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
COMPLETED = AppointmentStatus.COMPLETED
CANCELLED = AppointmentStatus.CANCELLED
NO_SHOW = AppointmentStatus.NO_SHOW


@pytest.mark.parametrize(
    "current,target",
    [
        (PENDING, CONFIRMED),
        (PENDING, CANCELLED),
        (CONFIRMED, COMPLETED),
        (CONFIRMED, CANCELLED),
        (CONFIRMED, NO_SHOW),
    ],
)
def test_allowed_transitions(current, target) -> None:
    assert current.can_transition_to(target)


@pytest.mark.parametrize(
    "current,target",
    [
        (PENDING, COMPLETED),
        (PENDING, NO_SHOW),
        (PENDING, PENDING),
        (CONFIRMED, PENDING),
        (CONFIRMED, CONFIRMED),
        (COMPLETED, CANCELLED),
        (CANCELLED, CONFIRMED),
        (NO_SHOW, CONFIRMED),
    ],
)
def test_rejected_transitions(current, target) -> None:
    assert not current.can_transition_to(target)


def test_terminal_states() -> None:
    assert {status for status in AppointmentStatus if status.is_terminal} == {COMPLETED, CANCELLED, NO_SHOW}


def test_status_parses_from_stored_value() -> None:
    assert AppointmentStatus("NO_SHOW") is NO_SHOW
    assert CONFIRMED == "CONFIRMED"
