import os
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from salonbook.database import Base  # noqa: E402
from salonbook.models import (  # noqa: E402
    ROLE_CLIENT,
    ROLE_STAFF,
    Appointment,
    AppointmentServiceItem,
    BlockedTimeSlot,
    Service,
    SiteSettings,
    Tenant,
    User,
    WorkingHours,
)
from salonbook.services.notification_service import NotificationDispatcher  # noqa: E402

ISTANBUL = timezone(timedelta(hours=3))

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 6)


def make_engine(url: str, begin_statement: str = "BEGIN", **connect_args):
    """
    SQLite engine that emits BEGIN itself, so SAVEPOINTs and transaction-scoped
    locking behave the way they do on a server database.
    """
    engine_kwargs = {"connect_args": {"check_same_thread": False, **connect_args}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **engine_kwargs)

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql(begin_statement)

    Base.metadata.create_all(engine)
    return engine


class FixedClock:
    """Injectable clock; times are given in Istanbul local time"""

    def __init__(self, value: datetime):
        self.value = value

    def __call__(self) -> datetime:
        return self.value

    def set(self, day: date, at: time) -> None:
        self.value = datetime.combine(day, at, tzinfo=ISTANBUL)

    def advance(self, **kwargs) -> None:
        self.value = self.value + timedelta(**kwargs)


class RecordingSender:
    """Async sender that records what it was given and can be told to fail"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.sent = []

    async def __call__(self, message) -> None:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("provider unavailable")
        self.sent.append(message)


def seed(db) -> dict:
    """One tenant with two staff, one client, three services and a Mon-Sat week"""
    tenant = Tenant(slug="studio", name="Studio", is_active=True)
    db.add(tenant)
    db.flush()

    db.add(
        SiteSettings(
            tenant_id=tenant.id,
            timezone="Europe/Istanbul",
            cancellation_policy_hours=24,
            default_slot_duration_minutes=30,
            auto_confirm_appointments=False,
        )
    )
    ayse = User(tenant_id=tenant.id, first_name="Ayse", last_name="Demir", email="ayse@studio.test", role=ROLE_STAFF)
    mehmet = User(tenant_id=tenant.id, first_name="Mehmet", last_name="Kaya", email="mehmet@studio.test", role=ROLE_STAFF)
    db.add_all([ayse, mehmet])
    db.flush()
    elif_client = User(
        tenant_id=tenant.id,
        first_name="Elif",
        last_name="Yilmaz",
        email="elif@example.com",
        phone="+905551112233",
        role=ROLE_CLIENT,
    )
    db.add(elif_client)

    haircut = Service(tenant_id=tenant.id, title="Haircut", duration_minutes=45, buffer_minutes=10, price=Decimal("150.00"))
    coloring = Service(tenant_id=tenant.id, title="Coloring", duration_minutes=60, buffer_minutes=5, price=Decimal("300.00"))
    quick = Service(tenant_id=tenant.id, title="Fringe trim", duration_minutes=30, buffer_minutes=0, price=Decimal("50.00"))
    db.add_all([haircut, coloring, quick])

    for day_of_week in range(6):
        db.add(
            WorkingHours(
                tenant_id=tenant.id,
                staff_id=None,
                day_of_week=day_of_week,
                start_time=time(9, 0),
                end_time=time(18, 0),
                break_start=time(12, 0),
                break_end=time(13, 0),
                is_open=True,
            )
        )
    db.add(WorkingHours(tenant_id=tenant.id, staff_id=None, day_of_week=6, is_open=False))
    db.commit()

    return {
        "tenant": tenant,
        "ayse": ayse,
        "mehmet": mehmet,
        "client": elif_client,
        "haircut": haircut,
        "coloring": coloring,
        "quick": quick,
    }


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    # Seeded objects stay readable after commit without reopening a transaction on
    # the shared in-memory connection
    session = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def data(db) -> dict:
    return seed(db)


@pytest.fixture
def tenant_id(data) -> int:
    return data["tenant"].id


@pytest.fixture
def clock() -> FixedClock:
    # Sunday 09:00, a day before the Monday most tests book on
    return FixedClock(datetime.combine(SUNDAY, time(9, 0), tzinfo=ISTANBUL))


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notifier(sender) -> NotificationDispatcher:
    return NotificationDispatcher(sender=sender, max_attempts=3, retry_delay=0)


def add_appointment(
    db,
    tenant_id: int,
    staff: User,
    day: date,
    start: time,
    end: time,
    status: str = "CONFIRMED",
    client: User = None,
    service: Service = None,
) -> Appointment:
    """Insert an appointment directly, bypassing booking validation"""
    duration = (datetime.combine(day, end) - datetime.combine(day, start)).seconds // 60
    appointment = Appointment(
        tenant_id=tenant_id,
        staff_id=staff.id,
        client_id=client.id if client else None,
        client_name=client.full_name if client else "Walk-in",
        client_email=client.email if client else "walkin@example.com",
        date=day,
        start_time=start,
        end_time=end,
        total_duration_minutes=duration,
        total_price=Decimal("100.00"),
        status=status,
    )
    if service is not None:
        appointment.line_items.append(
            AppointmentServiceItem(
                service_id=service.id,
                service_title=service.title,
                price=service.price,
                duration_minutes=service.duration_minutes,
                buffer_minutes=service.buffer_minutes,
                sort_order=0,
            )
        )
    db.add(appointment)
    db.commit()
    return appointment


def add_block(db, tenant_id: int, day: date, start: time, end: time, staff: User = None) -> BlockedTimeSlot:
    block = BlockedTimeSlot(
        tenant_id=tenant_id,
        staff_id=staff.id if staff else None,
        date=day,
        start_time=start,
        end_time=end,
        reason="Training",
    )
    db.add(block)
    db.commit()
    return block
