"""Per-tenant scheduling settings with environment defaults"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ... import config
from .repository import SchedulingRepository


@dataclass(frozen=True)
class TenantSettings:
    timezone: str
    cancellation_policy_hours: int
    slot_step_minutes: int
    auto_confirm: bool


def load_tenant_settings(db: Session, tenant_id: int) -> TenantSettings:
    row = SchedulingRepository.get_site_settings(db, tenant_id)
    if row is None:
        return TenantSettings(
            timezone=config.DEFAULT_TIMEZONE,
            cancellation_policy_hours=config.DEFAULT_CANCELLATION_POLICY_HOURS,
            slot_step_minutes=config.DEFAULT_SLOT_STEP_MINUTES,
            auto_confirm=False,
        )
    return TenantSettings(
        timezone=row.timezone or config.DEFAULT_TIMEZONE,
        cancellation_policy_hours=row.cancellation_policy_hours,
        slot_step_minutes=row.default_slot_duration_minutes,
        auto_confirm=bool(row.auto_confirm_appointments),
    )
