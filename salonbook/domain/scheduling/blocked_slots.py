"""Blocked time slot administration"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import BlockedTimeSlot
from .exceptions import NotFound
from .repository import SchedulingRepository
from .schemas import BlockedSlotCreate

logger = logging.getLogger(__name__)


class BlockedSlotService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def list_slots(self, tenant_id: int, staff_id: Optional[int] = None) -> list[BlockedTimeSlot]:
        return self.repo.list_blocked_slots(self.db, tenant_id, staff_id)

    def create_slot(self, tenant_id: int, data: BlockedSlotCreate) -> BlockedTimeSlot:
        if data.staffId is not None and self.repo.get_user(self.db, tenant_id, data.staffId) is None:
            raise NotFound(f"Staff member {data.staffId} not found")

        slot = self.repo.create_blocked_slot(
            self.db,
            tenant_id,
            staff_id=data.staffId,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime,
            reason=data.reason,
        )
        scope = f"staff {slot.staff_id}" if slot.staff_id is not None else "facility"
        logger.info(
            f"✅ [tenant={tenant_id}] Blocked {slot.date} {slot.start_time}-{slot.end_time} for {scope}"
        )
        return slot

    def delete_slot(self, tenant_id: int, slot_id: int) -> None:
        slot = self.repo.get_blocked_slot(self.db, tenant_id, slot_id)
        if not slot:
            raise NotFound(f"Blocked slot {slot_id} not found")
        self.repo.delete_blocked_slot(self.db, slot)
        logger.info(f"🗑️ [tenant={tenant_id}] Removed blocked slot {slot_id}")
