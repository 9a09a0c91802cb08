"""Scheduling router - FastAPI endpoints for availability, bookings, hours and blocks"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.notification_service import NotificationDispatcher
from ...tenancy import get_client_id, get_tenant_id
from .availability import AvailabilityService
from .blocked_slots import BlockedSlotService
from .lifecycle import AppointmentService
from .recurring import RecurringService
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    BlockedSlotCreate,
    BlockedSlotResponse,
    RecurringAppointmentCreate,
    RecurringResultResponse,
    RescheduleRequest,
    SlotResponse,
    StaffAvailabilityResponse,
    StatusUpdate,
    WorkingHoursResponse,
    WorkingHoursUpdate,
)
from .working_hours import WorkingHoursService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_notifier(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    """Per-request outbox, flushed after the response is sent"""
    notifier = NotificationDispatcher()
    background_tasks.add_task(notifier.flush)
    return notifier


def get_appointment_service(
    db: Session = Depends(get_db), notifier: NotificationDispatcher = Depends(get_notifier)
) -> AppointmentService:
    return AppointmentService(db, notifier=notifier)


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=list[StaffAvailabilityResponse])
async def get_availability(
    date: date,
    serviceIds: list[int] = Query(...),
    staffId: Optional[int] = None,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Slots per staff member for the given services on one day"""
    result = AvailabilityService(db).available_slots(tenant_id, date, serviceIds, staffId)
    return [
        StaffAvailabilityResponse(
            staffId=staff.staff_id,
            staffName=staff.staff_name,
            slots=[SlotResponse(startTime=s.start, endTime=s.end, available=s.available) for s in staff.slots],
        )
        for staff in result
    ]


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create(tenant_id, data)


@router.post("/appointments/recurring", response_model=RecurringResultResponse, status_code=201)
async def create_recurring_appointments(
    data: RecurringAppointmentCreate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a series; occurrences that cannot be booked are reported in skippedDates"""
    result = RecurringService(db, service).create_recurring(tenant_id, data)
    return RecurringResultResponse(
        groupId=result.group_id,
        created=[AppointmentResponse.model_validate(a) for a in result.created],
        skippedDates=result.skipped_dates,
        totalRequested=result.total_requested,
        totalCreated=result.total_created,
    )


@router.get("/appointments/recurring/{group_id}", response_model=list[AppointmentResponse])
async def get_recurring_series(
    group_id: str,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_recurring_group(tenant_id, group_id)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(tenant_id, appointment_id)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: StatusUpdate,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.update_status(tenant_id, appointment_id, data.status, data.reason)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    tenant_id: int = Depends(get_tenant_id),
    client_id: int = Depends(get_client_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Client-initiated cancellation, subject to the cancellation policy"""
    return service.cancel_by_client(tenant_id, appointment_id, client_id)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reschedule(tenant_id, appointment_id, data)


@router.get("/staff/{staff_id}/calendar", response_model=list[AppointmentResponse])
async def get_staff_calendar(
    staff_id: int,
    date: date,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_staff_calendar(tenant_id, staff_id, date)


@router.get("/clients/{client_id}/appointments", response_model=list[AppointmentResponse])
async def get_client_appointments(
    client_id: int,
    tenant_id: int = Depends(get_tenant_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_client_appointments(tenant_id, client_id)


# ============================================================================
# WORKING HOURS
# ============================================================================


@router.get("/working-hours", response_model=list[WorkingHoursResponse])
async def get_facility_hours(tenant_id: int = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return WorkingHoursService(db).get_hours(tenant_id)


@router.put("/working-hours", response_model=list[WorkingHoursResponse])
async def replace_facility_hours(
    data: WorkingHoursUpdate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Replace the facility's whole week"""
    return WorkingHoursService(db).replace_hours(tenant_id, data.days)


@router.get("/staff/{staff_id}/working-hours", response_model=list[WorkingHoursResponse])
async def get_staff_hours(
    staff_id: int, tenant_id: int = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return WorkingHoursService(db).get_hours(tenant_id, staff_id)


@router.put("/staff/{staff_id}/working-hours", response_model=list[WorkingHoursResponse])
async def replace_staff_hours(
    staff_id: int,
    data: WorkingHoursUpdate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Replace a staff member's whole week"""
    return WorkingHoursService(db).replace_hours(tenant_id, data.days, staff_id)


# ============================================================================
# BLOCKED SLOTS
# ============================================================================


@router.get("/blocked-slots", response_model=list[BlockedSlotResponse])
async def list_blocked_slots(
    staffId: Optional[int] = None,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return BlockedSlotService(db).list_slots(tenant_id, staffId)


@router.post("/blocked-slots", response_model=BlockedSlotResponse, status_code=201)
async def create_blocked_slot(
    data: BlockedSlotCreate,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return BlockedSlotService(db).create_slot(tenant_id, data)


@router.delete("/blocked-slots/{slot_id}")
async def delete_blocked_slot(
    slot_id: int, tenant_id: int = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    BlockedSlotService(db).delete_slot(tenant_id, slot_id)
    return {"message": "Blocked slot deleted"}
