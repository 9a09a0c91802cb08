"""Appointment lifecycle - booking, status changes, client cancellation, rescheduling"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ... import config
from ...models import Appointment, AppointmentServiceItem, User
from ...services.notification_service import (
    NotificationContext,
    NotificationDispatcher,
    NotificationKind,
    appointment_context,
    client_context,
)
from .availability import AvailabilityService, load_services, trailing_buffer
from .conflicts import has_appointment_conflict, is_time_slot_blocked
from .exceptions import (
    ClientBlacklisted,
    Conflict,
    Forbidden,
    InvalidRequest,
    InvalidTransition,
    NoCapacity,
    NotFound,
    PolicyViolation,
)
from .repository import SchedulingRepository
from .schemas import AppointmentCreate, RescheduleRequest
from .status import RESCHEDULABLE_STATUSES, AppointmentStatus
from .tenant_settings import TenantSettings, load_tenant_settings
from .timeutil import Clock, add_minutes, localize, tenant_now, utc_now, whole_hours_between
from .working_hours import is_within_working_hours, resolve_for_date

logger = logging.getLogger(__name__)

CLIENT_CANCELLATION_REASON = "Cancelled by client"

STATUS_NOTIFICATIONS = {
    AppointmentStatus.CONFIRMED: NotificationKind.APPOINTMENT_CONFIRMATION,
    AppointmentStatus.CANCELLED: NotificationKind.CANCELLED,
}


def apply_no_show(
    db: Session,
    tenant_id: int,
    appointment: Appointment,
    now: datetime,
) -> list[NotificationContext]:
    """
    Mark an appointment NO_SHOW and escalate its client.

    Increments the client's no-show counter; once it reaches BLACKLIST_THRESHOLD the
    client is blacklisted. Used by both the status-update path and the no-show
    monitor. Does not commit; returns the notifications to queue once the change is
    committed.
    """
    appointment.status = AppointmentStatus.NO_SHOW.value
    notifications = [appointment_context(appointment, NotificationKind.NO_SHOW_WARNING)]

    if appointment.client_id is None:
        return notifications
    client = SchedulingRepository.get_user(db, tenant_id, appointment.client_id, for_update=True)
    if client is None:
        logger.warning(f"⚠️ [tenant={tenant_id}] Client {appointment.client_id} of appointment {appointment.id} not found")
        return notifications

    client.no_show_count = (client.no_show_count or 0) + 1
    logger.info(f"📊 [tenant={tenant_id}] Client {client.id} no-show count is now {client.no_show_count}")

    if client.no_show_count >= config.BLACKLIST_THRESHOLD and not client.is_blacklisted:
        client.is_blacklisted = True
        client.blacklisted_at = now
        client.blacklist_reason = f"Auto: {config.BLACKLIST_THRESHOLD} no-shows"
        logger.warning(f"🚫 [tenant={tenant_id}] Client {client.id} blacklisted after {client.no_show_count} no-shows")
        notifications.append(client_context(tenant_id, client, NotificationKind.BLACKLIST))
    return notifications


class AppointmentService:
    """Service layer for the appointment state machine"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.repo = SchedulingRepository()
        self.availability = AvailabilityService(db)
        self.notifier = notifier or NotificationDispatcher()
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, tenant_id: int, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, tenant_id, appointment_id)
        if not appointment:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    def get_staff_calendar(self, tenant_id: int, staff_id: int, day) -> list[Appointment]:
        return self.repo.get_staff_calendar(self.db, tenant_id, staff_id, day)

    def get_client_appointments(self, tenant_id: int, client_id: int) -> list[Appointment]:
        return self.repo.get_client_appointments(self.db, tenant_id, client_id)

    def get_recurring_group(self, tenant_id: int, group_id: str) -> list[Appointment]:
        appointments = self.repo.get_recurring_group(self.db, tenant_id, group_id)
        if not appointments:
            raise NotFound(f"Recurring series {group_id} not found")
        return appointments

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, tenant_id: int, data: AppointmentCreate) -> Appointment:
        """Validate and book one appointment; the conflict re-check and insert are atomic"""
        settings = load_tenant_settings(self.db, tenant_id)
        client = self._resolve_client(tenant_id, data)

        today = tenant_now(self.clock, settings.timezone).date()
        if data.date < today:
            raise InvalidRequest("Cannot book an appointment in the past")

        services = load_services(self.db, tenant_id, data.serviceIds)
        total_duration = sum(service.duration_minutes for service in services)
        total_price = sum((Decimal(service.price) for service in services), Decimal("0"))
        end_time = add_minutes(data.startTime, total_duration)
        buffered_end = add_minutes(end_time, trailing_buffer(services))

        if data.staffId is not None:
            staff_id = self._require_staff(tenant_id, data.staffId).id
        else:
            staff_id = self.availability.find_available_staff(
                tenant_id, data.date, data.startTime, buffered_end
            )
            if staff_id is None:
                raise NoCapacity("No staff member is available at the requested time")

        status = AppointmentStatus.CONFIRMED if settings.auto_confirm else AppointmentStatus.PENDING

        try:
            self.repo.lock_staff_day(self.db, tenant_id, staff_id, data.date)
            self._ensure_bookable(tenant_id, staff_id, data.date, data.startTime, buffered_end)

            appointment = Appointment(
                tenant_id=tenant_id,
                staff_id=staff_id,
                client_id=client.id if client else None,
                client_name=client.full_name if client else data.clientName,
                client_email=client.email if client else data.clientEmail,
                client_phone=(client.phone if client else None) or data.clientPhone,
                date=data.date,
                start_time=data.startTime,
                end_time=end_time,
                total_duration_minutes=total_duration,
                total_price=total_price,
                status=status.value,
                notes=data.notes,
            )
            for index, service in enumerate(services):
                appointment.line_items.append(
                    AppointmentServiceItem(
                        service_id=service.id,
                        service_title=service.title,
                        price=service.price,
                        duration_minutes=service.duration_minutes,
                        buffer_minutes=service.buffer_minutes,
                        sort_order=index,
                    )
                )
            self.db.add(appointment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"✅ [tenant={tenant_id}] Appointment {appointment.id} booked for staff {staff_id} "
            f"on {appointment.date} {appointment.start_time}-{appointment.end_time} ({status.value})"
        )
        self._notify(appointment, NotificationKind.APPOINTMENT_CONFIRMATION)
        return appointment

    def _resolve_client(self, tenant_id: int, data: AppointmentCreate) -> Optional[User]:
        """Registered client by id, else by email; walk-ins need at least a name"""
        client = None
        if data.clientId is not None:
            client = self.repo.get_user(self.db, tenant_id, data.clientId)
            if client is None:
                raise NotFound(f"Client {data.clientId} not found")
        elif data.clientEmail:
            client = self.repo.get_user_by_email(self.db, tenant_id, data.clientEmail)

        if client is not None and client.is_blacklisted:
            logger.warning(f"🚫 [tenant={tenant_id}] Blacklisted client {client.id} tried to book")
            raise ClientBlacklisted("This client is not allowed to book appointments")
        if client is None and not data.clientName:
            raise InvalidRequest("Client name is required for bookings without an account")
        return client

    def _require_staff(self, tenant_id: int, staff_id: int) -> User:
        staff = self.repo.get_bookable_staff(self.db, tenant_id, staff_id)
        if staff is None:
            raise NotFound(f"Staff member {staff_id} not found")
        return staff

    def _ensure_bookable(
        self, tenant_id: int, staff_id: int, day, start, buffered_end, exclude_appointment_id=None
    ) -> None:
        """Raise Conflict unless [start, buffered_end) is free, open and unblocked"""
        if has_appointment_conflict(
            self.db, tenant_id, staff_id, day, start, buffered_end, exclude_appointment_id
        ):
            raise Conflict("The requested time overlaps another appointment")
        hours = resolve_for_date(self.db, tenant_id, staff_id, day)
        if not is_within_working_hours(hours, start, buffered_end):
            raise Conflict("The requested time is outside working hours")
        if is_time_slot_blocked(self.db, tenant_id, staff_id, day, start, buffered_end):
            raise Conflict("The requested time is blocked")

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_status(
        self,
        tenant_id: int,
        appointment_id: int,
        new_status: AppointmentStatus,
        reason: Optional[str] = None,
    ) -> Appointment:
        pending = []
        try:
            appointment = self._load_for_update(tenant_id, appointment_id)
            current = AppointmentStatus(appointment.status)
            if not current.can_transition_to(new_status):
                raise InvalidTransition(f"Cannot change status from {current.value} to {new_status.value}")

            if new_status == AppointmentStatus.NO_SHOW:
                pending = apply_no_show(self.db, tenant_id, appointment, self.clock())
            else:
                appointment.status = new_status.value
                if new_status == AppointmentStatus.CANCELLED:
                    appointment.cancelled_at = self.clock()
                    appointment.cancellation_reason = reason
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"📊 [tenant={tenant_id}] Appointment {appointment_id}: {current.value} -> {new_status.value}"
        )
        kind = STATUS_NOTIFICATIONS.get(new_status)
        if kind is not None:
            self._notify(appointment, kind)
        for context in pending:
            self.notifier.enqueue(context)
        return appointment

    def cancel_by_client(self, tenant_id: int, appointment_id: int, client_id: int) -> Appointment:
        try:
            appointment = self._load_for_update(tenant_id, appointment_id)
            if appointment.client_id != client_id:
                raise Forbidden("You can only cancel your own appointments")

            current = AppointmentStatus(appointment.status)
            if not current.can_transition_to(AppointmentStatus.CANCELLED):
                raise InvalidTransition(f"Cannot cancel an appointment that is {current.value}")
            self._enforce_cancellation_policy(appointment, load_tenant_settings(self.db, tenant_id))

            appointment.status = AppointmentStatus.CANCELLED.value
            appointment.cancelled_at = self.clock()
            appointment.cancellation_reason = CLIENT_CANCELLATION_REASON
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"📊 [tenant={tenant_id}] Appointment {appointment_id} cancelled by client {client_id}")
        self._notify(appointment, NotificationKind.CANCELLED)
        return appointment

    def reschedule(self, tenant_id: int, appointment_id: int, data: RescheduleRequest) -> Appointment:
        """Move an appointment to a new date/time (and optionally a new staff member)"""
        settings = load_tenant_settings(self.db, tenant_id)
        try:
            appointment = self._load_for_update(tenant_id, appointment_id)
            current = AppointmentStatus(appointment.status)
            if current not in RESCHEDULABLE_STATUSES:
                raise InvalidTransition(f"Cannot reschedule an appointment that is {current.value}")
            self._enforce_cancellation_policy(appointment, settings)

            if data.date < tenant_now(self.clock, settings.timezone).date():
                raise InvalidRequest("Cannot move an appointment into the past")

            if data.staffId is not None:
                staff_id = self._require_staff(tenant_id, data.staffId).id
            else:
                staff_id = appointment.staff_id
            if staff_id is None:
                raise Conflict("Appointment has no staff member assigned")

            new_end = add_minutes(data.startTime, appointment.total_duration_minutes)
            buffer = appointment.line_items[-1].buffer_minutes if appointment.line_items else 0
            buffered_end = add_minutes(new_end, buffer)

            self.repo.lock_staff_day(self.db, tenant_id, staff_id, data.date)
            self._ensure_bookable(
                tenant_id, staff_id, data.date, data.startTime, buffered_end, appointment.id
            )

            appointment.date = data.date
            appointment.start_time = data.startTime
            appointment.end_time = new_end
            appointment.staff_id = staff_id
            appointment.reminder_24h_sent = False
            appointment.reminder_1h_sent = False
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"✅ [tenant={tenant_id}] Appointment {appointment_id} rescheduled to "
            f"{appointment.date} {appointment.start_time} (staff {staff_id})"
        )
        self._notify(appointment, NotificationKind.RESCHEDULED)
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_for_update(self, tenant_id: int, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, tenant_id, appointment_id, for_update=True)
        if not appointment:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    def _enforce_cancellation_policy(self, appointment: Appointment, settings: TenantSettings) -> None:
        now = tenant_now(self.clock, settings.timezone)
        starts_at = localize(appointment.date, appointment.start_time, settings.timezone)
        hours_until = whole_hours_between(now, starts_at)
        if hours_until < settings.cancellation_policy_hours:
            raise PolicyViolation(
                f"Appointments can only be changed at least {settings.cancellation_policy_hours} "
                f"hours in advance"
            )

    def _notify(self, appointment: Appointment, kind: NotificationKind) -> None:
        """Queue a notification; never lets a notification problem fail the caller"""
        try:
            staff_name = None
            if appointment.staff_id is not None:
                staff = self.repo.get_user(self.db, appointment.tenant_id, appointment.staff_id)
                staff_name = staff.full_name if staff else None
            self.notifier.enqueue(appointment_context(appointment, kind, staff_name))
        except Exception as e:
            logger.error(
                f"❌ [tenant={appointment.tenant_id}] Failed to queue {kind.value} for appointment "
                f"{appointment.id}: {e}"
            )
