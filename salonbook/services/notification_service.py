"""
Notification Service
Builds notification contexts for appointment events, renders them and delivers them
with bounded retries. Delivery failures are logged and never reach the caller.
"""

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    APPOINTMENT_CONFIRMATION = "APPOINTMENT_CONFIRMATION"
    REMINDER_24H = "REMINDER_24H"
    REMINDER_1H = "REMINDER_1H"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"
    NO_SHOW_WARNING = "NO_SHOW_WARNING"
    BLACKLIST = "BLACKLIST"


@dataclass
class NotificationContext:
    tenant_id: int
    kind: NotificationKind
    recipient_name: str
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_id: Optional[int] = None
    variables: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RenderedNotification:
    context: NotificationContext
    subject: str
    body: str


Sender = Callable[[RenderedNotification], Awaitable[None]]


DEFAULT_TEMPLATES = {
    NotificationKind.APPOINTMENT_CONFIRMATION: (
        "Your appointment is confirmed",
        "Hi {{clientName}}, your appointment on {{date}} at {{startTime}} with {{staffName}} is confirmed.",
    ),
    NotificationKind.REMINDER_24H: (
        "Reminder: your appointment is tomorrow",
        "Hi {{clientName}}, this is a reminder of your appointment on {{date}} at {{startTime}}.",
    ),
    NotificationKind.REMINDER_1H: (
        "Reminder: your appointment starts in 1 hour",
        "Hi {{clientName}}, your appointment starts at {{startTime}} today.",
    ),
    NotificationKind.CANCELLED: (
        "Your appointment was cancelled",
        "Hi {{clientName}}, your appointment on {{date}} at {{startTime}} has been cancelled.",
    ),
    NotificationKind.RESCHEDULED: (
        "Your appointment was rescheduled",
        "Hi {{clientName}}, your appointment has been moved to {{date}} at {{startTime}}.",
    ),
    NotificationKind.NO_SHOW_WARNING: (
        "You missed your appointment",
        "Hi {{clientName}}, you missed your appointment on {{date}} at {{startTime}}.",
    ),
    NotificationKind.BLACKLIST: (
        "Your account has been restricted",
        "Hi {{clientName}}, online booking has been disabled for your account after repeated missed appointments.",
    ),
}

_VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(template: str, variables: dict) -> str:
    """Replace {{name}} placeholders with HTML-escaped values; unknown names become empty"""

    def substitute(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return html.escape(str(value)) if value is not None else ""

    return _VARIABLE_PATTERN.sub(substitute, template)


def render(context: NotificationContext) -> RenderedNotification:
    subject, body = DEFAULT_TEMPLATES[context.kind]
    return RenderedNotification(
        context=context,
        subject=render_template(subject, context.variables),
        body=render_template(body, context.variables),
    )


def appointment_context(appointment, kind: NotificationKind, staff_name: Optional[str] = None) -> NotificationContext:
    """Context addressed to the appointment's client"""
    variables = {
        "clientName": appointment.client_name or "",
        "date": appointment.date.isoformat(),
        "startTime": appointment.start_time.strftime("%H:%M"),
        "endTime": appointment.end_time.strftime("%H:%M"),
        "staffName": staff_name or "",
    }
    return NotificationContext(
        tenant_id=appointment.tenant_id,
        kind=kind,
        recipient_name=appointment.client_name or "",
        recipient_email=appointment.client_email,
        recipient_phone=appointment.client_phone,
        recipient_id=appointment.client_id,
        variables=variables,
    )


def client_context(tenant_id: int, client, kind: NotificationKind) -> NotificationContext:
    return NotificationContext(
        tenant_id=tenant_id,
        kind=kind,
        recipient_name=client.full_name,
        recipient_email=client.email,
        recipient_phone=client.phone,
        recipient_id=client.id,
        variables={"clientName": client.full_name},
    )


async def log_sender(message: RenderedNotification) -> None:
    """Default sender: write the rendered message to the log"""
    ctx = message.context
    logger.info(
        f"📧 [tenant={ctx.tenant_id}] {ctx.kind.value} to {ctx.recipient_email or ctx.recipient_phone}: "
        f"{message.subject}"
    )


class WebhookSender:
    """POST rendered notifications to an HTTP endpoint that handles delivery"""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def __call__(self, message: RenderedNotification) -> None:
        ctx = message.context
        payload = {
            "tenantId": ctx.tenant_id,
            "type": ctx.kind.value,
            "recipientId": ctx.recipient_id,
            "recipientName": ctx.recipient_name,
            "recipientEmail": ctx.recipient_email,
            "recipientPhone": ctx.recipient_phone,
            "subject": message.subject,
            "body": message.body,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


def default_sender() -> Sender:
    if config.NOTIFICATION_WEBHOOK_URL:
        return WebhookSender(config.NOTIFICATION_WEBHOOK_URL)
    return log_sender


class NotificationDispatcher:
    """
    Outbox plus retrying delivery.

    Transactional code calls enqueue(), which only records the context. The outbox
    is drained with flush() once the booking decision is final (after the HTTP
    response, or at the end of a batch run).
    """

    def __init__(
        self,
        sender: Optional[Sender] = None,
        max_attempts: int = config.NOTIFICATION_MAX_ATTEMPTS,
        retry_delay: float = config.NOTIFICATION_RETRY_DELAY_SECONDS,
    ):
        self.sender = sender or default_sender()
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.outbox: list[NotificationContext] = []

    def enqueue(self, context: NotificationContext) -> None:
        self.outbox.append(context)
        logger.debug(f"📬 [tenant={context.tenant_id}] Queued {context.kind.value} for {context.recipient_name}")

    async def send(self, context: NotificationContext) -> bool:
        """Deliver one notification now. Returns False on failure, never raises."""
        if not context.recipient_email and not context.recipient_phone:
            logger.warning(
                f"⚠️ [tenant={context.tenant_id}] No email or phone for {context.kind.value} "
                f"notification to {context.recipient_name}"
            )
            return False

        message = render(context)
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.sender(message)
                logger.info(f"✅ [tenant={context.tenant_id}] {context.kind.value} sent to {context.recipient_name}")
                return True
            except Exception as e:
                logger.warning(
                    f"🔄 [tenant={context.tenant_id}] {context.kind.value} attempt "
                    f"{attempt}/{self.max_attempts} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)

        logger.error(
            f"❌ [tenant={context.tenant_id}] Giving up on {context.kind.value} to {context.recipient_name}"
        )
        return False

    async def flush(self) -> int:
        """Send everything queued so far; returns how many were delivered"""
        pending, self.outbox = self.outbox, []
        delivered = 0
        for context in pending:
            if await self.send(context):
                delivered += 1
        return delivered
