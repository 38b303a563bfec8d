"""Status-change notifications.

The engine decides *that* something should be notified and *what* it says;
delivery belongs to a sink.  Services queue notifications on the session:

    notifications.queue(db, plan_order_status(order, "Created", "In Transit"))

and the router hands whatever was queued to the sink as a background task
once the response is ready:

    background_tasks.add_task(sink.deliver, notifications.drain(db))

Two sinks exist: `LoggingNotificationSink` (default) and
`WebhookNotificationSink`, which POSTs each notification to a configured URL
using a bearer token from a `TokenCache`.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.consignment import Consignment, ConsignmentStatus
from app.models.order import Order, OrderStatus
from app.utils.token_cache import TokenCache

logger = logging.getLogger(__name__)

_SESSION_KEY = "pending_notifications"

ORDER_NOTIFY_STATUSES = {
    OrderStatus.IN_TRANSIT.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.CANCELLED.value,
}
CONSIGNMENT_NOTIFY_STATUSES = {
    ConsignmentStatus.IN_TRANSIT.value,
    ConsignmentStatus.DELIVERED.value,
}


@dataclass
class Notification:
    event: str  # order.status_changed | consignment.submitted | ...
    subject: str
    message: str
    entity_type: str
    entity_id: str
    recipients: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())


# ── Planning ─────────────────────────────────────────────────

def plan_order_status(order: Order, old_status: str, new_status: str) -> Notification | None:
    if new_status == old_status or new_status not in ORDER_NOTIFY_STATUSES:
        return None

    recipients = [r.receiver_email for r in order.receivers if r.receiver_email]
    if order.sender is not None and order.sender.sender_email:
        recipients.insert(0, order.sender.sender_email)

    return Notification(
        event="order.status_changed",
        subject=f"Order {order.booking_ref} is {new_status}",
        message=f"Order {order.booking_ref} moved from {old_status} to {new_status}.",
        entity_type="order",
        entity_id=order.id,
        recipients=list(dict.fromkeys(recipients)),
    )


def plan_consignment(
    consignment: Consignment,
    action: str,
    old_status: str | None = None,
) -> Notification | None:
    """Notification for a consignment change, or None if nothing is worth sending.

    Sent when a consignment is created as Submitted, when it reaches
    In Transit or Delivered, and when it is cancelled.
    """
    new_status = consignment.status
    number = consignment.consignment_number

    if action == "created":
        if new_status != ConsignmentStatus.SUBMITTED.value:
            return None
        event, message = "consignment.submitted", f"Consignment {number} submitted."
    elif action == "cancelled":
        event, message = "consignment.cancelled", f"Consignment {number} was cancelled."
    elif new_status != old_status and new_status in CONSIGNMENT_NOTIFY_STATUSES:
        event = "consignment.status_changed"
        message = f"Consignment {number} moved from {old_status} to {new_status}."
    else:
        return None

    return Notification(
        event=event,
        subject=f"Consignment {number} is {new_status}",
        message=message,
        entity_type="consignment",
        entity_id=consignment.id,
    )


def queue(db: AsyncSession, notification: Notification | None) -> None:
    """Hold a notification on the session until the router drains it."""
    if notification is not None:
        db.info.setdefault(_SESSION_KEY, []).append(notification)


def drain(db: AsyncSession) -> list[Notification]:
    return db.info.pop(_SESSION_KEY, [])


# ── Delivery ─────────────────────────────────────────────────

class NotificationSink(Protocol):
    async def deliver(self, notifications: list[Notification]) -> None: ...


class LoggingNotificationSink:
    async def deliver(self, notifications: list[Notification]) -> None:
        for n in notifications:
            logger.info(
                f"Notification {n.event}: {n.subject}",
                extra={"entity_id": n.entity_id, "recipients": n.recipients},
            )


class WebhookNotificationSink:
    """POST each notification as JSON with a cached bearer token."""

    def __init__(
        self,
        url: str,
        tokens: TokenCache,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.tokens = tokens
        self.timeout = timeout
        self.transport = transport

    async def _post(self, client: httpx.AsyncClient, notification: Notification) -> httpx.Response:
        token = await self.tokens.get()
        return await client.post(
            self.url,
            json=asdict(notification),
            headers={"Authorization": f"Bearer {token}"},
        )

    async def deliver(self, notifications: list[Notification]) -> None:
        if not notifications:
            return
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for n in notifications:
                try:
                    response = await self._post(client, n)
                    if response.status_code == 401:
                        self.tokens.invalidate()
                        response = await self._post(client, n)
                    response.raise_for_status()
                except (httpx.HTTPError, KeyError, ValueError) as e:
                    logger.error(
                        f"Notification delivery failed: {n.event} ({e})",
                        extra={"entity_id": n.entity_id},
                    )


async def fetch_client_credentials_token() -> tuple[str, float]:
    """OAuth2 client-credentials grant against the configured token URL."""
    async with httpx.AsyncClient(timeout=settings.notification_timeout) as client:
        response = await client.post(
            settings.notification_token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": settings.notification_client_id,
                "client_secret": settings.notification_client_secret,
            },
        )
        response.raise_for_status()
        body = response.json()
    return body["access_token"], float(body.get("expires_in", 3600))


_sink: NotificationSink | None = None


def get_notification_sink() -> NotificationSink:
    """FastAPI dependency; one sink (and token cache) per process."""
    global _sink
    if _sink is None:
        if settings.notification_webhook_url:
            tokens = TokenCache(
                fetch_client_credentials_token,
                refresh_margin=settings.notification_token_refresh_margin,
            )
            _sink = WebhookNotificationSink(
                settings.notification_webhook_url, tokens, timeout=settings.notification_timeout
            )
        else:
            _sink = LoggingNotificationSink()
    return _sink
