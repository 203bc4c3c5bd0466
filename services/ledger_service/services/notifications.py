"""Notification outbox.

Money flows only *enqueue* notifications (in the same transaction as the
ledger change). A separate job delivers them to the communications service,
so a delivery failure never aborts or rolls back a money movement.
"""

from decimal import Decimal
from typing import Optional, Protocol

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from services.ledger_service.models import (
    Notification,
    NotificationStatus,
    NotificationType,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def build_notification(
    *,
    user_id: str,
    notification_type: NotificationType,
    title: str,
    message: str,
    amount: Optional[Decimal] = None,
) -> Notification:
    """Build an outbox row without adding it to a session."""
    return Notification(
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        message=message,
        amount=amount,
        status=NotificationStatus.PENDING,
        attempts=0,
    )


def enqueue_notification(db: AsyncSession, **kwargs) -> Notification:
    """Add an outbox row to the session; the caller's commit persists it."""
    notification = build_notification(**kwargs)
    db.add(notification)
    return notification


class NotificationSink(Protocol):
    async def send(self, notification: Notification) -> None:
        """Deliver one notification; raise on failure."""


class HttpNotificationSink:
    """Posts notifications to the communications service."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = base_url or get_settings().COMMUNICATIONS_SERVICE_URL

    async def send(self, notification: Notification) -> None:
        response = await internal_post(
            service_url=self.base_url,
            path="/internal/notifications",
            calling_service="ledger",
            json={
                "user_id": notification.user_id,
                "type": notification.notification_type.value,
                "title": notification.title,
                "message": notification.message,
                "amount": (
                    f"{notification.amount:.2f}"
                    if notification.amount is not None
                    else None
                ),
                "reference": str(notification.id),
            },
        )
        response.raise_for_status()


async def deliver_pending_notifications(
    db: AsyncSession,
    sink: Optional[NotificationSink] = None,
    *,
    limit: Optional[int] = None,
) -> dict:
    """Send pending outbox rows, oldest first.

    A failed send increments ``attempts``; after NOTIFICATION_MAX_ATTEMPTS the
    row is marked ``failed`` and no longer retried.
    """
    settings = get_settings()
    sink = sink or HttpNotificationSink()
    limit = limit or settings.NOTIFICATION_BATCH_SIZE

    result = await db.execute(
        select(Notification)
        .where(Notification.status == NotificationStatus.PENDING)
        .order_by(Notification.created_at.asc())
        .limit(limit)
    )
    pending = list(result.scalars().all())

    sent = failed = retrying = 0
    for notification in pending:
        try:
            await sink.send(notification)
        except Exception as exc:
            notification.attempts += 1
            notification.last_error = str(exc)[:500]
            if notification.attempts >= settings.NOTIFICATION_MAX_ATTEMPTS:
                notification.status = NotificationStatus.FAILED
                failed += 1
                logger.error(
                    "Notification %s to user %s failed permanently after %d attempts: %s",
                    notification.id,
                    notification.user_id,
                    notification.attempts,
                    exc,
                )
            else:
                retrying += 1
                logger.warning(
                    "Notification %s to user %s failed (attempt %d): %s",
                    notification.id,
                    notification.user_id,
                    notification.attempts,
                    exc,
                )
        else:
            notification.status = NotificationStatus.SENT
            notification.sent_at = utc_now()
            notification.attempts += 1
            sent += 1
        await db.commit()

    return {"sent": sent, "failed": failed, "retrying": retrying}
