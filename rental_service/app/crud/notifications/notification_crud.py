import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.core.database import utcnow
from ...clients.messaging import ConversationChannel
from ...enum.rental_enum import DeliveryStatus, NotificationType
from ...models.notifications.notifications import Notification

logger = logging.getLogger(__name__)


def queue_notification(
    db: Session,
    rental,
    type: NotificationType,
    title: str,
    message: str,
    now: datetime,
    dedupe_key: Optional[str] = None,
    clearance_id=None,
) -> Optional[Notification]:
    """Add an outbox row to the current transaction.

    Returns None when a row with the same ``dedupe_key`` already exists.
    """
    if dedupe_key:
        exists = db.query(Notification.id).filter(
            Notification.dedupe_key == dedupe_key).first()
        if exists:
            return None

    notification = Notification(
        rental_request_id=rental.id,
        clearance_id=clearance_id,
        conversation_id=rental.conversation_id,
        type=type,
        title=title,
        message=message,
        dedupe_key=dedupe_key,
        delivery_status=DeliveryStatus.pending,
        attempts=0,
        created_at=now,
    )
    db.add(notification)
    return notification


def dispatch_pending_notifications(
    db: Session,
    channel: ConversationChannel,
    max_attempts: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Deliver queued notifications; a failed delivery never touches rental state."""
    max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS
    now = now or utcnow()

    pending = (
        db.query(Notification)
        .filter(
            or_(
                Notification.delivery_status == DeliveryStatus.pending,
                and_(
                    Notification.delivery_status == DeliveryStatus.failed,
                    Notification.attempts < max_attempts,
                ),
            )
        )
        .order_by(Notification.created_at)
        .all()
    )

    sent = failed = 0
    for notification in pending:
        if notification.conversation_id is None:
            notification.delivery_status = DeliveryStatus.failed
            notification.attempts = max_attempts
            notification.last_error = "Rental has no conversation"
            db.commit()
            failed += 1
            continue

        try:
            channel.post_system_message(
                notification.conversation_id, notification.title, notification.message)
        except Exception as e:
            notification.delivery_status = DeliveryStatus.failed
            notification.attempts += 1
            notification.last_error = str(e)
            db.commit()
            failed += 1
            logger.error(
                f"Notification {notification.id} delivery failed (attempt {notification.attempts}): {e}")
            continue

        notification.delivery_status = DeliveryStatus.sent
        notification.attempts += 1
        notification.sent_at = now
        db.commit()
        sent += 1

    return {"sent": sent, "failed": failed}
