import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.core.database import utcnow
from ...clients.messaging import ConversationChannel
from ...clients.sales_ledger import DbSalesLedger, SalesLedger
from ...enum.rental_enum import NotificationType, RentalStatus
from ...models.rentals.rental_requests import RentalRequest
from ..clearance.clearance_crud import initiate_clearance
from ..notifications.notification_crud import dispatch_pending_notifications, queue_notification

logger = logging.getLogger(__name__)

ACTIVATED_TITLE = "Rental Started"
ACTIVATED_MESSAGE = "The rental period has started. Your products are now on the shelf."
COMPLETED_TITLE = "Rental Completed"
COMPLETED_MESSAGE = "The rental period has been completed successfully. Thank you for using our platform!"
EXPIRED_TITLE = "Rental Request Expired"
EXPIRED_MESSAGE = "Your rental request has expired after {hours} hours without response."


def _transition(
    db: Session,
    rental: RentalRequest,
    source: RentalStatus,
    target: RentalStatus,
    now: datetime,
    notification_type: NotificationType,
    title: str,
    message: str,
) -> bool:
    """Write one status change plus its notification, or nothing.

    The UPDATE only matches while the rental is still in ``source``; a rerun
    or a concurrent sweep finds no row and emits nothing.
    """
    updated = (
        db.query(RentalRequest)
        .filter(RentalRequest.id == rental.id, RentalRequest.status == source)
        .update({"status": target, "updated_at": now}, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        return False

    queue_notification(db, rental, notification_type, title, message, now)
    db.commit()
    logger.info(f"Rental {rental.id}: {source.value} -> {target.value}")
    return True


def _run_transitions(db: Session, candidates, source, target, now, notification_type, title, message, counts, key):
    for rental in candidates:
        rental_id = rental.id
        try:
            if _transition(db, rental, source, target, now, notification_type, title, message):
                counts[key] += 1
        except Exception:
            db.rollback()
            counts["errors"] += 1
            logger.exception(
                f"Failed to move rental {rental_id} from {source.value} to {target.value}")


def process_rental_statuses(
    db: Session,
    ledger: Optional[SalesLedger] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Run every time-driven rental transition once.

    Safe to rerun: each pass only selects rentals still in the source status.
    One failing rental is logged and skipped, the rest of the batch goes on.
    """
    now = now or utcnow()
    ledger = ledger or DbSalesLedger(db)
    counts = {"activated": 0, "completed": 0, "expired": 0,
              "clearances_initiated": 0, "errors": 0}

    # =====================================================
    # ACTIVATE PAID RENTALS
    # =====================================================
    to_activate = db.query(RentalRequest).filter(
        RentalRequest.status == RentalStatus.payment_pending,
        RentalRequest.start_date <= now,
    ).all()
    _run_transitions(db, to_activate, RentalStatus.payment_pending, RentalStatus.active, now,
                     NotificationType.rental_activated, ACTIVATED_TITLE, ACTIVATED_MESSAGE,
                     counts, "activated")

    # =====================================================
    # COMPLETE ENDED RENTALS
    # =====================================================
    to_complete = db.query(RentalRequest).filter(
        RentalRequest.status == RentalStatus.active,
        RentalRequest.end_date <= now,
    ).all()
    _run_transitions(db, to_complete, RentalStatus.active, RentalStatus.completed, now,
                     NotificationType.rental_completed, COMPLETED_TITLE, COMPLETED_MESSAGE,
                     counts, "completed")

    # =====================================================
    # EXPIRE UNANSWERED REQUESTS
    # =====================================================
    ttl_hours = settings.PENDING_REQUEST_TTL_HOURS
    to_expire = db.query(RentalRequest).filter(
        RentalRequest.status == RentalStatus.pending,
        RentalRequest.created_at < now - timedelta(hours=ttl_hours),
    ).all()
    _run_transitions(db, to_expire, RentalStatus.pending, RentalStatus.expired, now,
                     NotificationType.rental_expired, EXPIRED_TITLE,
                     EXPIRED_MESSAGE.format(hours=ttl_hours), counts, "expired")

    # =====================================================
    # START CLEARANCE FOR COMPLETED RENTALS
    # =====================================================
    # Also picks up rentals whose initiation failed on an earlier run.
    pending_clearance = [
        rental_id for (rental_id,) in db.query(RentalRequest.id).filter(
            RentalRequest.status == RentalStatus.completed,
            RentalRequest.clearance_status.is_(None),
        ).all()
    ]
    for rental_id in pending_clearance:
        try:
            initiate_clearance(db, rental_id, ledger=ledger, now=now)
            counts["clearances_initiated"] += 1
        except Exception:
            counts["errors"] += 1
            logger.exception(f"Failed to initiate clearance for rental {rental_id}")

    logger.info(f"Lifecycle sweep finished: {counts}")
    return counts


def run_lifecycle_sweep(
    db: Session,
    channel: ConversationChannel,
    ledger: Optional[SalesLedger] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Transitions first, then deliver what they queued."""
    counts = process_rental_statuses(db, ledger=ledger, now=now)
    counts["notifications"] = dispatch_pending_notifications(db, channel, now=now)
    return counts
