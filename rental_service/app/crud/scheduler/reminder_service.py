import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.core.database import utcnow
from ...enum.rental_enum import ClearanceStatus, NotificationType, RentalStatus
from ...models.rentals.rental_clearances import RentalClearance
from ...models.rentals.rental_requests import RentalRequest
from ..notifications.notification_crud import queue_notification

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# Nudge for whoever the stalled stage is waiting on
CLEARANCE_REMINDERS = {
    ClearanceStatus.initiated:
        "تذكير: جاري تجهيز جرد المخزون النهائي.\nReminder: The final inventory count is being prepared.",
    ClearanceStatus.pending_inventory_check:
        "تذكير: يرجى مراجعة جرد المخزون لإكمال التسوية.\nReminder: Please review inventory to complete clearance.",
    ClearanceStatus.settlement_approved:
        "تذكير: بانتظار إنشاء دفعة التسوية.\nReminder: Awaiting creation of the settlement payment.",
    ClearanceStatus.payment_completed:
        "تذكير: يرجى شحن المنتجات المتبقية للعلامة التجارية.\nReminder: Please ship remaining products back to the brand.",
    ClearanceStatus.return_shipped:
        "تذكير: يرجى تأكيد استلام المنتجات المرتجعة.\nReminder: Please confirm receipt of returned products.",
    ClearanceStatus.return_received:
        "تذكير: بانتظار إغلاق التسوية من الإدارة.\nReminder: Awaiting admin closure of the clearance.",
}


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days left before ``moment``, rounded up."""
    return math.ceil((moment - now).total_seconds() / SECONDS_PER_DAY)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed since ``moment``."""
    return math.floor((now - moment).total_seconds() / SECONDS_PER_DAY)


def _queue(db: Session, counts: dict, key: str, rental, **kwargs):
    notification = queue_notification(db, rental, **kwargs)
    db.commit()
    if notification is not None:
        counts[key] += 1


def process_rental_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """Queue due reminders. Never touches rental or clearance state.

    Each reminder carries a dedupe key, so running the sweep more than once
    per day does not repeat a threshold.
    """
    now = now or utcnow()
    counts = {"ending_soon": 0, "payment": 0, "clearance": 0, "errors": 0}
    thresholds = set(settings.REMINDER_DAYS)

    # =====================================================
    # ACTIVE RENTALS ENDING SOON
    # =====================================================
    horizon = now + timedelta(days=max(thresholds, default=0) + 1)
    active = db.query(RentalRequest).filter(
        RentalRequest.status == RentalStatus.active,
        RentalRequest.end_date > now,
        RentalRequest.end_date <= horizon,
    ).all()

    for rental in active:
        rental_id = rental.id
        try:
            days = days_until(rental.end_date, now)
            if days not in thresholds:
                continue
            _queue(
                db, counts, "ending_soon", rental,
                type=NotificationType.rental_ending_soon,
                title="Rental Ending Soon",
                message=f"Your rental will end in {days} day{'s' if days > 1 else ''}. Consider renewing if you'd like to continue.",
                now=now,
                dedupe_key=f"rental:{rental_id}:ending:{days}",
            )
        except Exception:
            db.rollback()
            counts["errors"] += 1
            logger.exception(f"Failed to queue ending reminder for rental {rental_id}")

    # =====================================================
    # PAYMENT PENDING FOR A DAY
    # =====================================================
    awaiting_payment = db.query(RentalRequest).filter(
        RentalRequest.status == RentalStatus.payment_pending,
    ).all()

    for rental in awaiting_payment:
        rental_id = rental.id
        try:
            if days_since(rental.created_at, now) != 1:
                continue
            _queue(
                db, counts, "payment", rental,
                type=NotificationType.payment_reminder,
                title="Payment Reminder",
                message="Your rental request was accepted. Please complete the payment to secure the shelf.",
                now=now,
                dedupe_key=f"rental:{rental_id}:payment_reminder",
            )
        except Exception:
            db.rollback()
            counts["errors"] += 1
            logger.exception(f"Failed to queue payment reminder for rental {rental_id}")

    # =====================================================
    # STALLED CLEARANCES
    # =====================================================
    stall_cutoff = now - timedelta(days=settings.CLEARANCE_STALL_DAYS)
    stalled = db.query(RentalClearance).filter(
        RentalClearance.status != ClearanceStatus.closed,
        RentalClearance.stage_changed_at <= stall_cutoff,
    ).all()

    for clearance in stalled:
        clearance_id = clearance.id
        try:
            message = CLEARANCE_REMINDERS.get(clearance.status)
            if not message:
                continue
            _queue(
                db, counts, "clearance", clearance.rental,
                type=NotificationType.clearance_reminder,
                title="Clearance Reminder",
                message=message,
                now=now,
                clearance_id=clearance_id,
                dedupe_key=f"clearance:{clearance_id}:stalled:{clearance.status.value}:{now:%Y-%m-%d}",
            )
        except Exception:
            db.rollback()
            counts["errors"] += 1
            logger.exception(f"Failed to queue clearance reminder for {clearance_id}")

    logger.info(f"Reminder sweep finished: {counts}")
    return counts
