from datetime import timedelta

from rental_service.app.crud.notifications.notification_crud import (
    dispatch_pending_notifications,
    queue_notification,
)
from rental_service.app.enum.rental_enum import DeliveryStatus, NotificationType, RentalStatus
from rental_service.app.models.notifications.notifications import Notification

from conftest import NOW, FakeChannel, make_rental


def queue(db, rental, key=None):
    notification = queue_notification(
        db, rental, NotificationType.rental_completed, "Rental Completed", "Done.", NOW, dedupe_key=key)
    db.commit()
    return notification


def test_dedupe_key_suppresses_second_row(db):
    rental = make_rental(db)

    assert queue(db, rental, key="rental:x:ending:3") is not None
    assert queue(db, rental, key="rental:x:ending:3") is None
    assert db.query(Notification).count() == 1


def test_delivery_marks_sent(db, channel):
    rental = make_rental(db)
    queue(db, rental)

    result = dispatch_pending_notifications(db, channel, now=NOW)

    assert result == {"sent": 1, "failed": 0}
    notification = db.query(Notification).one()
    assert notification.delivery_status == DeliveryStatus.sent
    assert notification.sent_at == NOW
    assert channel.messages == [(rental.conversation_id, "Rental Completed", "Done.")]


def test_failed_delivery_is_retried_until_max_attempts(db):
    rental = make_rental(db)
    queue(db, rental)
    down = FakeChannel(fail=True)

    for _ in range(3):
        dispatch_pending_notifications(db, down, max_attempts=2, now=NOW)

    notification = db.query(Notification).one()
    assert notification.delivery_status == DeliveryStatus.failed
    assert notification.attempts == 2
    assert "chat service down" in notification.last_error


def test_failed_delivery_recovers(db, channel):
    rental = make_rental(db)
    queue(db, rental)
    dispatch_pending_notifications(db, FakeChannel(fail=True), now=NOW)

    result = dispatch_pending_notifications(db, channel, now=NOW + timedelta(minutes=5))

    assert result == {"sent": 1, "failed": 0}
    assert db.query(Notification).one().attempts == 2


def test_delivery_failure_does_not_touch_rental(db):
    rental = make_rental(db, status=RentalStatus.completed)
    queue(db, rental)

    dispatch_pending_notifications(db, FakeChannel(fail=True), now=NOW)

    db.refresh(rental)
    assert rental.status == RentalStatus.completed


def test_rental_without_conversation_is_given_up(db, channel):
    rental = make_rental(db, conversation=False)
    queue(db, rental)

    result = dispatch_pending_notifications(db, channel, max_attempts=5, now=NOW)

    assert result == {"sent": 0, "failed": 1}
    notification = db.query(Notification).one()
    assert notification.attempts == 5
    assert dispatch_pending_notifications(db, channel, max_attempts=5, now=NOW) == {"sent": 0, "failed": 0}
