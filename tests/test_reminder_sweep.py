from datetime import timedelta

import pytest

from rental_service.app.crud.clearance import clearance_crud as crud
from rental_service.app.crud.scheduler.reminder_service import days_until, process_rental_reminders
from rental_service.app.enum.rental_enum import ClearanceStatus, NotificationType, RentalStatus
from rental_service.app.models.notifications.notifications import Notification
from rental_service.app.models.rentals.rental_clearances import RentalClearance
from rental_service.app.models.rentals.rental_requests import RentalRequest

from conftest import NOW, admin_user, make_rental


def reminders(db, type):
    return db.query(Notification).filter(Notification.type == type).all()


@pytest.mark.parametrize("days", [7, 3, 1])
def test_ending_soon_reminder_at_each_threshold(db, days):
    make_rental(db, status=RentalStatus.active, end_date=NOW + timedelta(days=days))

    counts = process_rental_reminders(db, now=NOW)

    assert counts["ending_soon"] == 1
    [notification] = reminders(db, NotificationType.rental_ending_soon)
    assert f"{days} day" in notification.message


@pytest.mark.parametrize("days", [2, 4, 6, 8])
def test_no_reminder_between_thresholds(db, days):
    make_rental(db, status=RentalStatus.active, end_date=NOW + timedelta(days=days))

    process_rental_reminders(db, now=NOW)

    assert reminders(db, NotificationType.rental_ending_soon) == []


def test_partial_day_rounds_up():
    assert days_until(NOW + timedelta(days=2, hours=1), NOW) == 3
    assert days_until(NOW + timedelta(days=3), NOW) == 3


def test_reminders_are_not_repeated_on_rerun(db):
    make_rental(db, status=RentalStatus.active, end_date=NOW + timedelta(days=3))

    process_rental_reminders(db, now=NOW)
    second = process_rental_reminders(db, now=NOW + timedelta(hours=6))

    assert second["ending_soon"] == 0
    assert len(reminders(db, NotificationType.rental_ending_soon)) == 1


def test_each_threshold_fires_once_over_the_rental(db):
    rental = make_rental(db, status=RentalStatus.active, end_date=NOW + timedelta(days=7))

    for day in range(8):
        process_rental_reminders(db, now=NOW + timedelta(days=day))

    keys = sorted(n.dedupe_key for n in reminders(db, NotificationType.rental_ending_soon))
    assert keys == sorted(f"rental:{rental.id}:ending:{d}" for d in (1, 3, 7))


def test_payment_reminder_after_one_day(db):
    rental = make_rental(db, status=RentalStatus.payment_pending, created_at=NOW - timedelta(days=1, hours=2),
                         start_date=NOW + timedelta(days=3), end_date=NOW + timedelta(days=33))

    process_rental_reminders(db, now=NOW)
    process_rental_reminders(db, now=NOW + timedelta(hours=3))

    [notification] = reminders(db, NotificationType.payment_reminder)
    assert notification.rental_request_id == rental.id


def test_no_payment_reminder_on_day_two(db):
    make_rental(db, status=RentalStatus.payment_pending, created_at=NOW - timedelta(days=2, hours=1),
                start_date=NOW + timedelta(days=3), end_date=NOW + timedelta(days=33))

    process_rental_reminders(db, now=NOW)

    assert reminders(db, NotificationType.payment_reminder) == []


def test_stalled_clearance_gets_stage_specific_nudge(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)

    early = process_rental_reminders(db, now=NOW + timedelta(days=6))
    stalled = process_rental_reminders(db, now=NOW + timedelta(days=7))

    assert early["clearance"] == 0
    assert stalled["clearance"] == 1
    [notification] = reminders(db, NotificationType.clearance_reminder)
    assert "review inventory" in notification.message
    assert notification.clearance_id == completed_rental.clearance.id


def test_stall_is_measured_from_last_stage_change(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)
    crud.approve_settlement(db, completed_rental.id, admin_user(), now=NOW + timedelta(days=5))

    progressed = process_rental_reminders(db, now=NOW + timedelta(days=8))
    stalled = process_rental_reminders(db, now=NOW + timedelta(days=12))

    assert progressed["clearance"] == 0
    assert stalled["clearance"] == 1
    [notification] = reminders(db, NotificationType.clearance_reminder)
    assert "ship remaining products" in notification.message


def test_stalled_reminder_once_per_day(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)

    process_rental_reminders(db, now=NOW + timedelta(days=8))
    process_rental_reminders(db, now=NOW + timedelta(days=8, hours=5))
    process_rental_reminders(db, now=NOW + timedelta(days=9))

    assert len(reminders(db, NotificationType.clearance_reminder)) == 2


def test_closed_clearance_gets_no_nudge(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)
    db.query(RentalClearance).update({"status": ClearanceStatus.closed})
    db.commit()

    counts = process_rental_reminders(db, now=NOW + timedelta(days=30))

    assert counts["clearance"] == 0


def test_reminders_never_change_state(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)
    active = make_rental(db, status=RentalStatus.active, end_date=NOW + timedelta(days=1))

    process_rental_reminders(db, now=NOW + timedelta(days=8))

    db.expire_all()
    assert db.get(RentalRequest, active.id).status == RentalStatus.active
    assert db.get(RentalRequest, completed_rental.id).clearance_status == ClearanceStatus.pending_inventory_check
