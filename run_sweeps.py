"""Cron entry point for the periodic sweeps.

    python run_sweeps.py lifecycle       # hourly
    python run_sweeps.py reminders       # daily
    python run_sweeps.py notifications   # retry undelivered messages
"""
import argparse
import logging
import sys

from shared.core.database import RentalSessionLocal, rental_engine, Base
from rental_service.app.clients.messaging import get_conversation_channel
from rental_service.app.crud.notifications.notification_crud import dispatch_pending_notifications
from rental_service.app.crud.scheduler.reminder_service import process_rental_reminders
from rental_service.app.crud.scheduler.scheduler_service import run_lifecycle_sweep
from rental_service.app.models.rentals import rental_requests, rental_clearances
from rental_service.app.models.financials import payments
from rental_service.app.models.notifications import notifications
from rental_service.app.models.sales import sale_lines

logger = logging.getLogger("run_sweeps")


def run(sweep: str) -> dict:
    db = RentalSessionLocal()
    channel = get_conversation_channel()
    try:
        if sweep == "lifecycle":
            return run_lifecycle_sweep(db, channel)
        if sweep == "reminders":
            result = process_rental_reminders(db)
            result["notifications"] = dispatch_pending_notifications(db, channel)
            return result
        return dispatch_pending_notifications(db, channel)
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run a rental sweep once")
    parser.add_argument("sweep", choices=["lifecycle", "reminders", "notifications"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    Base.metadata.create_all(bind=rental_engine)

    try:
        result = run(args.sweep)
    except Exception:
        logger.exception(f"{args.sweep} sweep failed")
        return 1

    logger.info(f"{args.sweep} sweep result: {result}")
    return 1 if result.get("errors") else 0


if __name__ == "__main__":
    sys.exit(main())
