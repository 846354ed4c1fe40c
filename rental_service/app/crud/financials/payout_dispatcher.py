"""Moves recorded store payouts to the store's bank account.

A payment being ``completed`` only means the settlement obligation was
recorded; ``transfer_status`` tracks whether the money actually moved.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from shared.core.database import RentalSessionLocal, utcnow
from ...clients.transfer_client import (
    TransferClient,
    TransferRequest,
    get_transfer_client,
    map_transfer_status,
)
from ...core.errors import ExternalServiceError, PaymentNotFoundError, PreconditionError, RentalDomainError
from ...enum.rental_enum import PaymentStatus, PaymentType, TransferStatus
from ...models.financials.payments import BankAccount, Payment

logger = logging.getLogger(__name__)

# a transfer for the payment is in flight or done
LOCKED_TRANSFER_STATUSES = (TransferStatus.processing, TransferStatus.completed)


def get_payment(db: Session, payment_id: UUID) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise PaymentNotFoundError(payment_id)
    return payment


def get_default_bank_account(db: Session, profile_id: UUID) -> Optional[BankAccount]:
    return (
        db.query(BankAccount)
        .filter(
            BankAccount.profile_id == profile_id,
            BankAccount.is_default == True,
            BankAccount.is_deleted == False,
        )
        .first()
    )


def _result(payment: Payment, dispatched: bool, reason: Optional[str] = None) -> dict:
    return {
        "payment_id": payment.id,
        "dispatched": dispatched,
        "transfer_status": payment.transfer_status,
        "transfer_id": payment.transfer_id,
        "reason": reason,
    }


def dispatch_payout(
    db: Session,
    payment_id: UUID,
    client: TransferClient,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    payment = get_payment(db, payment_id)

    if payment.type != PaymentType.store_settlement:
        raise PreconditionError("Only store settlement payments are paid out")
    if payment.status != PaymentStatus.completed:
        raise PreconditionError("Payment must be completed before transfer")
    if payment.transfer_status in LOCKED_TRANSFER_STATUSES:
        raise PreconditionError(
            f"Transfer already {payment.transfer_status.value} for this payment")

    bank_account = get_default_bank_account(db, payment.to_profile_id)
    if not bank_account:
        logger.warning(
            f"Store {payment.to_profile_id} has no default bank account; payout {payment.id} left pending")
        return _result(payment, False, reason="no_bank_account")

    # Claim the payment before calling out so a second dispatcher cannot
    # start another transfer for it.
    claimed = (
        db.query(Payment)
        .filter(
            Payment.id == payment.id,
            Payment.transfer_status.notin_(LOCKED_TRANSFER_STATUSES),
        )
        .update(
            {
                "transfer_status": TransferStatus.processing,
                "transfer_attempts": Payment.transfer_attempts + 1,
                "bank_account_id": bank_account.id,
                "transferred_at": now,
                "transfer_failure_reason": None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if claimed != 1:
        raise PreconditionError("Transfer already started for this payment")

    db.refresh(payment)
    request = TransferRequest(
        amount=float(payment.amount),
        currency=payment.currency,
        description=payment.description or f"Settlement payout {payment.id}",
        iban=bank_account.iban,
        account_holder_name=bank_account.account_holder_name,
        bank_name=bank_account.bank_name,
        reference=str(payment.id),
        metadata={
            "payment_id": str(payment.id),
            "rental_request_id": str(payment.rental_request_id),
            "bank_account_id": str(bank_account.id),
        },
    )

    # release the claim on any failure so the payout stays retriable
    try:
        result = client.create_transfer(request)
    except Exception as e:
        reason = e.message if isinstance(e, ExternalServiceError) else f"Unexpected transfer error: {e!r}"
        db.rollback()
        payment.transfer_status = TransferStatus.failed
        payment.transfer_failure_reason = reason
        db.commit()
        logger.error(f"Payout {payment.id} transfer failed: {reason}")
        raise

    payment.transfer_id = result.transfer_id
    payment.transfer_status = result.status
    if result.status == TransferStatus.completed:
        payment.transfer_completed_at = now
    db.commit()

    logger.info(
        f"Payout {payment.id} transfer {result.transfer_id} created ({result.status.value})")
    return _result(payment, True)


def run_payout_dispatch(payment_id: UUID, client: Optional[TransferClient] = None):
    """Background entry point; owns its session."""
    db = RentalSessionLocal()
    try:
        dispatch_payout(db, payment_id, client or get_transfer_client())
    except RentalDomainError as e:
        logger.error(f"Payout dispatch for payment {payment_id} failed: {e}")
    except Exception:
        logger.exception(f"Payout dispatch for payment {payment_id} crashed")
    finally:
        db.close()


def _apply_transfer_status(payment: Payment, status: TransferStatus, now: datetime, reason: Optional[str] = None) -> bool:
    """Record a provider status; a completed transfer never moves back."""
    if payment.transfer_status == TransferStatus.completed:
        return False
    if payment.transfer_status == status:
        return False

    payment.transfer_status = status
    if status == TransferStatus.completed:
        payment.transfer_completed_at = now
        payment.transfer_failure_reason = None
    elif status == TransferStatus.failed:
        payment.transfer_failure_reason = reason or "Transfer failed"
    return True


def refresh_transfer_status(
    db: Session,
    payment_id: UUID,
    client: TransferClient,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    payment = get_payment(db, payment_id)
    if not payment.transfer_id:
        raise PreconditionError("No transfer has been created for this payment")

    result = client.get_transfer(payment.transfer_id)
    if _apply_transfer_status(payment, result.status, now, reason=result.raw_status):
        db.commit()
        logger.info(
            f"Payout {payment.id} transfer {payment.transfer_id} now {result.status.value}")
    return _result(payment, True)


def handle_transfer_webhook(
    db: Session,
    transfer_id: str,
    client: TransferClient,
    reported_status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Apply a provider callback.

    The callback is unauthenticated, so the posted status is only a hint:
    the status applied is the one the provider returns for the transfer.
    """
    now = now or utcnow()

    payment = db.query(Payment).filter(
        Payment.transfer_id == transfer_id).first()
    if not payment:
        logger.warning(f"Transfer webhook for unknown transfer {transfer_id}")
        return {"transfer_id": transfer_id, "handled": False, "transfer_status": None}

    verified = client.get_transfer(transfer_id)
    status = verified.status
    if reported_status is not None and map_transfer_status(reported_status) != status:
        logger.warning(
            f"Transfer webhook for {transfer_id} reported {reported_status}, provider says {verified.raw_status}")

    if _apply_transfer_status(payment, status, now, reason=verified.raw_status):
        db.commit()
        logger.info(
            f"Transfer webhook: payout {payment.id} transfer {transfer_id} now {status.value}")

    return {"transfer_id": transfer_id, "handled": True, "transfer_status": payment.transfer_status}
