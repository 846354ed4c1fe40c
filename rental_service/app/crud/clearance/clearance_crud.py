import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.core.database import RentalSessionLocal, utcnow
from shared.core.schemas import UserToken
from shared.utils.clearance_pdf import generate_clearance_pdf
from shared.utils.enums import UserAccountType
from ...clients.document_store import DocumentStore, get_document_store
from ...clients.sales_ledger import DbSalesLedger, SalesLedger
from ...clients.transfer_client import TransferClient
from ...core.errors import (
    AuthorizationError,
    ClearanceNotFoundError,
    PreconditionError,
    RentalDomainError,
    RentalNotFoundError,
    StageConflictError,
)
from ...enum.rental_enum import (
    CLEARANCE_STAGE_ORDER,
    ClearanceStatus,
    PaymentStatus,
    PaymentType,
    RentalStatus,
    TransferStatus,
)
from ...models.financials.payments import Payment
from ...models.rentals.rental_clearances import RentalClearance
from ...models.rentals.rental_requests import RentalRequest
from ...schemas.clearance.clearance_schemas import ReturnReceiptCreate, ReturnShipmentCreate
from ..financials.payout_dispatcher import run_payout_dispatch
from .inventory_snapshot import calculate_final_inventory
from .settlement_calculator import calculate_rental_settlement

logger = logging.getLogger(__name__)


# ----------------------------------------------------
# Authorization
# ----------------------------------------------------
def is_admin(user: UserToken) -> bool:
    return user.account_type.lower() == UserAccountType.ADMIN.value


def require_admin(user: UserToken):
    if not is_admin(user):
        raise AuthorizationError("Admin access required")


def require_store_owner(user: UserToken, rental: RentalRequest):
    if user.profile_id is None or user.profile_id != rental.store_profile_id:
        raise AuthorizationError("Only the store owner can perform this action")


def require_brand_owner(user: UserToken, rental: RentalRequest):
    if user.profile_id is None or user.profile_id != rental.brand_profile_id:
        raise AuthorizationError("Only the brand owner can perform this action")


def require_party_or_admin(user: UserToken, rental: RentalRequest):
    if is_admin(user):
        return
    if user.profile_id is None or user.profile_id not in (rental.store_profile_id, rental.brand_profile_id):
        raise AuthorizationError("This clearance belongs to another profile")


# ----------------------------------------------------
# Lookups
# ----------------------------------------------------
def get_rental(db: Session, rental_id: UUID) -> RentalRequest:
    rental = db.query(RentalRequest).filter(
        RentalRequest.id == rental_id).first()
    if not rental:
        raise RentalNotFoundError(rental_id)
    return rental


def get_clearance_for_rental(db: Session, rental: RentalRequest) -> RentalClearance:
    clearance = db.query(RentalClearance).filter(
        RentalClearance.rental_request_id == rental.id).first()
    if not clearance:
        raise ClearanceNotFoundError(rental.id)
    return clearance


def _current_stage(db: Session, clearance_id) -> Optional[str]:
    status = db.query(RentalClearance.status).filter(
        RentalClearance.id == clearance_id).scalar()
    return status.value if status else None


def _require_stage(clearance: RentalClearance, expected: ClearanceStatus):
    if clearance.status != expected:
        raise StageConflictError(
            expected.value, clearance.status.value if clearance.status else None)


@contextmanager
def _atomic(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _advance_stage(
    db: Session,
    clearance: RentalClearance,
    expected: ClearanceStatus,
    new: ClearanceStatus,
    now: datetime,
    clearance_fields: Optional[dict] = None,
    rental_fields: Optional[dict] = None,
):
    """Move one stage forward, writing the stage and its effect fields together.

    The UPDATE only matches while the clearance is still in ``expected``, so a
    concurrent or repeated transition fails instead of applying twice.
    """
    if CLEARANCE_STAGE_ORDER.index(new) != CLEARANCE_STAGE_ORDER.index(expected) + 1:
        raise ValueError(f"{expected.value} -> {new.value} is not a forward step")

    updated = (
        db.query(RentalClearance)
        .filter(
            RentalClearance.id == clearance.id,
            RentalClearance.status == expected,
        )
        .update(
            {"status": new, "stage_changed_at": now, **(clearance_fields or {})},
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise StageConflictError(
            expected.value, _current_stage(db, clearance.id))

    db.query(RentalRequest).filter(
        RentalRequest.id == clearance.rental_request_id
    ).update(
        {"clearance_status": new, **(rental_fields or {})},
        synchronize_session=False,
    )
    logger.info(
        f"Clearance {clearance.id} (rental {clearance.rental_request_id}): {expected.value} -> {new.value}")


# ----------------------------------------------------
# Stage: initiated -> pending_inventory_check
# ----------------------------------------------------
def initiate_clearance(
    db: Session,
    rental_id: UUID,
    ledger: Optional[SalesLedger] = None,
    now: Optional[datetime] = None,
) -> RentalClearance:
    now = now or utcnow()
    ledger = ledger or DbSalesLedger(db)

    with _atomic(db):
        rental = get_rental(db, rental_id)
        if rental.status != RentalStatus.completed:
            raise PreconditionError(
                "Clearance can only start once the rental is completed")
        if rental.clearance_status is not None or rental.clearance is not None:
            raise PreconditionError("Clearance already initiated")

        snapshot = calculate_final_inventory(rental, ledger, settings.TAX_RATE)

        clearance = RentalClearance(
            rental_request_id=rental.id,
            status=ClearanceStatus.initiated,
            initiated_by=rental.store_profile_id,
            initiated_at=now,
            stage_changed_at=now,
            settlement_payment_ids=[],
        )
        db.add(clearance)
        rental.clearance_status = ClearanceStatus.initiated
        rental.clearance_initiated_at = now
        db.flush()

        _advance_stage(
            db, clearance,
            ClearanceStatus.initiated, ClearanceStatus.pending_inventory_check, now,
            rental_fields={"final_product_snapshot": snapshot},
        )

    return clearance


# ----------------------------------------------------
# Settlement query
# ----------------------------------------------------
def get_settlement(db: Session, rental_id: UUID, current_user: UserToken) -> dict:
    """Frozen breakdown once approved; before that, a computed preview."""
    rental = get_rental(db, rental_id)
    require_party_or_admin(current_user, rental)

    if rental.final_product_snapshot is None:
        raise PreconditionError("Inventory snapshot not available")

    if rental.settlement_calculation:
        settlement = {**rental.settlement_calculation, "approved": True}
    else:
        breakdown = calculate_rental_settlement(
            rental, settings.PLATFORM_COMMISSION_RATE)
        settlement = {**breakdown.to_dict(), "approved": False}

    return {
        **settlement,
        "rental_id": rental.id,
        "breakdown": rental.final_product_snapshot,
    }


def preview_settlement(db: Session, rental_id: UUID, current_user: UserToken) -> dict:
    require_admin(current_user)
    rental = get_rental(db, rental_id)
    if rental.final_product_snapshot is None:
        raise PreconditionError("Inventory snapshot not available")

    breakdown = calculate_rental_settlement(
        rental, settings.PLATFORM_COMMISSION_RATE)
    return {
        **breakdown.to_dict(),
        "approved": False,
        "rental_id": rental.id,
        "breakdown": rental.final_product_snapshot,
    }


# ----------------------------------------------------
# Stages: pending_inventory_check -> settlement_approved -> payment_completed
# ----------------------------------------------------
def approve_settlement(
    db: Session,
    rental_id: UUID,
    current_user: UserToken,
    background_tasks: Optional[BackgroundTasks] = None,
    transfer_client: Optional[TransferClient] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Freeze the settlement and record the store payout in one write.

    Payout transfers are queued on ``background_tasks`` when given, otherwise
    dispatched before returning.
    """
    require_admin(current_user)
    now = now or utcnow()
    approver = str(current_user.profile_id or current_user.user_id)

    with _atomic(db):
        rental = get_rental(db, rental_id)
        clearance = get_clearance_for_rental(db, rental)
        snapshot = rental.final_product_snapshot
        if snapshot is None:
            raise PreconditionError("Inventory snapshot not available")
        _require_stage(clearance, ClearanceStatus.pending_inventory_check)

        breakdown = calculate_rental_settlement(
            rental, settings.PLATFORM_COMMISSION_RATE)
        settlement = {
            **breakdown.to_dict(),
            "calculated_at": now.isoformat(),
            "calculated_by": approver,
            "approved_at": now.isoformat(),
            "approved_by": approver,
        }

        _advance_stage(
            db, clearance,
            ClearanceStatus.pending_inventory_check, ClearanceStatus.settlement_approved, now,
            clearance_fields={
                "settlement_approved_at": now,
                "settlement_approved_by": current_user.profile_id,
            },
            rental_fields={"settlement_calculation": settlement},
        )
        payment_ids = _record_settlement_payments(
            db, rental, clearance, settlement, now)

    _dispatch_payouts(payment_ids, background_tasks, transfer_client)

    return {
        "settlement": {
            **settlement,
            "approved": True,
            "rental_id": rental_id,
            "breakdown": snapshot,
        },
        "payment_ids": payment_ids,
    }


def _record_settlement_payments(
    db: Session,
    rental: RentalRequest,
    clearance: RentalClearance,
    settlement: dict,
    now: datetime,
) -> list:
    """Record the store payout; a zero payout completes the stage with no record."""
    payout = round(float(settlement["store_payout_amount"]), 2)
    payment_ids = []

    if payout > 0:
        amount = Decimal(str(payout))
        payment = Payment(
            type=PaymentType.store_settlement,
            rental_request_id=rental.id,
            clearance_id=clearance.id,
            from_profile_id=None,
            to_profile_id=rental.store_profile_id,
            amount=amount,
            platform_fee=Decimal("0"),
            net_amount=amount,
            currency=settings.PAYOUT_CURRENCY,
            status=PaymentStatus.completed,
            transfer_status=TransferStatus.pending,
            transfer_attempts=0,
            payment_method="bank_transfer",
            payment_date=now,
            settlement_date=now,
            settlement_breakdown={
                "total_sales_amount": settlement["total_sales"],
                "total_sales_with_tax": settlement["total_sales_with_tax"],
                "platform_commission_rate": settlement["platform_commission_rate"],
                "platform_commission_amount": settlement["platform_commission_amount"],
                "store_commission_rate": settlement["store_commission_rate"],
                "store_commission_amount": settlement["store_commission_amount"],
                "net_payout_to_store": settlement["store_payout_amount"],
            },
            description=f"Store commission payout for rental period ending {rental.end_date:%Y-%m-%d}",
        )
        db.add(payment)
        db.flush()
        payment_ids.append(str(payment.id))

    _advance_stage(
        db, clearance,
        ClearanceStatus.settlement_approved, ClearanceStatus.payment_completed, now,
        clearance_fields={
            "settlement_payment_ids": payment_ids,
            "payment_completed_at": now,
        },
    )
    return payment_ids


def _dispatch_payouts(
    payment_ids: list,
    background_tasks: Optional[BackgroundTasks],
    transfer_client: Optional[TransferClient],
):
    for payment_id in payment_ids:
        if background_tasks is not None:
            background_tasks.add_task(
                run_payout_dispatch, UUID(payment_id), transfer_client)
        else:
            run_payout_dispatch(UUID(payment_id), transfer_client)


# ----------------------------------------------------
# Stage: payment_completed -> return_shipped
# ----------------------------------------------------
def submit_return_shipment(
    db: Session,
    rental_id: UUID,
    payload: ReturnShipmentCreate,
    current_user: UserToken,
    now: Optional[datetime] = None,
):
    now = now or utcnow()

    with _atomic(db):
        rental = get_rental(db, rental_id)
        require_store_owner(current_user, rental)
        clearance = get_clearance_for_rental(db, rental)
        _require_stage(clearance, ClearanceStatus.payment_completed)

        shipment = {
            "carrier": payload.carrier,
            "tracking_number": payload.tracking_number,
            "shipped_at": now.isoformat(),
            "shipped_by": str(current_user.profile_id),
            "expected_delivery_date": (
                payload.expected_delivery_date.isoformat() if payload.expected_delivery_date else None),
            "notes": payload.notes,
        }

        _advance_stage(
            db, clearance,
            ClearanceStatus.payment_completed, ClearanceStatus.return_shipped, now,
            clearance_fields={"return_shipped_at": now},
            rental_fields={"return_shipment": shipment},
        )

    return {"success": True}


# ----------------------------------------------------
# Stage: return_shipped -> return_received
# ----------------------------------------------------
def confirm_return_receipt(
    db: Session,
    rental_id: UUID,
    payload: ReturnReceiptCreate,
    current_user: UserToken,
    now: Optional[datetime] = None,
):
    now = now or utcnow()

    with _atomic(db):
        rental = get_rental(db, rental_id)
        require_brand_owner(current_user, rental)
        clearance = get_clearance_for_rental(db, rental)
        _require_stage(clearance, ClearanceStatus.return_shipped)

        shipment = {
            **(rental.return_shipment or {}),
            "received_at": now.isoformat(),
            "received_by": str(current_user.profile_id),
            "condition": payload.condition or "good",
            "receipt_photos": payload.receipt_photos,
            "confirmation_notes": payload.notes,
        }

        _advance_stage(
            db, clearance,
            ClearanceStatus.return_shipped, ClearanceStatus.return_received, now,
            clearance_fields={"return_received_at": now},
            rental_fields={"return_shipment": shipment},
        )

    return {"success": True}


# ----------------------------------------------------
# Clearance document
# ----------------------------------------------------
def document_number(clearance_id: UUID) -> str:
    return f"CLR-{clearance_id.hex[-8:].upper()}"


def build_clearance_document(rental: RentalRequest, clearance: RentalClearance, now: datetime) -> dict:
    return {
        "document_number": document_number(clearance.id),
        "generated_date": now.isoformat(),
        "currency": settings.PAYOUT_CURRENCY,
        "rental_id": str(rental.id),
        "rental_period": {
            "start": f"{rental.start_date:%Y-%m-%d}",
            "end": f"{rental.end_date:%Y-%m-%d}",
        },
        "store_profile_id": str(rental.store_profile_id),
        "brand_profile_id": str(rental.brand_profile_id),
        "products": rental.final_product_snapshot or [],
        "settlement": rental.settlement_calculation,
        "return_shipment": rental.return_shipment,
        "clearance_initiated": clearance.initiated_at.isoformat(),
    }


def generate_clearance_document(
    db: Session,
    rental_id: UUID,
    document_store: DocumentStore,
    current_user: Optional[UserToken] = None,
    now: Optional[datetime] = None,
) -> str:
    """Render and store the clearance PDF, then attach its reference.

    Storage failures propagate as ExternalServiceError and leave the
    clearance untouched; closing stays blocked until a retry succeeds.
    """
    if current_user is not None:
        require_admin(current_user)
    now = now or utcnow()

    rental = get_rental(db, rental_id)
    clearance = get_clearance_for_rental(db, rental)
    _require_stage(clearance, ClearanceStatus.return_received)
    if rental.clearance_document_id:
        return rental.clearance_document_id

    content = generate_clearance_pdf(
        build_clearance_document(rental, clearance, now))
    reference = document_store.store(
        content, f"{document_number(clearance.id)}.pdf", "application/pdf")

    with _atomic(db):
        updated = (
            db.query(RentalClearance)
            .filter(
                RentalClearance.id == clearance.id,
                RentalClearance.status == ClearanceStatus.return_received,
                RentalClearance.clearance_document_id.is_(None),
            )
            .update(
                {"clearance_document_id": reference, "document_generated_at": now},
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise PreconditionError("Clearance document already attached")
        db.query(RentalRequest).filter(RentalRequest.id == rental.id).update(
            {"clearance_document_id": reference}, synchronize_session=False)

    logger.info(f"Clearance document {reference} stored for rental {rental_id}")
    return reference


def run_document_generation(rental_id: UUID, document_store: Optional[DocumentStore] = None):
    """Background entry point; owns its session."""
    db = RentalSessionLocal()
    try:
        generate_clearance_document(
            db, rental_id, document_store or get_document_store())
    except RentalDomainError as e:
        logger.error(
            f"Clearance document generation failed for rental {rental_id}: {e}")
    finally:
        db.close()


# ----------------------------------------------------
# Stage: return_received -> closed
# ----------------------------------------------------
def close_clearance(
    db: Session,
    rental_id: UUID,
    current_user: UserToken,
    now: Optional[datetime] = None,
):
    require_admin(current_user)
    now = now or utcnow()

    with _atomic(db):
        rental = get_rental(db, rental_id)
        clearance = get_clearance_for_rental(db, rental)

        if not rental.settlement_calculation:
            raise PreconditionError("Cannot close: Settlement not calculated")
        if clearance.payment_completed_at is None:
            raise PreconditionError("Cannot close: Payment records not created")
        if not (rental.return_shipment or {}).get("received_at"):
            raise PreconditionError(
                "Cannot close: Return not confirmed by brand")
        if not rental.clearance_document_id:
            raise PreconditionError("Cannot close: Document not generated")
        _require_stage(clearance, ClearanceStatus.return_received)

        _advance_stage(
            db, clearance,
            ClearanceStatus.return_received, ClearanceStatus.closed, now,
            clearance_fields={
                "closed_at": now, "closed_by": current_user.profile_id},
            rental_fields={"clearance_completed_at": now},
        )

    return {"success": True}
