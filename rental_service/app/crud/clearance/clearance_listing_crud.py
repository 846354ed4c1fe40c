from uuid import UUID

from sqlalchemy.orm import Session

from shared.core.schemas import UserToken
from shared.utils.enums import UserAccountType
from ...core.errors import AuthorizationError, ClearanceNotFoundError
from ...enum.rental_enum import ClearanceListFilter, ClearanceStatus
from ...models.financials.payments import Payment
from ...models.rentals.rental_clearances import RentalClearance
from ...models.rentals.rental_requests import RentalRequest
from ...schemas.clearance.clearance_schemas import (
    ClearanceDetailOut,
    ClearanceListItem,
    ClearanceListRequest,
    ClearanceListResponse,
    ClearanceOut,
    ClearanceRentalOut,
    ClearanceStats,
)
from ...schemas.financials.payout_schemas import PaymentOut
from .clearance_crud import require_party_or_admin

# settlement field each side sees as its amount
AMOUNT_FIELD = {
    UserAccountType.STORE_OWNER: "store_payout_amount",
    UserAccountType.BRAND_OWNER: "brand_total_amount",
}


def _settlement_amount(rental: RentalRequest, field: str) -> float:
    return float((rental.settlement_calculation or {}).get(field) or 0)


def _build_filters(owner_column, profile_id: UUID, params: ClearanceListRequest):
    filters = [
        owner_column == profile_id,
        RentalRequest.clearance_status.isnot(None),
    ]
    if params.status == ClearanceListFilter.active:
        filters.append(RentalRequest.clearance_status != ClearanceStatus.closed)
    elif params.status == ClearanceListFilter.closed:
        filters.append(RentalRequest.clearance_status == ClearanceStatus.closed)
    return filters


def get_clearances(
    db: Session,
    current_user: UserToken,
    params: ClearanceListRequest,
    account_type: UserAccountType,
) -> ClearanceListResponse:
    if current_user.account_type.lower() != account_type.value or current_user.profile_id is None:
        raise AuthorizationError(
            f"Only {account_type.value.replace('_', ' ')}s can access this")

    if account_type == UserAccountType.STORE_OWNER:
        owner_column = RentalRequest.store_profile_id
        counterparty = "brand_profile_id"
    else:
        owner_column = RentalRequest.brand_profile_id
        counterparty = "store_profile_id"
    amount_field = AMOUNT_FIELD[account_type]

    rentals = (
        db.query(RentalRequest)
        .filter(*_build_filters(owner_column, current_user.profile_id, params))
        .order_by(RentalRequest.created_at.desc())
        .all()
    )
    page = rentals[params.skip: params.skip + params.limit]

    items = []
    for rental in page:
        clearance = rental.clearance
        items.append(ClearanceListItem(
            rental_id=rental.id,
            clearance_id=clearance.id if clearance else None,
            start_date=rental.start_date,
            end_date=rental.end_date,
            clearance_status=rental.clearance_status,
            amount=_settlement_amount(rental, amount_field),
            counterparty_profile_id=getattr(rental, counterparty),
            clearance_initiated_at=clearance.initiated_at if clearance else None,
        ))

    closed = sum(
        1 for r in rentals if r.clearance_status == ClearanceStatus.closed)
    stats = ClearanceStats(
        total=len(rentals),
        active=len(rentals) - closed,
        closed=closed,
        total_revenue=sum(_settlement_amount(r, amount_field) for r in rentals),
    )

    return ClearanceListResponse(items=items, total=len(rentals), stats=stats)


def get_clearance_detail(db: Session, clearance_id: UUID, current_user: UserToken) -> ClearanceDetailOut:
    clearance = db.query(RentalClearance).filter(
        RentalClearance.id == clearance_id).first()
    if not clearance:
        raise ClearanceNotFoundError(clearance_id)

    rental = clearance.rental
    require_party_or_admin(current_user, rental)

    payments = []
    if clearance.settlement_payment_ids:
        payment_ids = [UUID(pid) for pid in clearance.settlement_payment_ids]
        payments = db.query(Payment).filter(Payment.id.in_(payment_ids)).all()

    return ClearanceDetailOut(
        clearance=ClearanceOut.model_validate(clearance),
        rental=ClearanceRentalOut(
            id=rental.id,
            start_date=rental.start_date,
            end_date=rental.end_date,
            monthly_price=float(rental.monthly_price),
            total_amount=float(rental.total_amount) if rental.total_amount is not None else None,
            clearance_status=rental.clearance_status,
            final_product_snapshot=rental.final_product_snapshot,
            settlement_calculation=rental.settlement_calculation,
            return_shipment=rental.return_shipment,
            clearance_document_id=rental.clearance_document_id,
        ),
        settlement_payments=[PaymentOut.model_validate(p) for p in payments],
    )
