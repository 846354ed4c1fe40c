from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.auth import allow_admin
from shared.core.database import get_rental_db as get_db
from shared.core.schemas import UserToken
from ...clients.transfer_client import TransferClient, get_transfer_client
from ...crud.financials import payout_dispatcher as crud
from ...schemas.financials.payout_schemas import PayoutDispatchResult, TransferWebhook, WebhookResult

router = APIRouter(
    prefix="/api/payouts",
    tags=["payouts"],
)


@router.post("/{payment_id}/dispatch", response_model=PayoutDispatchResult)
def dispatch_payout(
    payment_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin),
    client: TransferClient = Depends(get_transfer_client)):
    return crud.dispatch_payout(db, payment_id, client)


@router.post("/{payment_id}/refresh", response_model=PayoutDispatchResult)
def refresh_transfer_status(
    payment_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin),
    client: TransferClient = Depends(get_transfer_client)):
    return crud.refresh_transfer_status(db, payment_id, client)


# Called by the transfer provider, no user token; status is re-read from the provider
@router.post("/webhook", response_model=WebhookResult)
def transfer_webhook(
    payload: TransferWebhook,
    db: Session = Depends(get_db),
    client: TransferClient = Depends(get_transfer_client)):
    return crud.handle_transfer_webhook(db, payload.id, client, reported_status=payload.status)
