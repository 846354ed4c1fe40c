from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from shared.core.auth import allow_admin, validate_current_token
from shared.core.database import get_rental_db as get_db
from shared.core.schemas import UserToken
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from shared.utils.enums import UserAccountType
from ...clients.document_store import DocumentStore, get_document_store
from ...clients.transfer_client import TransferClient, get_transfer_client
from ...core.errors import PreconditionError
from ...crud.clearance import clearance_crud as crud
from ...crud.clearance import clearance_listing_crud as listing_crud
from ...schemas.clearance.clearance_schemas import (
    ApproveSettlementResponse,
    ClearanceDetailOut,
    ClearanceListRequest,
    ClearanceListResponse,
    DocumentOut,
    ReturnReceiptCreate,
    ReturnShipmentCreate,
    SettlementOut,
)

router = APIRouter(
    prefix="/api/clearances",
    tags=["clearances"],
    dependencies=[Depends(validate_current_token)]
)


# ---------------- Listings ----------------
@router.get("/store", response_model=ClearanceListResponse)
def get_store_clearances(
    params: ClearanceListRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)):
    return listing_crud.get_clearances(db, current_user, params, UserAccountType.STORE_OWNER)


@router.get("/brand", response_model=ClearanceListResponse)
def get_brand_clearances(
    params: ClearanceListRequest = Depends(),
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)):
    return listing_crud.get_clearances(db, current_user, params, UserAccountType.BRAND_OWNER)


@router.get("/detail/{clearance_id}", response_model=ClearanceDetailOut)
def get_clearance_detail(
    clearance_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)):
    return listing_crud.get_clearance_detail(db, clearance_id, current_user)


# ---------------- Settlement ----------------
@router.get("/{rental_id}/settlement", response_model=SettlementOut)
def get_settlement(
    rental_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)):
    return crud.get_settlement(db, rental_id, current_user)


@router.get("/{rental_id}/settlement/preview", response_model=SettlementOut)
def preview_settlement(
    rental_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin)):
    return crud.preview_settlement(db, rental_id, current_user)


@router.post("/{rental_id}/approve-settlement")
def approve_settlement(
    rental_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin),
    transfer_client: TransferClient = Depends(get_transfer_client)):
    result = crud.approve_settlement(
        db, rental_id, current_user,
        background_tasks=background_tasks, transfer_client=transfer_client)
    return success_response(
        data=ApproveSettlementResponse(**result),
        message="Settlement approved",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )


# ---------------- Return flow ----------------
@router.post("/{rental_id}/return-shipment")
def submit_return_shipment(
    rental_id: UUID,
    payload: ReturnShipmentCreate,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)):
    crud.submit_return_shipment(db, rental_id, payload, current_user)
    return success_response(
        data=None,
        message="Return shipment submitted",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )


@router.post("/{rental_id}/confirm-receipt")
def confirm_return_receipt(
    rental_id: UUID,
    payload: ReturnReceiptCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token),
    document_store: DocumentStore = Depends(get_document_store)):
    crud.confirm_return_receipt(db, rental_id, payload, current_user)
    background_tasks.add_task(
        crud.run_document_generation, rental_id, document_store)
    return success_response(
        data=None,
        message="Return receipt confirmed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )


# ---------------- Document ----------------
@router.post("/{rental_id}/document")
def generate_document(
    rental_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin),
    document_store: DocumentStore = Depends(get_document_store)):
    reference = crud.generate_clearance_document(
        db, rental_id, document_store, current_user=current_user)
    return success_response(
        data=DocumentOut(rental_id=rental_id, clearance_document_id=reference),
        message="Clearance document generated",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )


@router.get("/{rental_id}/document")
def download_document(
    rental_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token),
    document_store: DocumentStore = Depends(get_document_store)):
    rental = crud.get_rental(db, rental_id)
    crud.require_party_or_admin(current_user, rental)
    if not rental.clearance_document_id:
        raise PreconditionError("Clearance document not generated yet")

    content = document_store.retrieve(rental.clearance_document_id)
    filename = f"{crud.document_number(rental.clearance.id)}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


# ---------------- Close ----------------
@router.post("/{rental_id}/close")
def close_clearance(
    rental_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_admin)):
    crud.close_clearance(db, rental_id, current_user)
    return success_response(
        data=None,
        message="Clearance closed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL
    )
