import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from rental_service.app.clients.document_store import get_document_store
from rental_service.app.clients.messaging import get_conversation_channel
from rental_service.app.clients.transfer_client import get_transfer_client
from rental_service.app.crud.clearance import clearance_crud as crud
from rental_service.app.enum.rental_enum import ClearanceStatus, RentalStatus, TransferStatus
from rental_service.app.main import app
from rental_service.app.models.financials.payments import Payment
from rental_service.app.models.rentals.rental_requests import RentalRequest

from conftest import NOW, admin_user, auth_header, brand_user, make_rental, store_user


@pytest.fixture
def client(document_store, transfer_client, channel):
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_transfer_client] = lambda: transfer_client
    app.dependency_overrides[get_conversation_channel] = lambda: channel
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def initiated(db, ledger, completed_rental):
    crud.initiate_clearance(db, completed_rental.id, ledger=ledger, now=NOW)
    return completed_rental


def clearance_status(db, rental_id):
    db.expire_all()
    return db.get(RentalRequest, rental_id).clearance_status


def test_settlement_preview_for_store(db, client, initiated):
    response = client.get(f"/api/clearances/{initiated.id}/settlement",
                          headers=auth_header(store_user(initiated)))

    assert response.status_code == 200
    body = response.json()
    assert body["approved"] is False
    assert body["total_sales"] == 150
    assert body["breakdown"][0]["remaining_quantity"] == 5


def test_admin_only_preview_endpoint(db, client, initiated):
    response = client.get(f"/api/clearances/{initiated.id}/settlement/preview",
                          headers=auth_header(brand_user(initiated)))

    assert response.status_code == 403


def test_approval_requires_admin(db, client, initiated):
    response = client.post(f"/api/clearances/{initiated.id}/approve-settlement",
                           headers=auth_header(store_user(initiated)))

    assert response.status_code == 403
    assert clearance_status(db, initiated.id) == ClearanceStatus.pending_inventory_check


def test_receipt_by_wrong_profile_is_forbidden(db, client, initiated):
    headers = auth_header(admin_user())
    client.post(f"/api/clearances/{initiated.id}/approve-settlement", headers=headers)
    client.post(f"/api/clearances/{initiated.id}/return-shipment",
                json={"carrier": "Aramex", "tracking_number": "AR-1"},
                headers=auth_header(store_user(initiated)))

    response = client.post(f"/api/clearances/{initiated.id}/confirm-receipt", json={},
                           headers=auth_header(store_user(initiated)))

    assert response.status_code == 403
    assert response.json()["status"] == "Failure"
    assert clearance_status(db, initiated.id) == ClearanceStatus.return_shipped


def test_close_before_receipt_is_a_conflict(db, client, initiated):
    client.post(f"/api/clearances/{initiated.id}/approve-settlement", headers=auth_header(admin_user()))

    response = client.post(f"/api/clearances/{initiated.id}/close", headers=auth_header(admin_user()))

    assert response.status_code == 409
    assert "Return not confirmed by brand" in response.json()["message"]
    assert clearance_status(db, initiated.id) == ClearanceStatus.payment_completed


def test_blank_tracking_number_is_rejected(db, client, initiated):
    response = client.post(f"/api/clearances/{initiated.id}/return-shipment",
                           json={"carrier": "Aramex", "tracking_number": "  "},
                           headers=auth_header(store_user(initiated)))

    assert response.status_code == 422


def test_unknown_rental_is_404(db, client):
    response = client.get(f"/api/clearances/{uuid.uuid4()}/settlement", headers=auth_header(admin_user()))

    assert response.status_code == 404


def test_full_clearance_over_http(db, client, initiated, document_store, transfer_client):
    admin = auth_header(admin_user())

    approved = client.post(f"/api/clearances/{initiated.id}/approve-settlement", headers=admin)
    assert approved.status_code == 200
    assert approved.json()["data"]["settlement"]["approved"] is True
    assert len(approved.json()["data"]["payment_ids"]) == 1
    # store has no bank account yet, payout stays pending
    assert transfer_client.requests == []

    shipped = client.post(f"/api/clearances/{initiated.id}/return-shipment",
                          json={"carrier": "Aramex", "tracking_number": "AR-1"},
                          headers=auth_header(store_user(initiated)))
    assert shipped.status_code == 200

    received = client.post(f"/api/clearances/{initiated.id}/confirm-receipt",
                           json={"condition": "good"},
                           headers=auth_header(brand_user(initiated)))
    assert received.status_code == 200
    # document rendered by the background task
    assert len(document_store.documents) == 1

    closed = client.post(f"/api/clearances/{initiated.id}/close", headers=admin)
    assert closed.status_code == 200
    assert clearance_status(db, initiated.id) == ClearanceStatus.closed

    download = client.get(f"/api/clearances/{initiated.id}/document",
                          headers=auth_header(brand_user(initiated)))
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.content.startswith(b"%PDF")


def test_store_listing_and_stats(db, client, ledger, initiated):
    other = make_rental(db, status=RentalStatus.completed, products=[])
    crud.initiate_clearance(db, other.id, ledger=ledger, now=NOW)

    response = client.get("/api/clearances/store", params={"status": "active"},
                          headers=auth_header(store_user(initiated)))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["rental_id"] == str(initiated.id)
    assert body["items"][0]["counterparty_profile_id"] == str(initiated.brand_profile_id)
    assert body["stats"] == {"total": 1, "active": 1, "closed": 0, "total_revenue": 0}


def test_brand_listing_rejects_store_token(db, client, initiated):
    response = client.get("/api/clearances/brand", headers=auth_header(store_user(initiated)))

    assert response.status_code == 403


def test_detail_is_owner_only(db, client, initiated):
    clearance_id = initiated.clearance.id
    stranger = brand_user(make_rental(db))

    forbidden = client.get(f"/api/clearances/detail/{clearance_id}", headers=auth_header(stranger))
    allowed = client.get(f"/api/clearances/detail/{clearance_id}", headers=auth_header(brand_user(initiated)))

    assert forbidden.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["clearance"]["status"] == "pending_inventory_check"


def test_transfer_webhook_needs_no_token(db, client, initiated, transfer_client):
    from conftest import add_bank_account

    add_bank_account(db, initiated.store_profile_id)
    client.post(f"/api/clearances/{initiated.id}/approve-settlement", headers=auth_header(admin_user()))
    assert len(transfer_client.requests) == 1

    transfer_client.remote_status["tr_1"] = TransferStatus.completed
    response = client.post("/api/payouts/webhook", json={"id": "tr_1", "status": "success"})

    assert response.status_code == 200
    assert response.json()["transfer_status"] == "completed"
    db.expire_all()
    assert db.query(Payment).one().transfer_status == TransferStatus.completed


def test_spoofed_transfer_webhook_does_not_complete_payout(db, client, initiated, transfer_client):
    from conftest import add_bank_account

    add_bank_account(db, initiated.store_profile_id)
    client.post(f"/api/clearances/{initiated.id}/approve-settlement", headers=auth_header(admin_user()))

    response = client.post("/api/payouts/webhook", json={"id": "tr_1", "status": "completed"})

    assert response.status_code == 200
    assert response.json()["transfer_status"] == "processing"
    db.expire_all()
    payment = db.query(Payment).one()
    assert payment.transfer_status == TransferStatus.processing
    assert payment.transfer_completed_at is None


def test_scheduler_sweeps_are_admin_only(db, client, ledger):
    make_rental(db, status=RentalStatus.payment_pending, start_date=NOW - timedelta(hours=1),
                end_date=NOW + timedelta(days=30))

    forbidden = client.post("/api/scheduler/lifecycle-sweep", headers=auth_header(store_user(make_rental(db))))
    response = client.post("/api/scheduler/lifecycle-sweep", headers=auth_header(admin_user()))

    assert forbidden.status_code == 403
    assert response.status_code == 200
    assert response.json()["data"]["activated"] == 1
