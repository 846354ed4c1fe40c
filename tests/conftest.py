import os
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

# Must be set before shared.core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest

from shared.core.auth import create_access_token
from shared.core.database import Base, RentalSessionLocal, rental_engine
from shared.core.schemas import UserToken
from rental_service.app.clients.document_store import DocumentStore
from rental_service.app.clients.messaging import ConversationChannel
from rental_service.app.clients.sales_ledger import CatalogProduct, SaleLineItem, SalesLedger
from rental_service.app.clients.transfer_client import TransferClient, TransferResult
from rental_service.app.core.errors import ExternalServiceError
from rental_service.app.enum.rental_enum import RentalStatus, TransferStatus
from rental_service.app.models.financials.payments import BankAccount
from rental_service.app.models.notifications import notifications  # noqa: F401
from rental_service.app.models.rentals.rental_clearances import RentalClearance  # noqa: F401
from rental_service.app.models.rentals.rental_requests import RentalProduct, RentalRequest
from rental_service.app.models.sales import sale_lines  # noqa: F401

NOW = datetime(2025, 3, 1, 12, 0, 0)


# ----------------------------------------------------
# Fake collaborators
# ----------------------------------------------------
class FakeLedger(SalesLedger):
    def __init__(self):
        self.products = {}
        self.sales = []

    def add_product(self, name="Oud Perfume", price=10.0, name_ar=None):
        product = CatalogProduct(id=uuid.uuid4(), name=name, name_ar=name_ar, price=price)
        self.products[product.id] = product
        return product

    def sell(self, product_id, quantity, sold_at, unit_price=10.0):
        self.sales.append(SaleLineItem(
            product_id=product_id, quantity=quantity, unit_price=unit_price, sold_at=sold_at))

    def list_sale_lines(self, start, end, product_ids):
        ids = set(product_ids)
        return [s for s in self.sales if s.product_id in ids and start <= s.sold_at <= end]

    def get_product(self, product_id):
        return self.products.get(product_id)


class FakeChannel(ConversationChannel):
    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []

    def post_system_message(self, conversation_id, title, text):
        if self.fail:
            raise ExternalServiceError("chat service down")
        self.messages.append((conversation_id, title, text))


class MemoryDocumentStore(DocumentStore):
    def __init__(self, fail=False):
        self.fail = fail
        self.documents = {}

    def store(self, content, filename, content_type):
        if self.fail:
            raise ExternalServiceError("Document storage failed")
        reference = f"doc-{len(self.documents) + 1}-{filename}"
        self.documents[reference] = content
        return reference

    def retrieve(self, reference):
        return self.documents[reference]


class FakeTransferClient(TransferClient):
    def __init__(self, status=TransferStatus.processing, fail=False):
        self.status = status
        self.fail = fail
        self.requests = []
        self.remote_status = {}

    def create_transfer(self, request):
        self.requests.append(request)
        if self.fail:
            raise ExternalServiceError("Transfer failed: insufficient balance")
        transfer_id = f"tr_{len(self.requests)}"
        self.remote_status[transfer_id] = self.status
        return TransferResult(transfer_id=transfer_id, status=self.status, raw_status=self.status.value)

    def get_transfer(self, transfer_id):
        status = self.remote_status[transfer_id]
        return TransferResult(transfer_id=transfer_id, status=status, raw_status=status.value)


# ----------------------------------------------------
# Fixtures
# ----------------------------------------------------
@pytest.fixture
def db():
    Base.metadata.create_all(bind=rental_engine)
    session = RentalSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=rental_engine)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def document_store():
    return MemoryDocumentStore()


@pytest.fixture
def transfer_client():
    return FakeTransferClient()


def make_rental(
    db,
    status=RentalStatus.active,
    start_date=NOW - timedelta(days=30),
    end_date=NOW,
    created_at=None,
    commissions=None,
    admin_approved_commission=None,
    products=(),
    conversation=True,
):
    """``products`` is a list of (product_id, initial_quantity)."""
    rental = RentalRequest(
        shelf_id=uuid.uuid4(),
        store_profile_id=uuid.uuid4(),
        brand_profile_id=uuid.uuid4(),
        conversation_id=uuid.uuid4() if conversation else None,
        start_date=start_date,
        end_date=end_date,
        status=status,
        monthly_price=Decimal("1000"),
        total_amount=Decimal("1000"),
        commissions=commissions if commissions is not None else [
            {"type": "platform", "rate": 22},
            {"type": "store", "rate": 10},
        ],
        admin_approved_commission=admin_approved_commission,
        created_at=created_at or start_date - timedelta(days=3),
    )
    for position, (product_id, quantity) in enumerate(products):
        rental.products.append(RentalProduct(
            product_id=product_id,
            position=position,
            initial_quantity=quantity,
            quantity=quantity,
        ))
    db.add(rental)
    db.commit()
    db.refresh(rental)
    return rental


def add_bank_account(db, profile_id, is_default=True):
    account = BankAccount(
        profile_id=profile_id,
        iban="SA0380000000608010167519",
        account_holder_name="Corner Store LLC",
        bank_name="Al Rajhi Bank",
        is_default=is_default,
    )
    db.add(account)
    db.commit()
    return account


def admin_user():
    return UserToken(user_id="admin-1", profile_id=uuid.uuid4(), account_type="admin")


def store_user(rental):
    return UserToken(user_id="store-1", profile_id=rental.store_profile_id, account_type="store_owner")


def brand_user(rental):
    return UserToken(user_id="brand-1", profile_id=rental.brand_profile_id, account_type="brand_owner")


def auth_header(user: UserToken) -> dict:
    token = create_access_token(user.model_dump(exclude_none=True))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def completed_rental(db, ledger):
    """Completed rental with one product: 20 placed, 15 sold at 10."""
    product = ledger.add_product(price=10.0)
    rental = make_rental(db, status=RentalStatus.completed, products=[(product.id, 20)])
    ledger.sell(product.id, 10, rental.start_date + timedelta(days=2))
    ledger.sell(product.id, 5, rental.end_date - timedelta(days=1))
    # outside the rental window
    ledger.sell(product.id, 3, rental.end_date + timedelta(days=1))
    return rental
