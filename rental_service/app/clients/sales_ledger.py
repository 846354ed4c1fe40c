"""Sales ledger interface.

The order pipeline owns sales; the clearance snapshot only reads them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.sales.sale_lines import Product, SaleLine


@dataclass(frozen=True)
class SaleLineItem:
    product_id: UUID
    quantity: int
    unit_price: float
    sold_at: datetime


@dataclass(frozen=True)
class CatalogProduct:
    id: UUID
    name: str
    name_ar: Optional[str]
    price: float


class SalesLedger(ABC):
    """Interface for sales and catalog lookups."""

    @abstractmethod
    def list_sale_lines(
        self, start: datetime, end: datetime, product_ids: Iterable[UUID]
    ) -> list[SaleLineItem]:
        """Return sale lines for the given products sold within [start, end]."""
        ...

    @abstractmethod
    def get_product(self, product_id: UUID) -> CatalogProduct | None:
        """Return a catalog product, or None if it no longer exists."""
        ...


class DbSalesLedger(SalesLedger):
    """Reads the order pipeline's tables through the shared database."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def list_sale_lines(self, start, end, product_ids):
        ids = list(product_ids)
        if not ids:
            return []

        rows = (
            self._db.query(SaleLine)
            .filter(
                SaleLine.product_id.in_(ids),
                SaleLine.sold_at >= start,
                SaleLine.sold_at <= end,
            )
            .order_by(SaleLine.sold_at)
            .all()
        )
        return [
            SaleLineItem(
                product_id=row.product_id,
                quantity=row.quantity,
                unit_price=float(row.unit_price),
                sold_at=row.sold_at,
            )
            for row in rows
        ]

    def get_product(self, product_id):
        product = self._db.query(Product).filter(
            Product.id == product_id).first()
        if not product:
            return None
        return CatalogProduct(
            id=product.id,
            name=product.name,
            name_ar=product.name_ar,
            price=float(product.price),
        )
