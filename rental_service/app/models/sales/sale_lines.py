import uuid
from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID

from shared.core.database import Base


# Read-only mirrors: written by the catalog and the order pipeline.

class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    brand_profile_id = Column(UUID(as_uuid=True), nullable=True)
    name = Column(String(255), nullable=False)
    name_ar = Column(String(255), nullable=True)
    price = Column(Numeric(14, 2), nullable=False)


class SaleLine(Base):
    __tablename__ = "sale_lines"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), nullable=False)
    product_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    sold_at = Column(DateTime, nullable=False, index=True)
