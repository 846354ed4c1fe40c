import uuid
from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, func
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from shared.core.database import Base, JsonColumn
from ...enum.rental_enum import ClearanceStatus, RentalStatus

# Frozen once the clearance workflow has started
COMMERCIAL_FIELDS = ("monthly_price", "commissions", "admin_approved_commission")


class RentalRequest(Base):
    __tablename__ = "rental_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shelf_id = Column(UUID(as_uuid=True), nullable=False)
    store_profile_id = Column(UUID(as_uuid=True), nullable=False)  # host
    brand_profile_id = Column(UUID(as_uuid=True), nullable=False)  # tenant
    conversation_id = Column(UUID(as_uuid=True), nullable=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(
        Enum(RentalStatus, name="rental_status_enum"),
        default=RentalStatus.pending,
        nullable=False
    )

    monthly_price = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=True)
    # [{"type": "platform"|"store", "rate": 22.0}]
    commissions = Column(JsonColumn, nullable=True)
    admin_approved_commission = Column(Numeric(5, 2), nullable=True)

    # clearance extension
    clearance_status = Column(
        Enum(ClearanceStatus, name="clearance_status_enum"), nullable=True)
    clearance_initiated_at = Column(DateTime, nullable=True)
    clearance_completed_at = Column(DateTime, nullable=True)
    final_product_snapshot = Column(JsonColumn, nullable=True)
    settlement_calculation = Column(JsonColumn, nullable=True)
    return_shipment = Column(JsonColumn, nullable=True)
    clearance_document_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now())

    __table_args__ = (
        CheckConstraint("end_date > start_date",
                        name="ck_rental_requests_date_range"),
    )

    products = relationship(
        "RentalProduct",
        back_populates="rental",
        cascade="all, delete-orphan",
        order_by="RentalProduct.position",
    )
    clearance = relationship(
        "RentalClearance", back_populates="rental", uselist=False)

    @validates(*COMMERCIAL_FIELDS)
    def _freeze_commercial_terms(self, key, value):
        if self.clearance_status is not None:
            raise ValueError(
                f"{key} cannot change once clearance has started")
        return value

    def commission_rate(self, commission_type: str):
        for entry in self.commissions or []:
            if entry.get("type") == commission_type and entry.get("rate") is not None:
                return float(entry["rate"])
        return None


class RentalProduct(Base):
    """One line of the booking manifest.

    ``initial_quantity`` is what was placed on the shelf at booking time and
    never changes; ``quantity`` is decremented by the order pipeline as sales
    happen.
    """
    __tablename__ = "rental_products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rental_request_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_requests.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(UUID(as_uuid=True), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    initial_quantity = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)

    rental = relationship("RentalRequest", back_populates="products")
