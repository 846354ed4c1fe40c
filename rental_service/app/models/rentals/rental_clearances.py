import uuid
from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from shared.core.database import Base, JsonColumn
from ...enum.rental_enum import ClearanceStatus


class RentalClearance(Base):
    __tablename__ = "rental_clearances"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rental_request_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_requests.id"), nullable=False, unique=True)
    status = Column(
        Enum(ClearanceStatus, name="clearance_status_enum"),
        default=ClearanceStatus.initiated,
        nullable=False
    )

    initiated_by = Column(UUID(as_uuid=True), nullable=True)
    initiated_at = Column(DateTime, nullable=False)
    settlement_approved_at = Column(DateTime, nullable=True)
    settlement_approved_by = Column(UUID(as_uuid=True), nullable=True)
    payment_completed_at = Column(DateTime, nullable=True)
    return_shipped_at = Column(DateTime, nullable=True)
    return_received_at = Column(DateTime, nullable=True)
    document_generated_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(UUID(as_uuid=True), nullable=True)
    # last forward move; the stalled-workflow reminder measures from here
    stage_changed_at = Column(DateTime, nullable=False)

    settlement_payment_ids = Column(JsonColumn, nullable=True)
    clearance_document_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    rental = relationship("RentalRequest", back_populates="clearance")
