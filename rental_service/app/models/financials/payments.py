import uuid
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from shared.core.database import Base, JsonColumn
from ...enum.rental_enum import PaymentStatus, PaymentType, TransferStatus


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(Enum(PaymentType, name="payment_type_enum"), nullable=False)
    rental_request_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_requests.id"), nullable=True)
    clearance_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_clearances.id"), nullable=True)

    # platform pays store: from_profile_id stays empty
    from_profile_id = Column(UUID(as_uuid=True), nullable=True)
    to_profile_id = Column(UUID(as_uuid=True), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    platform_fee = Column(Numeric(14, 2), default=0)
    net_amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), default="SAR")

    status = Column(Enum(PaymentStatus, name="payment_status_enum"),
                    default=PaymentStatus.pending, nullable=False)
    transfer_status = Column(Enum(TransferStatus, name="transfer_status_enum"),
                             default=TransferStatus.pending, nullable=False)
    transfer_id = Column(String(128), nullable=True, index=True)
    transfer_attempts = Column(Integer, default=0, nullable=False)
    transferred_at = Column(DateTime, nullable=True)
    transfer_completed_at = Column(DateTime, nullable=True)
    transfer_failure_reason = Column(Text, nullable=True)
    bank_account_id = Column(UUID(as_uuid=True), ForeignKey(
        "bank_accounts.id"), nullable=True)

    payment_method = Column(String(24))  # bank_transfer|card|...
    payment_date = Column(DateTime, nullable=True)
    settlement_date = Column(DateTime, nullable=True)
    settlement_breakdown = Column(JsonColumn, nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now())


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    profile_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    iban = Column(String(64), nullable=False)
    account_holder_name = Column(String(200), nullable=False)
    bank_name = Column(String(200), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
