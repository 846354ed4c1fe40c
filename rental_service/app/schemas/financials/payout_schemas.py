from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import Optional, Any
from pydantic import BaseModel

from ...enum.rental_enum import PaymentStatus, PaymentType, TransferStatus


class PaymentOut(BaseModel):
    id: UUID
    type: PaymentType
    rental_request_id: Optional[UUID] = None
    clearance_id: Optional[UUID] = None
    to_profile_id: UUID
    amount: Decimal
    net_amount: Decimal
    currency: Optional[str] = None
    status: PaymentStatus
    transfer_status: TransferStatus
    transfer_id: Optional[str] = None
    transfer_attempts: int = 0
    transferred_at: Optional[datetime] = None
    transfer_completed_at: Optional[datetime] = None
    transfer_failure_reason: Optional[str] = None
    payment_method: Optional[str] = None
    settlement_date: Optional[datetime] = None
    settlement_breakdown: Optional[Any] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class PayoutDispatchResult(BaseModel):
    payment_id: UUID
    dispatched: bool
    transfer_status: TransferStatus
    transfer_id: Optional[str] = None
    reason: Optional[str] = None


class TransferWebhook(BaseModel):
    id: str
    status: Optional[str] = None


class WebhookResult(BaseModel):
    transfer_id: str
    handled: bool
    transfer_status: Optional[TransferStatus] = None
