from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Any
from pydantic import BaseModel, field_validator

from shared.core.schemas import CommonQueryParams
from ...enum.rental_enum import ClearanceListFilter, ClearanceStatus


class ReturnShipmentCreate(BaseModel):
    carrier: str
    tracking_number: str
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("carrier", "tracking_number")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class ReturnReceiptCreate(BaseModel):
    condition: Optional[str] = "good"
    receipt_photos: Optional[List[str]] = None
    notes: Optional[str] = None


class SnapshotLineOut(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    product_name_ar: Optional[str] = None
    initial_quantity: int
    sold_quantity: int
    remaining_quantity: int
    unit_price: float
    total_sales_value: float
    total_sales_with_tax: float


class SettlementOut(BaseModel):
    rental_id: UUID
    approved: bool
    total_sales: float
    total_sales_with_tax: float
    total_sold_units: int
    total_returned_units: int
    platform_commission_rate: float
    platform_commission_amount: float
    store_commission_rate: float
    store_commission_amount: float
    store_payout_amount: float
    brand_sales_revenue: float
    return_inventory_value: float
    brand_total_amount: float
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    breakdown: List[SnapshotLineOut] = []


class ApproveSettlementResponse(BaseModel):
    settlement: SettlementOut
    payment_ids: List[str]


class ClearanceOut(BaseModel):
    id: UUID
    rental_request_id: UUID
    status: ClearanceStatus
    initiated_at: datetime
    settlement_approved_at: Optional[datetime] = None
    payment_completed_at: Optional[datetime] = None
    return_shipped_at: Optional[datetime] = None
    return_received_at: Optional[datetime] = None
    document_generated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    settlement_payment_ids: Optional[List[str]] = None
    clearance_document_id: Optional[str] = None

    model_config = {"from_attributes": True}


class ClearanceListRequest(CommonQueryParams):
    status: Optional[ClearanceListFilter] = None


class ClearanceListItem(BaseModel):
    rental_id: UUID
    clearance_id: Optional[UUID] = None
    start_date: datetime
    end_date: datetime
    clearance_status: Optional[ClearanceStatus] = None
    amount: float
    counterparty_profile_id: UUID
    clearance_initiated_at: Optional[datetime] = None


class ClearanceStats(BaseModel):
    total: int
    active: int
    closed: int
    total_revenue: float


class ClearanceListResponse(BaseModel):
    items: List[ClearanceListItem]
    total: int
    stats: ClearanceStats


class ClearanceRentalOut(BaseModel):
    id: UUID
    start_date: datetime
    end_date: datetime
    monthly_price: float
    total_amount: Optional[float] = None
    clearance_status: Optional[ClearanceStatus] = None
    final_product_snapshot: Optional[List[SnapshotLineOut]] = None
    settlement_calculation: Optional[Any] = None
    return_shipment: Optional[Any] = None
    clearance_document_id: Optional[str] = None


class ClearanceDetailOut(BaseModel):
    clearance: ClearanceOut
    rental: ClearanceRentalOut
    settlement_payments: List[Any] = []


class DocumentOut(BaseModel):
    rental_id: UUID
    clearance_document_id: str
