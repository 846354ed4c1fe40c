from enum import Enum


class RentalStatus(str, Enum):
    pending = "pending"
    payment_pending = "payment_pending"
    active = "active"
    completed = "completed"
    expired = "expired"
    cancelled = "cancelled"
    rejected = "rejected"


class ClearanceStatus(str, Enum):
    initiated = "initiated"
    pending_inventory_check = "pending_inventory_check"
    settlement_approved = "settlement_approved"
    payment_completed = "payment_completed"
    return_shipped = "return_shipped"
    return_received = "return_received"
    closed = "closed"


# Fixed forward order of the clearance workflow
CLEARANCE_STAGE_ORDER = [
    ClearanceStatus.initiated,
    ClearanceStatus.pending_inventory_check,
    ClearanceStatus.settlement_approved,
    ClearanceStatus.payment_completed,
    ClearanceStatus.return_shipped,
    ClearanceStatus.return_received,
    ClearanceStatus.closed,
]


class CommissionType(str, Enum):
    platform = "platform"
    store = "store"


class PaymentType(str, Enum):
    store_settlement = "store_settlement"


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class TransferStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class NotificationType(str, Enum):
    rental_activated = "rental_activated"
    rental_completed = "rental_completed"
    rental_expired = "rental_expired"
    rental_ending_soon = "rental_ending_soon"
    payment_reminder = "payment_reminder"
    clearance_reminder = "clearance_reminder"


class DeliveryStatus(str, Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class ClearanceListFilter(str, Enum):
    active = "active"
    closed = "closed"
