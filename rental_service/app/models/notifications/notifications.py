import uuid
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from shared.core.database import Base
from ...enum.rental_enum import DeliveryStatus, NotificationType


class Notification(Base):
    """Outbox row for a system message on a rental conversation."""
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rental_request_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_requests.id"), nullable=False, index=True)
    clearance_id = Column(UUID(as_uuid=True), ForeignKey(
        "rental_clearances.id"), nullable=True)
    conversation_id = Column(UUID(as_uuid=True), nullable=True)

    type = Column(Enum(NotificationType, name="notification_type_enum"),
                  nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # one row per key; threshold reminders rely on it
    dedupe_key = Column(String(200), nullable=True, unique=True)

    delivery_status = Column(Enum(DeliveryStatus, name="delivery_status_enum"),
                             default=DeliveryStatus.pending, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    sent_at = Column(DateTime, nullable=True)
