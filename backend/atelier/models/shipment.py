"""
Shipment history model

One row per purchased Melhor Envio label. Rows are never deleted: the status
only moves forward (pending -> posted -> in_transit -> delivered) or ends in
cancelled/undelivered, and every timestamp is written once.
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, DateTime, Numeric, JSON, ForeignKey, Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from atelier.core.database import Base


class ShipmentStatus(str, enum.Enum):
    """Shipment lifecycle status"""
    PENDING = "pending"  # Label purchased, not yet handed to the carrier
    POSTED = "posted"  # Carrier has the package
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    UNDELIVERED = "undelivered"  # Carrier gave up on delivery


TERMINAL_STATUSES = frozenset({
    ShipmentStatus.DELIVERED,
    ShipmentStatus.CANCELLED,
    ShipmentStatus.UNDELIVERED,
})


class ShipmentHistory(Base):
    __tablename__ = "shipment_history"
    __table_args__ = (
        Index("ix_shipment_history_task_id", "task_id"),
        Index("ix_shipment_history_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String(36), ForeignKey("design_tasks.id"), nullable=True)

    # Carrier-side order id, used for every follow-up call
    melhor_envio_id = Column(String(64), unique=True, nullable=False, index=True)

    carrier_name = Column(String(100), nullable=False)
    service_name = Column(String(100), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)  # Charged to customer, after markup

    status = Column(
        SQLEnum(ShipmentStatus, values_callable=lambda e: [m.value for m in e]),
        default=ShipmentStatus.PENDING,
        nullable=False,
    )
    tracking_code = Column(String(100), nullable=True)
    label_url = Column(String(1000), nullable=True)

    # [{"status", "carrier_status", "tracking_code", "observed_at", "source"}]
    status_history = Column(JSON, default=list)

    posted_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    task = relationship("DesignTask", back_populates="shipments")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<ShipmentHistory(id={self.id}, melhor_envio_id={self.melhor_envio_id}, status={self.status})>"
