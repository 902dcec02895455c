"""
Design task (production order) and its layouts

A task is the unit that gets shipped. Layouts are its line items; a layout
without model_id was built from scratch and carries only a uniform_type tag.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from atelier.core.database import Base


class DesignTask(Base):
    __tablename__ = "design_tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(50), nullable=True, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)

    # Declared order value; may be null or zero for tasks still being quoted
    order_value = Column(Numeric(12, 2), nullable=True)

    # Legacy raw quantity, used when the task has no layouts
    quantity = Column(Integer, nullable=True)

    # ERP invoice reference, sent to the carrier as invoice key
    invoice_number = Column(String(60), nullable=True)

    # Chosen shipping option snapshot
    # {"service", "company", "price", "delivery_time", "melhor_envio_id"}
    shipping_option = Column(JSON, nullable=True)
    shipping_value = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    customer = relationship("Customer", back_populates="tasks")
    layouts = relationship("DesignTaskLayout", back_populates="task")
    quotes = relationship("Quote", back_populates="task")
    shipments = relationship("ShipmentHistory", back_populates="task")

    def __repr__(self):
        return f"<DesignTask(id={self.id}, order_number={self.order_number})>"


class DesignTaskLayout(Base):
    __tablename__ = "design_task_layouts"
    __table_args__ = (
        Index("ix_design_task_layouts_task_id", "task_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String(36), ForeignKey("design_tasks.id"), nullable=False)
    model_id = Column(String(36), ForeignKey("shirt_models.id"), nullable=True)
    quantity = Column(Integer, nullable=True)
    uniform_type = Column(String(50), nullable=True)  # manga_curta, manga_longa, regata, ziper

    task = relationship("DesignTask", back_populates="layouts")
    model = relationship("ShirtModel")

    def __repr__(self):
        return f"<DesignTaskLayout(id={self.id}, task={self.task_id}, qty={self.quantity})>"
