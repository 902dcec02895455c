"""
Customer quote model

Only read by shipping: the latest approved/sent quote supplies the declared
value when the task has none.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship

from atelier.core.database import Base

# Statuses whose total is trusted as the order's value
DECLARED_VALUE_QUOTE_STATUSES = ("approved", "sent")


class Quote(Base):
    __tablename__ = "quotes"
    __table_args__ = (
        Index("ix_quotes_task_id_status", "task_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String(36), ForeignKey("design_tasks.id"), nullable=False)
    status = Column(String(20), nullable=False, default="draft")  # draft, sent, approved, rejected
    total_amount = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    task = relationship("DesignTask", back_populates="quotes")

    def __repr__(self):
        return f"<Quote(id={self.id}, task={self.task_id}, status={self.status}, total={self.total_amount})>"
