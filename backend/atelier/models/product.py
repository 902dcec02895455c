"""
Product model catalog (shirt models)

Physical fields are optional; the shipping dimension resolver falls back to
uniform-type defaults when any of them is missing.
"""
import uuid

from sqlalchemy import Column, String, Numeric

from atelier.core.database import Base


class ShirtModel(Base):
    __tablename__ = "shirt_models"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    uniform_type = Column(String(50), nullable=True)

    # Per-unit packed size
    weight = Column(Numeric(10, 3), nullable=True)  # kg
    width = Column(Numeric(10, 2), nullable=True)  # cm
    height = Column(Numeric(10, 2), nullable=True)  # cm
    depth = Column(Numeric(10, 2), nullable=True)  # cm

    @property
    def has_dimensions(self) -> bool:
        return all(
            value is not None
            for value in (self.weight, self.width, self.height, self.depth)
        )

    def __repr__(self):
        return f"<ShirtModel(id={self.id}, name={self.name})>"
