"""
Customer model

Only the fields the shipping integration reads: contact data, documents and
the delivery address. The full customer record is managed by the front-end.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from atelier.core.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)

    # "Física" (individual, uses cpf) or "Jurídica" (company, uses cnpj)
    person_type = Column(String(20), nullable=True)
    cpf = Column(String(20), nullable=True)
    cnpj = Column(String(20), nullable=True)

    # Delivery address
    postal_code = Column(String(10), nullable=True)
    street = Column(String(255), nullable=True)
    number = Column(String(20), nullable=True)
    complement = Column(String(255), nullable=True)
    neighborhood = Column(String(120), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    tasks = relationship("DesignTask", back_populates="customer")

    @property
    def document(self):
        """CPF for individuals, CNPJ otherwise."""
        if self.person_type == "Física":
            return self.cpf
        return self.cnpj

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.name}, postal_code={self.postal_code})>"
