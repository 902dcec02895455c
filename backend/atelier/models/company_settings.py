"""
Company settings (single row)

Holds the sender identity and origin address used on labels, the Melhor
Envio credentials, and the markup applied to carrier prices.
"""
import uuid

from sqlalchemy import Column, String, Numeric

from atelier.core.database import Base


class MarkupType:
    FLAT = "flat"
    PERCENTAGE = "percentage"


class CompanySettings(Base):
    __tablename__ = "company_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Sender identity
    legal_name = Column(String(255), nullable=True)
    tax_id = Column(String(20), nullable=True)  # CNPJ
    state_registration = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)

    # Origin address
    postal_code = Column(String(10), nullable=True)
    street = Column(String(255), nullable=True)
    number = Column(String(20), nullable=True)
    complement = Column(String(255), nullable=True)
    neighborhood = Column(String(120), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(2), nullable=True)

    # Melhor Envio
    melhor_envio_token = Column(String(2048), nullable=True)
    melhor_envio_environment = Column(String(20), nullable=True)  # production | sandbox

    # Price markup on carrier quotes
    shipping_markup_type = Column(String(20), nullable=True)  # flat | percentage
    shipping_markup_value = Column(Numeric(10, 2), nullable=True)

    def __repr__(self):
        return f"<CompanySettings(id={self.id}, legal_name={self.legal_name})>"
