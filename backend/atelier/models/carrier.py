"""
Carrier enablement configuration

One row per carrier offered through Melhor Envio. Operators toggle the
carrier and each of its named services from the admin panel; a rate is only
shown when both the carrier and the matching service are enabled.
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON

from atelier.core.database import Base


class CarrierCode(str, enum.Enum):
    """Carrier integrations this service can talk to."""
    MELHOR_ENVIO = "melhor_envio"


class ShippingCarrier(Base):
    __tablename__ = "shipping_carriers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Carrier identification as Melhor Envio names it (correios, jadlog, ...)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    logo_url = Column(String(500), nullable=True)

    enabled = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)

    # Service configuration (JSON)
    # [
    #   {"code": "pac", "name": "PAC", "enabled": true},
    #   {"code": "sedex", "name": "SEDEX", "enabled": false},
    # ]
    services = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self):
        return f"<ShippingCarrier(code={self.code}, enabled={self.enabled})>"
