from atelier.models.customer import Customer
from atelier.models.product import ShirtModel
from atelier.models.task import DesignTask, DesignTaskLayout
from atelier.models.quote import Quote, DECLARED_VALUE_QUOTE_STATUSES
from atelier.models.carrier import ShippingCarrier, CarrierCode
from atelier.models.company_settings import CompanySettings, MarkupType
from atelier.models.shipment import ShipmentHistory, ShipmentStatus, TERMINAL_STATUSES

__all__ = [
    "Customer",
    "ShirtModel",
    "DesignTask",
    "DesignTaskLayout",
    "Quote",
    "DECLARED_VALUE_QUOTE_STATUSES",
    "ShippingCarrier",
    "CarrierCode",
    "CompanySettings",
    "MarkupType",
    "ShipmentHistory",
    "ShipmentStatus",
    "TERMINAL_STATUSES",
]
