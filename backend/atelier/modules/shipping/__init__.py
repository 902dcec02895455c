"""
Shipping Module

- BaseCarrier interface and CarrierFactory (carriers/)
- Package dimension resolution, rate filtering, markup and the shipment
  status lifecycle as plain functions, independent of the carrier client
"""
from atelier.modules.shipping.carriers import CarrierFactory, get_carrier
from atelier.modules.shipping.carriers.base import BaseCarrier
from atelier.modules.shipping.dimensions import resolve_package, resolve_declared_value
from atelier.modules.shipping.filters import filter_rates, names_match
from atelier.modules.shipping.lifecycle import apply_status, can_transition
from atelier.modules.shipping.pricing import Markup, apply_markup, price_rates

__all__ = [
    "CarrierFactory",
    "get_carrier",
    "BaseCarrier",
    "resolve_package",
    "resolve_declared_value",
    "filter_rates",
    "names_match",
    "apply_status",
    "can_transition",
    "Markup",
    "apply_markup",
    "price_rates",
]
