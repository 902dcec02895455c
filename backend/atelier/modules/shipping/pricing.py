"""
Shipping markup.

The price shown to the operator is the carrier's effective price (listed
price minus discount) plus the company's markup, rounded to cents.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

from atelier.models.company_settings import MarkupType
from atelier.modules.shipping.carriers.base import CarrierRate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Markup:
    mode: str
    value: Decimal

    @classmethod
    def from_settings(cls, mode: Optional[str], value: Any) -> Optional["Markup"]:
        """Build from company settings; unusable configuration means no markup."""
        if not mode or value is None:
            return None
        mode = mode.strip().lower()
        if mode not in (MarkupType.FLAT, MarkupType.PERCENTAGE):
            logger.warning(f"Unknown shipping markup type {mode!r}, ignoring markup")
            return None
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            logger.warning(f"Invalid shipping markup value {value!r}, ignoring markup")
            return None
        if not amount.is_finite():
            logger.warning(f"Invalid shipping markup value {value!r}, ignoring markup")
            return None
        return cls(mode=mode, value=amount)


def apply_markup(price: Decimal, markup: Optional[Markup]) -> Decimal:
    """
    Add markup to a price.

    flat: price + value. percentage: price * (1 + value/100).
    A missing, zero or negative markup leaves the price unchanged.
    """
    if markup is None or markup.value <= 0:
        return to_cents(price)
    if markup.mode == MarkupType.FLAT:
        return to_cents(price + markup.value)
    return to_cents(price * (Decimal("1") + markup.value / Decimal("100")))


@dataclass
class QuoteOption:
    """A rate as offered to the operator."""
    rate: CarrierRate
    final_price: Decimal

    def as_dict(self) -> Dict[str, Any]:
        rate = self.rate
        return {
            "service_id": rate.service_id,
            "service_name": rate.service_name,
            "carrier_name": rate.carrier_name,
            "carrier_picture": rate.carrier_picture,
            "price": to_cents(rate.price),
            "discount": to_cents(rate.discount),
            "final_price": self.final_price,
            "currency": rate.currency,
            "delivery_time": rate.delivery_time,
            "delivery_min": rate.delivery_min,
            "delivery_max": rate.delivery_max,
        }


def price_rates(rates: Sequence[CarrierRate], markup: Optional[Markup]) -> List[QuoteOption]:
    """Apply markup to each rate, keeping order."""
    return [QuoteOption(rate=rate, final_price=apply_markup(rate.effective_price, markup)) for rate in rates]
