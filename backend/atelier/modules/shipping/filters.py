"""
Carrier/service enablement filter.

Melhor Envio returns every service it resells; operators only want the ones
they switched on. Names in the configuration are typed by hand ("Jadlog",
"jadlog .Package", "Correios") so matching is fuzzy: case and accents are
ignored and either name may contain the other.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from atelier.core.utils import strip_accents
from atelier.modules.shipping.carriers.base import CarrierRate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceRule:
    name: str
    enabled: bool = True
    code: Optional[str] = None


@dataclass(frozen=True)
class CarrierRule:
    code: str
    name: str
    enabled: bool = True
    services: Tuple[ServiceRule, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, carrier: Any) -> "CarrierRule":
        """Build from a ShippingCarrier row (services JSON may be None or sloppy)."""
        services = []
        for entry in carrier.services or []:
            if not isinstance(entry, dict):
                continue
            services.append(ServiceRule(
                name=str(entry.get("name") or ""),
                enabled=bool(entry.get("enabled", True)),
                code=entry.get("code"),
            ))
        return cls(
            code=carrier.code or "",
            name=carrier.name or "",
            enabled=bool(carrier.enabled),
            services=tuple(services),
        )


def normalize_name(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(strip_accents(value).lower().split())


def names_match(configured: Optional[str], offered: Optional[str]) -> bool:
    """Case/accent-insensitive containment in either direction. Empty never matches."""
    a = normalize_name(configured)
    b = normalize_name(offered)
    if not a or not b:
        return False
    return a in b or b in a


def _find_carrier(rate: CarrierRate, rules: Sequence[CarrierRule]) -> Optional[CarrierRule]:
    offered = normalize_name(rate.carrier_name)
    candidates = [
        rule for rule in rules
        if names_match(rule.code, rate.carrier_name) or names_match(rule.name, rate.carrier_name)
    ]
    for rule in candidates:
        if offered in (normalize_name(rule.code), normalize_name(rule.name)):
            return rule
    return candidates[0] if candidates else None


def rejection_reason(rate: CarrierRate, rules: Sequence[CarrierRule]) -> Optional[str]:
    """Why a rate is filtered out, or None when it is allowed."""
    carrier = _find_carrier(rate, rules)
    if carrier is None:
        return "carrier not configured"
    if not carrier.enabled:
        return "carrier disabled"

    for service in carrier.services:
        if not service.enabled:
            continue
        if names_match(service.name, rate.service_name) or names_match(service.code, rate.service_name):
            return None
    return "service not enabled"


def sort_by_price(rates: Iterable[CarrierRate]) -> List[CarrierRate]:
    """Cheapest effective price first; ties keep carrier order."""
    return sorted(rates, key=lambda rate: rate.effective_price)


def filter_rates(
    rates: Sequence[CarrierRate],
    rules: Optional[Sequence[CarrierRule]],
) -> List[CarrierRate]:
    """
    Keep rates whose carrier and service are both enabled, sorted by price.

    An empty or missing configuration means nothing has been set up yet and
    every rate passes.
    """
    if not rules:
        return sort_by_price(rates)

    allowed = []
    for rate in rates:
        reason = rejection_reason(rate, rules)
        if reason:
            logger.info(
                f"Dropping rate {rate.carrier_name}/{rate.service_name} "
                f"({rate.effective_price}): {reason}"
            )
            continue
        allowed.append(rate)

    return sort_by_price(allowed)
