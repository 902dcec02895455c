"""
Melhor Envio Carrier Implementation

- Implements BaseCarrier on top of MelhorEnvioClient
- Builds the wire payloads (postal codes digits-only, one product line,
  receipt/own-hand disabled by default)
- Parses textual prices as Decimal and carrier timestamps as aware datetimes
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from atelier.core.exceptions import CarrierAPIError
from atelier.core.utils import only_digits
from atelier.models.carrier import CarrierCode
from atelier.models.shipment import ShipmentStatus
from atelier.modules.shipping.carriers.base import (
    AccountInfo,
    BaseCarrier,
    CarrierRate,
    Package,
    Party,
    PurchaseRequest,
    PurchaseResult,
    QuoteRequest,
    TrackingUpdate,
)
from atelier.modules.shipping.carriers import register_carrier
from atelier.services.melhor_envio_client import MelhorEnvioClient, MelhorEnvioCredentials

logger = logging.getLogger(__name__)

# Melhor Envio reports local Brasília time without an offset
CARRIER_TIMEZONE = timezone(timedelta(hours=-3))

# Melhor Envio status to ShipmentStatus mapping
MELHOR_ENVIO_STATUS_MAP = {
    "pending": ShipmentStatus.PENDING,
    "released": ShipmentStatus.PENDING,  # paid, label ready, not posted yet
    "posted": ShipmentStatus.POSTED,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "delivered": ShipmentStatus.DELIVERED,
    "canceled": ShipmentStatus.CANCELLED,
    "cancelled": ShipmentStatus.CANCELLED,
    "expired": ShipmentStatus.CANCELLED,
    "undelivered": ShipmentStatus.UNDELIVERED,
}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a carrier money/size field ("22.16", 22.16, None) into Decimal."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise CarrierAPIError(
            message=f"Melhor Envio returned an unexpected response: invalid {field_name} {value!r}",
            code="MALFORMED_RESPONSE",
        )


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse "YYYY-MM-DD HH:MM:SS" (Brasília) or ISO 8601 timestamps."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"[MelhorEnvio] Unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=CARRIER_TIMEZONE)
    return parsed


def _number(value: Decimal) -> float:
    return float(value)


def package_payload(package: Package, reference: Optional[str] = None) -> Dict:
    """Single product line used by the rate calculation."""
    return {
        "id": reference or "1",
        "width": _number(package.width),
        "height": _number(package.height),
        "length": _number(package.length),
        "weight": _number(package.weight),
        "insurance_value": _number(package.insurance_value),
        "quantity": 1,
    }


def party_payload(party: Party) -> Dict:
    """Sender/recipient block for the cart insert."""
    payload = {
        "name": party.name,
        "phone": only_digits(party.phone) or None,
        "email": party.email,
        "document": only_digits(party.document) or None,
        "address": party.address,
        "complement": party.complement,
        "number": party.number,
        "district": party.district,
        "city": party.city,
        "state_abbr": party.state_abbr,
        "country_id": party.country_id,
        "postal_code": only_digits(party.postal_code),
    }
    if party.company_document:
        payload["company_document"] = only_digits(party.company_document)
    if party.state_register:
        payload["state_register"] = party.state_register
    return payload


def build_quote_payload(request: QuoteRequest) -> Dict:
    """Body for POST /me/shipment/calculate."""
    return {
        "from": {"postal_code": only_digits(request.from_postal_code)},
        "to": {"postal_code": only_digits(request.to_postal_code)},
        "products": [package_payload(request.package, request.reference)],
        "options": {
            "receipt": request.receipt,
            "own_hand": request.own_hand,
        },
    }


def build_cart_payload(request: PurchaseRequest) -> Dict:
    """Body for POST /me/cart."""
    options: Dict[str, Any] = {
        "insurance_value": _number(request.insurance_value),
        "receipt": request.receipt,
        "own_hand": request.own_hand,
        "reverse": request.reverse,
        "non_commercial": request.non_commercial,
    }
    if request.invoice_key:
        options["invoice"] = {"key": request.invoice_key}

    payload = {
        "service": request.service_id,
        "agency": None,
        "from": party_payload(request.sender),
        "to": party_payload(request.recipient),
        "products": [
            {
                "name": line.name,
                "quantity": line.quantity,
                "unitary_value": _number(line.unitary_value),
            }
            for line in request.products
        ],
        "volumes": [{
            "height": _number(request.package.height),
            "width": _number(request.package.width),
            "length": _number(request.package.length),
            "weight": _number(request.package.weight),
        }],
        "options": options,
    }
    if request.tag:
        payload["tags"] = [{"tag": request.tag, "url": None}]
    return payload


def parse_rate(entry: Dict) -> CarrierRate:
    """Convert one offered service from the calculate response."""
    company = entry.get("company")
    if not isinstance(company, dict) or "price" not in entry or "id" not in entry:
        raise CarrierAPIError(
            message="Melhor Envio returned an unexpected response: rate without price or company",
            code="MALFORMED_RESPONSE",
            details={"entry": entry},
        )

    delivery_range = entry.get("delivery_range") or {}
    return CarrierRate(
        service_id=int(entry["id"]),
        service_name=str(entry.get("name", "")),
        carrier_name=str(company.get("name", "")),
        carrier_id=company.get("id"),
        carrier_picture=company.get("picture"),
        price=parse_decimal(entry.get("price"), "price"),
        discount=parse_decimal(entry.get("discount"), "discount"),
        currency=entry.get("currency") or "BRL",
        delivery_time=entry.get("delivery_time"),
        delivery_min=delivery_range.get("min"),
        delivery_max=delivery_range.get("max"),
        raw_response=entry,
    )


def parse_tracking(shipment_id: str, entry: Dict) -> TrackingUpdate:
    """Convert one entry of the tracking response."""
    return TrackingUpdate(
        shipment_id=shipment_id,
        carrier_status=str(entry.get("status") or ""),
        tracking_code=entry.get("tracking") or entry.get("melhor_envio_tracking"),
        posted_at=parse_timestamp(entry.get("posted_at")),
        delivered_at=parse_timestamp(entry.get("delivered_at")),
        cancelled_at=parse_timestamp(entry.get("canceled_at")),
        raw_response=entry,
    )


@register_carrier(CarrierCode.MELHOR_ENVIO)
class MelhorEnvioCarrier(BaseCarrier):
    """
    Melhor Envio marketplace (Correios, Jadlog, Azul Cargo, ...).

    One aggregator account quotes and buys labels for every carrier it
    resells; carrier and service enablement is applied by the caller.
    """

    def __init__(
        self,
        credentials: MelhorEnvioCredentials,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = MelhorEnvioClient(credentials, transport=transport)

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.MELHOR_ENVIO

    @property
    def carrier_name(self) -> str:
        return "Melhor Envio"

    async def close(self) -> None:
        await self._client.close()

    async def account_info(self) -> AccountInfo:
        data = await self._client.get_me()
        if not isinstance(data, dict):
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response",
                code="MALFORMED_RESPONSE",
            )
        name = f"{data.get('firstname', '')} {data.get('lastname', '')}".strip()
        return AccountInfo(email=data.get("email"), name=name, document=data.get("document"))

    async def balance(self) -> Decimal:
        data = await self._client.get_balance()
        if not isinstance(data, dict) or "balance" not in data:
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response",
                code="MALFORMED_RESPONSE",
            )
        return parse_decimal(data["balance"], "balance")

    async def calculate(self, request: QuoteRequest) -> List[CarrierRate]:
        payload = build_quote_payload(request)
        logger.info(f"[MelhorEnvio] Calculating shipping: {payload}")

        data = await self._client.calculate(payload)
        if not isinstance(data, list):
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response: expected a list of rates",
                code="MALFORMED_RESPONSE",
            )

        rates = []
        for entry in data:
            if not isinstance(entry, dict):
                raise CarrierAPIError(
                    message="Melhor Envio returned an unexpected response",
                    code="MALFORMED_RESPONSE",
                )
            if entry.get("error"):
                logger.debug(
                    f"[MelhorEnvio] Service {entry.get('name')} unavailable: {entry['error']}"
                )
                continue
            rates.append(parse_rate(entry))

        return rates

    async def purchase(self, request: PurchaseRequest) -> PurchaseResult:
        cart = await self._client.add_to_cart(build_cart_payload(request))
        order_id = cart.get("id") if isinstance(cart, dict) else None
        if not order_id:
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response: cart order without id",
                code="MALFORMED_RESPONSE",
            )

        await self._client.checkout([order_id])
        logger.info(f"[MelhorEnvio] Label {order_id} purchased (protocol {cart.get('protocol')})")

        # The label is paid at this point; rendering can be retried by printing later
        label_generated = True
        try:
            await self._client.generate([order_id])
        except CarrierAPIError as e:
            label_generated = False
            logger.warning(f"[MelhorEnvio] Label generation for {order_id} deferred: {e.message}")

        price = cart.get("price")
        return PurchaseResult(
            shipment_id=str(order_id),
            protocol=cart.get("protocol"),
            status=cart.get("status"),
            tracking_code=cart.get("tracking"),
            price=parse_decimal(price, "price") if price is not None else None,
            label_generated=label_generated,
            raw_response=cart,
        )

    async def print_label(self, shipment_id: str) -> str:
        data = await self._client.print_labels([shipment_id])
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response: no label URL",
                code="MALFORMED_RESPONSE",
            )
        return url

    async def cancel(self, shipment_id: str, reason_id: str, description: str = "") -> bool:
        data = await self._client.cancel(shipment_id, reason_id, description)
        result = data.get(shipment_id, {}) if isinstance(data, dict) else {}
        return bool(result.get("canceled"))

    async def track(self, shipment_ids: List[str]) -> Dict[str, TrackingUpdate]:
        if not shipment_ids:
            return {}

        data = await self._client.tracking(shipment_ids)
        if not isinstance(data, dict):
            raise CarrierAPIError(
                message="Melhor Envio returned an unexpected response: expected tracking by id",
                code="MALFORMED_RESPONSE",
            )

        updates = {}
        for shipment_id, entry in data.items():
            if isinstance(entry, dict):
                updates[str(shipment_id)] = parse_tracking(str(shipment_id), entry)
        return updates

    def map_status(self, carrier_status: str) -> Optional[ShipmentStatus]:
        status = (carrier_status or "").strip().lower()
        mapped = MELHOR_ENVIO_STATUS_MAP.get(status)
        if mapped is None:
            logger.warning(f"Unknown Melhor Envio status: {carrier_status!r}, ignoring")
        return mapped
