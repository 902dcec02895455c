"""
Base Carrier Interface

All carriers implement this interface so the quote pipeline and the shipment
lifecycle never depend on a concrete HTTP client. Each carrier provides:
  - Rate calculation
  - Label purchase
  - Label printing
  - Cancellation
  - Batch tracking
  - Status mapping
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from atelier.models.carrier import CarrierCode
from atelier.models.shipment import ShipmentStatus


# =============================================================================
# Carrier-Agnostic Data Classes
# =============================================================================

@dataclass
class Package:
    """A single aggregated package (quantity already folded into the size)."""
    weight: Decimal  # kg
    width: Decimal  # cm
    height: Decimal  # cm
    length: Decimal  # cm
    insurance_value: Decimal = Decimal("0")


@dataclass
class Party:
    """Sender or recipient as printed on the label."""
    name: str
    postal_code: str
    address: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    state_abbr: Optional[str] = None
    country_id: str = "BR"
    phone: Optional[str] = None
    email: Optional[str] = None
    document: Optional[str] = None
    company_document: Optional[str] = None
    state_register: Optional[str] = None


@dataclass
class ProductLine:
    """Declared content line for the label's content declaration."""
    name: str
    quantity: int
    unitary_value: Decimal


@dataclass
class QuoteRequest:
    """Request for rates on one package between two postal codes."""
    from_postal_code: str
    to_postal_code: str
    package: Package
    reference: Optional[str] = None
    receipt: bool = False
    own_hand: bool = False


@dataclass
class CarrierRate:
    """One candidate service returned by the rate quote."""
    service_id: int
    service_name: str
    carrier_name: str
    price: Decimal
    discount: Decimal = Decimal("0")
    currency: str = "BRL"
    carrier_id: Optional[int] = None
    carrier_picture: Optional[str] = None
    delivery_time: Optional[int] = None  # business days
    delivery_min: Optional[int] = None
    delivery_max: Optional[int] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)

    @property
    def effective_price(self) -> Decimal:
        """Price the carrier actually charges (listed price minus discount)."""
        return self.price - self.discount


@dataclass
class PurchaseRequest:
    """Request to buy a label for a chosen service."""
    service_id: int
    sender: Party
    recipient: Party
    package: Package
    products: List[ProductLine] = field(default_factory=list)
    insurance_value: Decimal = Decimal("0")
    invoice_key: Optional[str] = None
    receipt: bool = False
    own_hand: bool = False
    reverse: bool = False
    non_commercial: bool = False
    tag: Optional[str] = None


@dataclass
class PurchaseResult:
    """Result of a paid label purchase."""
    shipment_id: str
    protocol: Optional[str] = None
    status: Optional[str] = None
    tracking_code: Optional[str] = None
    price: Optional[Decimal] = None
    label_generated: bool = False
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrackingUpdate:
    """Carrier-reported state of one shipment."""
    shipment_id: str
    carrier_status: str
    tracking_code: Optional[str] = None
    posted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountInfo:
    """Account the API token belongs to."""
    email: Optional[str]
    name: str
    document: Optional[str] = None


# =============================================================================
# Base Carrier Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for shipping carriers.

    Implementations raise CarrierAPIError on any failed or unusable call;
    they never return partial results or swallow errors.
    """

    @property
    @abstractmethod
    def carrier_code(self) -> CarrierCode:
        """Return the carrier code enum value."""

    @property
    @abstractmethod
    def carrier_name(self) -> str:
        """Return the human-readable carrier name."""

    @abstractmethod
    async def calculate(self, request: QuoteRequest) -> List[CarrierRate]:
        """
        Quote every service the carrier offers for the package.

        Returns:
            Raw candidate rates, unfiltered and without markup
        """

    @abstractmethod
    async def purchase(self, request: PurchaseRequest) -> PurchaseResult:
        """
        Buy a label. This spends money: callers must not retry automatically.
        """

    @abstractmethod
    async def print_label(self, shipment_id: str) -> str:
        """Return a URL for the printable label document."""

    @abstractmethod
    async def cancel(self, shipment_id: str, reason_id: str, description: str = "") -> bool:
        """Cancel a purchased label. Returns True when the carrier accepted."""

    @abstractmethod
    async def track(self, shipment_ids: List[str]) -> Dict[str, TrackingUpdate]:
        """
        Fetch tracking state for many shipments in a single call.

        Returns:
            Mapping of shipment id -> TrackingUpdate (ids the carrier does
            not know are simply absent)
        """

    @abstractmethod
    def map_status(self, carrier_status: str) -> Optional[ShipmentStatus]:
        """
        Map carrier-specific status to ShipmentStatus.

        Returns None for statuses with no local meaning.
        """

    async def account_info(self) -> AccountInfo:
        """Identify the account behind the configured credentials."""
        raise NotImplementedError(f"{self.carrier_name} does not expose account info")

    async def balance(self) -> Decimal:
        """Prepaid wallet balance, for carriers that bill from one."""
        raise NotImplementedError(f"{self.carrier_name} does not expose a balance")

    async def close(self) -> None:
        """Release network resources."""
