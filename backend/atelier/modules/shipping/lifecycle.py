r"""
Shipment status lifecycle.

    pending -> posted -> in_transit -> delivered
        \________\___________\______-> cancelled | undelivered

Status only moves forward. Carriers routinely replay stale events (a
tracking poll answering "posted" after the webhook already said
"delivered"); those are ignored, never applied. posted_at, delivered_at and
cancelled_at are each written once.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from atelier.core.utils import utcnow
from atelier.models.shipment import ShipmentStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

STATUS_RANK = {
    ShipmentStatus.PENDING: 0,
    ShipmentStatus.POSTED: 1,
    ShipmentStatus.IN_TRANSIT: 2,
    ShipmentStatus.DELIVERED: 3,
}

# Reaching any of these means the carrier has had the package
POSTED_OR_LATER = frozenset({
    ShipmentStatus.POSTED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.DELIVERED,
})


def is_terminal(status: ShipmentStatus) -> bool:
    return ShipmentStatus(status) in TERMINAL_STATUSES


def can_transition(current: ShipmentStatus, target: ShipmentStatus) -> bool:
    current = ShipmentStatus(current)
    target = ShipmentStatus(target)
    if current == target or current in TERMINAL_STATUSES:
        return False
    if target in (ShipmentStatus.CANCELLED, ShipmentStatus.UNDELIVERED):
        return True
    return STATUS_RANK[target] > STATUS_RANK[current]


@dataclass
class Transition:
    previous: ShipmentStatus
    current: ShipmentStatus
    stamped: List[str] = field(default_factory=list)
    recorded: bool = False

    @property
    def changed(self) -> bool:
        return self.previous != self.current


def _stamp(shipment: Any, attr: str, value: Optional[datetime], stamped: List[str]) -> None:
    if getattr(shipment, attr) is None:
        setattr(shipment, attr, value or utcnow())
        stamped.append(attr)


def apply_status(
    shipment: Any,
    observed: Optional[ShipmentStatus],
    carrier_status: Optional[str] = None,
    tracking_code: Optional[str] = None,
    source: str = "sync",
    posted_at: Optional[datetime] = None,
    delivered_at: Optional[datetime] = None,
    cancelled_at: Optional[datetime] = None,
) -> Transition:
    """
    Apply a carrier-observed status to a shipment record in place.

    Args:
        shipment: ShipmentHistory (or anything with the same attributes)
        observed: Mapped status, None when the carrier status has no local meaning
        carrier_status: Raw carrier status, kept in the history
        tracking_code: Carrier tracking code, recorded when new
        source: What produced the observation (sync, webhook, cancel)
        posted_at/delivered_at/cancelled_at: Carrier-reported event times

    Returns:
        Transition describing what changed
    """
    previous = ShipmentStatus(shipment.status or ShipmentStatus.PENDING)
    transition = Transition(previous=previous, current=previous)

    tracking_changed = bool(tracking_code) and tracking_code != shipment.tracking_code
    if tracking_changed:
        shipment.tracking_code = tracking_code

    if observed is not None and observed != previous:
        if can_transition(previous, observed):
            shipment.status = observed
            transition.current = observed
        else:
            logger.warning(
                f"Ignoring {source} status {observed.value} for shipment "
                f"{shipment.melhor_envio_id}: already {previous.value}"
            )

    current = transition.current
    if current in POSTED_OR_LATER:
        _stamp(shipment, "posted_at", posted_at, transition.stamped)
    if current == ShipmentStatus.DELIVERED:
        _stamp(shipment, "delivered_at", delivered_at, transition.stamped)
    if current == ShipmentStatus.CANCELLED:
        _stamp(shipment, "cancelled_at", cancelled_at, transition.stamped)

    history = list(shipment.status_history or [])
    last_carrier_status = history[-1].get("carrier_status") if history else None
    if transition.changed or tracking_changed or (carrier_status and carrier_status != last_carrier_status):
        history.append({
            "status": current.value,
            "carrier_status": carrier_status,
            "tracking_code": shipment.tracking_code,
            "observed_at": utcnow().isoformat(),
            "source": source,
        })
        # reassign so the JSON column is flagged dirty
        shipment.status_history = history
        transition.recorded = True

    if transition.changed:
        logger.info(
            f"Shipment {shipment.melhor_envio_id}: {previous.value} -> {current.value} ({source})"
        )

    return transition
