"""
Tests for the shipment status lifecycle.
"""
import warnings
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import make_shipment

from atelier.models.shipment import ShipmentStatus
from atelier.modules.shipping import lifecycle
from atelier.modules.shipping.lifecycle import apply_status, can_transition, is_terminal

POSTED_AT = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)
DELIVERED_AT = datetime(2024, 5, 5, 15, 30, tzinfo=timezone.utc)


class TestTransitions:

    @pytest.mark.parametrize("current,target", [
        (ShipmentStatus.PENDING, ShipmentStatus.POSTED),
        (ShipmentStatus.PENDING, ShipmentStatus.DELIVERED),
        (ShipmentStatus.POSTED, ShipmentStatus.IN_TRANSIT),
        (ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED),
        (ShipmentStatus.PENDING, ShipmentStatus.CANCELLED),
        (ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED),
        (ShipmentStatus.POSTED, ShipmentStatus.UNDELIVERED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (ShipmentStatus.IN_TRANSIT, ShipmentStatus.POSTED),
        (ShipmentStatus.POSTED, ShipmentStatus.PENDING),
        (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED),
        (ShipmentStatus.CANCELLED, ShipmentStatus.POSTED),
        (ShipmentStatus.UNDELIVERED, ShipmentStatus.DELIVERED),
        (ShipmentStatus.POSTED, ShipmentStatus.POSTED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_statuses(self):
        assert is_terminal(ShipmentStatus.DELIVERED)
        assert is_terminal(ShipmentStatus.CANCELLED)
        assert is_terminal(ShipmentStatus.UNDELIVERED)
        assert not is_terminal(ShipmentStatus.IN_TRANSIT)


class TestApplyStatus:

    def test_posted_stamps_posted_at_and_history(self):
        shipment = make_shipment("me-1")

        transition = apply_status(
            shipment, ShipmentStatus.POSTED, carrier_status="posted",
            tracking_code="AA123BR", posted_at=POSTED_AT,
        )

        assert transition.changed
        assert shipment.status == ShipmentStatus.POSTED
        assert shipment.posted_at == POSTED_AT
        assert shipment.tracking_code == "AA123BR"
        assert shipment.status_history[-1]["status"] == "posted"
        assert shipment.status_history[-1]["carrier_status"] == "posted"

    def test_delivered_at_not_overwritten(self):
        shipment = make_shipment("me-1", ShipmentStatus.IN_TRANSIT, posted_at=POSTED_AT)

        apply_status(shipment, ShipmentStatus.DELIVERED, carrier_status="delivered",
                     delivered_at=DELIVERED_AT)
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        transition = apply_status(shipment, ShipmentStatus.DELIVERED, carrier_status="delivered",
                                  delivered_at=later)

        assert shipment.delivered_at == DELIVERED_AT
        assert not transition.changed
        assert transition.stamped == []

    def test_delivered_without_posted_backfills_posted_at(self):
        shipment = make_shipment("me-1")

        apply_status(shipment, ShipmentStatus.DELIVERED, carrier_status="delivered")

        assert shipment.posted_at is not None
        assert shipment.delivered_at is not None

    def test_backward_status_ignored(self, caplog):
        shipment = make_shipment("me-1", ShipmentStatus.IN_TRANSIT, posted_at=POSTED_AT)

        transition = apply_status(shipment, ShipmentStatus.POSTED, carrier_status="posted")

        assert shipment.status == ShipmentStatus.IN_TRANSIT
        assert not transition.changed
        assert "Ignoring sync status posted" in caplog.text

    @pytest.mark.parametrize("start", [
        ShipmentStatus.PENDING, ShipmentStatus.POSTED, ShipmentStatus.IN_TRANSIT,
    ])
    def test_cancel_from_any_open_status(self, start):
        shipment = make_shipment("me-1", start)

        apply_status(shipment, ShipmentStatus.CANCELLED, carrier_status="canceled", source="cancel")
        first = shipment.cancelled_at
        apply_status(shipment, ShipmentStatus.CANCELLED, carrier_status="canceled", source="webhook")

        assert shipment.status == ShipmentStatus.CANCELLED
        assert first is not None
        assert shipment.cancelled_at == first

    def test_unmapped_status_only_recorded(self):
        shipment = make_shipment("me-1", ShipmentStatus.POSTED, posted_at=POSTED_AT)

        transition = apply_status(shipment, None, carrier_status="waiting_pickup")

        assert shipment.status == ShipmentStatus.POSTED
        assert transition.recorded
        assert shipment.status_history[-1]["carrier_status"] == "waiting_pickup"

    def test_same_carrier_status_not_duplicated(self):
        shipment = make_shipment("me-1", ShipmentStatus.POSTED, posted_at=POSTED_AT)

        apply_status(shipment, ShipmentStatus.POSTED, carrier_status="posted")
        apply_status(shipment, ShipmentStatus.POSTED, carrier_status="posted")

        assert len(shipment.status_history) == 1


class TestModuleSource:

    def test_compiles_without_warnings(self):
        path = Path(lifecycle.__file__)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
