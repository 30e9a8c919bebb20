"""Litestar dependency providers.

Route handlers never build services themselves; the shipping router hands
them the collaborators wired once in a ``ShippingServices`` container.
"""

from __future__ import annotations

from dataclasses import dataclass

from litestar.di import Provide

from courierlink.config import CourierLinkConfig
from courierlink.ingestion import TrackingIngestor
from courierlink.ledger import ShipmentLedger
from courierlink.lookup import TrackingLookup
from courierlink.protocols import CarrierConfigStore, WebhookRetryStore
from courierlink.registry import CarrierRegistry


@dataclass
class ShippingServices:
    """Everything the HTTP layer needs, wired once per application."""

    config: CourierLinkConfig
    carrier_store: CarrierConfigStore
    registry: CarrierRegistry
    ledger: ShipmentLedger
    ingestor: TrackingIngestor
    lookup: TrackingLookup
    retry_store: WebhookRetryStore | None = None


def route_dependencies(services: ShippingServices) -> dict[str, Provide]:
    """Router ``dependencies`` mapping, keyed by handler argument name."""
    return {
        "config": Provide(lambda: services.config, sync_to_thread=False),
        "carrier_store": Provide(
            lambda: services.carrier_store, sync_to_thread=False
        ),
        "registry": Provide(lambda: services.registry, sync_to_thread=False),
        "ledger": Provide(lambda: services.ledger, sync_to_thread=False),
        "ingestor": Provide(lambda: services.ingestor, sync_to_thread=False),
        "lookup": Provide(lambda: services.lookup, sync_to_thread=False),
        "retry_store": Provide(
            lambda: services.retry_store, sync_to_thread=False
        ),
    }
