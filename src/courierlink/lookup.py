"""Public tracking lookup by tracking number."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from courierlink.ingestion import TrackingIngestor
from courierlink.registry import tracking_url
from courierlink.state import is_terminal

logger = logging.getLogger(__name__)


def city_only(address: dict[str, Any] | None) -> dict[str, Any]:
    """Strip an address down to what a public page may show."""
    city = (address or {}).get("city")
    return {"city": city} if city else {}


@dataclass
class LookupResult:
    found: bool
    tracking_number: str
    carrier_code: str | None = None
    carrier_name: str | None = None
    status: str | None = None
    origin: dict[str, Any] = field(default_factory=dict)
    destination: dict[str, Any] = field(default_factory=dict)
    estimated_delivery: datetime | None = None
    actual_delivery: datetime | None = None
    tracking_url: str | None = None
    # Stored TrackingEvent rows or unsaved TrackingEventData.
    events: list[Any] = field(default_factory=list)


class TrackingLookup:
    """Answers "where is my parcel" for anyone holding a tracking number.

    Known shipments are served from the ledger after a best-effort live
    refresh. Unknown numbers are tried against each active carrier in
    priority order and nothing found there is persisted.
    """

    def __init__(self, ingestor: TrackingIngestor) -> None:
        self.ingestor = ingestor

    @property
    def ledger(self):
        return self.ingestor.ledger

    async def track(self, tracking_number: str) -> LookupResult:
        tracking_number = tracking_number.strip()
        shipment = await self.ledger.repository.get_by_tracking_number(
            tracking_number
        )
        if shipment is not None:
            return await self._from_ledger(shipment)
        return await self._across_carriers(tracking_number)

    async def _from_ledger(self, shipment) -> LookupResult:
        if not is_terminal(shipment.status):
            try:
                await self.ingestor.refresh(shipment)
            except Exception as exc:
                logger.info(
                    "Live refresh failed for %s, serving cached data: %s",
                    shipment.tracking_number,
                    exc,
                )
            else:
                shipment = await self.ledger.repository.get_by_id(shipment.id)

        events = await self.ledger.event_store.timeline(shipment.id)
        return LookupResult(
            found=True,
            tracking_number=shipment.tracking_number,
            carrier_code=shipment.carrier_code,
            carrier_name=shipment.carrier_name,
            status=str(shipment.status),
            origin=city_only(shipment.origin),
            destination=city_only(shipment.destination),
            estimated_delivery=shipment.estimated_delivery,
            actual_delivery=shipment.actual_delivery,
            tracking_url=tracking_url(
                shipment.carrier_code, shipment.tracking_number
            ),
            events=list(events),
        )

    async def _across_carriers(self, tracking_number: str) -> LookupResult:
        for config, adapter in await self.ingestor.registry.all_active():
            if not adapter.supports_tracking:
                continue
            try:
                result = await adapter.get_tracking(tracking_number)
            except Exception as exc:
                logger.warning(
                    "Tracking lookup on %s failed for %s: %s",
                    config.code,
                    tracking_number,
                    exc,
                )
                continue
            if not (result.success and result.events):
                continue

            events = sorted(result.events, key=lambda event: event.timestamp)
            status = result.current_status or events[-1].status
            return LookupResult(
                found=True,
                tracking_number=tracking_number,
                carrier_code=config.code,
                carrier_name=config.display_name or adapter.name,
                status=str(status),
                actual_delivery=result.delivered_at,
                tracking_url=adapter.tracking_url(tracking_number),
                events=events,
            )

        logger.info("Tracking number %s not found", tracking_number)
        return LookupResult(found=False, tracking_number=tracking_number)
