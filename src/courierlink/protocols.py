"""Storage and collaborator protocols."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from courierlink.carrier_config import CarrierConfig
from courierlink.enums import EventSource
from courierlink.types import AddressInfo, PackageInfo, TrackingEventData

__all__ = [
    "CarrierConfigStore",
    "FulfillmentUnit",
    "FulfillmentUnitResolver",
    "NotificationSender",
    "Shipment",
    "ShipmentRepository",
    "TrackingEvent",
    "TrackingEventStore",
    "WebhookRetryStore",
]


class Shipment(Protocol):
    """Persisted shipment record for one fulfillment unit."""

    id: str
    fulfillment_unit_id: str
    order_id: str
    vendor_id: str
    carrier_name: str
    carrier_code: str
    tracking_number: str
    awb_number: str
    booking_id: str
    label_url: str
    status: str
    origin: dict[str, Any]
    destination: dict[str, Any]
    package: dict[str, Any]
    estimated_delivery: datetime | None
    actual_delivery: datetime | None
    picked_up_at: datetime | None
    last_tracking_update: datetime | None
    is_cod: bool
    cod_amount: float
    cod_collected: bool
    cod_collected_at: datetime | None
    shipping_cost: float
    insurance_cost: float
    total_cost: float
    currency: str
    service_type: str
    special_instructions: str
    delivery_attempts: int
    max_delivery_attempts: int
    last_error: dict[str, Any] | None


class TrackingEvent(Protocol):
    """Immutable, persisted tracking fact."""

    id: str
    shipment_id: str
    status: str
    status_code: str | None
    description: str
    location: dict[str, Any]
    timestamp: datetime
    source: str
    raw_data: dict[str, Any] | None
    signed_by: str | None
    notes: str | None


class FulfillmentUnit(Protocol):
    """A vendor's portion of an order, owned by the order subsystem."""

    id: str
    order_id: str
    vendor_id: str
    reference_number: str
    origin: AddressInfo
    destination: AddressInfo
    package: PackageInfo
    shipping_cost: float
    customer_name: str
    customer_email: str | None
    customer_phone: str | None


@runtime_checkable
class ShipmentRepository(Protocol):
    """Persistence for shipment records. Shipments are never deleted."""

    async def get_by_id(self, shipment_id: str) -> Shipment:
        """Get a shipment by ID. Raises KeyError if not found."""
        ...

    async def get_by_tracking_number(
        self, tracking_number: str
    ) -> Shipment | None: ...

    async def get_active_for_unit(
        self, fulfillment_unit_id: str
    ) -> Shipment | None:
        """Return the non-cancelled shipment of a fulfillment unit."""
        ...

    async def create(self, **fields: Any) -> Shipment:
        """Persist a new shipment.

        Raises DuplicateShipmentError when the fulfillment unit already has
        a non-cancelled shipment, even one written concurrently.
        """
        ...

    async def save(self, shipment: Shipment) -> Shipment: ...

    async def list_due_for_tracking(
        self,
        statuses: Sequence[str],
        stale_before: datetime,
        limit: int,
    ) -> list[Shipment]:
        """Shipments in ``statuses`` not refreshed since ``stale_before``.

        A missing ``last_tracking_update`` counts as stale.
        """
        ...

    async def list_shipments(
        self,
        *,
        vendor_id: str | None = None,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Shipment], int]:
        """Newest first page of shipments plus the total match count."""
        ...

    async def count_by_status(self) -> dict[str, int]: ...


@runtime_checkable
class TrackingEventStore(Protocol):
    """Append-only, per-shipment tracking timeline.

    Appending is idempotent on the event timestamp: an event whose
    timestamp is already stored for the shipment is dropped.
    """

    async def append(
        self,
        shipment_id: str,
        events: Sequence[TrackingEventData],
        source: EventSource,
    ) -> list[TrackingEvent]:
        """Store new events; returns only those actually written."""
        ...

    async def timeline(self, shipment_id: str) -> list[TrackingEvent]:
        """All events of a shipment, oldest first."""
        ...

    async def latest(self, shipment_id: str) -> TrackingEvent | None: ...


@runtime_checkable
class CarrierConfigStore(Protocol):
    async def get(self, code: str) -> CarrierConfig | None: ...

    async def get_active(self, code: str) -> CarrierConfig | None: ...

    async def list_active(self) -> list[CarrierConfig]:
        """Active configurations, highest priority first."""
        ...

    async def list_all(self) -> list[CarrierConfig]: ...

    async def create(self, config: CarrierConfig) -> CarrierConfig: ...

    async def update(
        self, code: str, changes: dict[str, Any]
    ) -> CarrierConfig:
        """Apply changes. Raises KeyError if not found."""
        ...

    async def delete(self, code: str) -> None:
        """Remove a configuration. Raises KeyError if not found."""
        ...


@runtime_checkable
class FulfillmentUnitResolver(Protocol):
    """Bridge to the order subsystem that owns fulfillment units."""

    async def resolve(self, fulfillment_unit_id: str) -> FulfillmentUnit:
        """Raises KeyError if the unit does not exist."""
        ...

    async def attach_shipment(
        self,
        fulfillment_unit_id: str,
        shipment_id: str,
        estimated_delivery: datetime | None,
    ) -> None: ...

    async def update_status(
        self, fulfillment_unit_id: str, status: str, note: str
    ) -> None: ...


@runtime_checkable
class NotificationSender(Protocol):
    async def send(
        self,
        *,
        kind: str,
        recipient_email: str | None,
        recipient_phone: str | None,
        message: str,
    ) -> None: ...


@runtime_checkable
class WebhookRetryStore(Protocol):
    """Storage abstraction for the webhook retry queue.

    Full lifecycle: store -> get_due ->
    mark_succeeded / mark_failed / mark_exhausted.
    """

    async def store_failed_webhook(
        self,
        carrier_code: str,
        payload: dict,
        headers: dict,
    ) -> str:
        """Store a failed webhook for later retry. Returns retry ID."""
        ...

    async def get_due_retries(self, limit: int = 10) -> list[dict]:
        """Get retries that are due for processing."""
        ...

    async def mark_succeeded(self, retry_id: str) -> None:
        """Mark a retry as successfully processed."""
        ...

    async def mark_failed(self, retry_id: str, error: str) -> None:
        """Mark a retry as failed and schedule next attempt."""
        ...

    async def mark_exhausted(self, retry_id: str) -> None:
        """Mark a retry as exhausted (dead letter)."""
        ...
