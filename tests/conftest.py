"""Shared fixtures for courierlink tests."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
from litestar import Litestar
from litestar.testing import TestClient

from courierlink.carrier_config import CarrierConfig
from courierlink.config import CourierLinkConfig
from courierlink.enums import ShipmentStatus
from courierlink.exceptions import DuplicateShipmentError
from courierlink.ingestion import TrackingIngestor
from courierlink.ledger import ShipmentLedger
from courierlink.notifier import DeliveryNotifier
from courierlink.plugin import create_shipping_app
from courierlink.registry import CarrierRegistry


def _now() -> datetime:
    return datetime.now(tz=UTC)


CARRIER_NAMES = {
    "tcs": "TCS",
    "leopards": "Leopards Courier",
    "postex": "PostEx",
    "manual": "Manual Shipping",
}


def make_carrier(code: str, **overrides: Any) -> CarrierConfig:
    """Active carrier priced 180/220/350 on Karachi -> Lahore, 5 % fuel."""
    data: dict[str, Any] = {
        "code": code,
        "name": CARRIER_NAMES.get(code, code),
        "is_active": True,
        "credentials": {
            "api_key": f"{code}-key",
            "api_secret": f"{code}-secret",
            "base_url": f"https://{code}.test",
        },
        "rate_card": [
            {
                "from_city": "Karachi",
                "to_city": "Lahore",
                "weight_slabs": [
                    {"max_weight": "0.5", "rate": "180"},
                    {"max_weight": "1", "rate": "220"},
                    {"max_weight": "3", "rate": "350"},
                ],
            }
        ],
        "fuel_surcharge_percent": "5",
    }
    data.update(overrides)
    return CarrierConfig.model_validate(data)


@dataclass
class DemoShipment:
    id: str
    fulfillment_unit_id: str
    carrier_code: str
    tracking_number: str = ""
    order_id: str = ""
    vendor_id: str = ""
    carrier_name: str = ""
    awb_number: str = ""
    booking_id: str = ""
    label_url: str = ""
    status: str = "pending"
    origin: dict = field(default_factory=dict)
    destination: dict = field(default_factory=dict)
    package: dict = field(default_factory=dict)
    estimated_delivery: datetime | None = None
    actual_delivery: datetime | None = None
    picked_up_at: datetime | None = None
    last_tracking_update: datetime | None = None
    is_cod: bool = False
    cod_amount: float = 0
    cod_collected: bool = False
    cod_collected_at: datetime | None = None
    shipping_cost: float = 0.0
    insurance_cost: float = 0.0
    total_cost: float = 0.0
    currency: str = "PKR"
    service_type: str = "standard"
    special_instructions: str = ""
    delivery_attempts: int = 0
    max_delivery_attempts: int = 3
    last_error: dict | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class DemoEvent:
    id: str
    shipment_id: str
    status: str
    timestamp: datetime
    source: str
    description: str = ""
    status_code: str | None = None
    location: dict = field(default_factory=dict)
    raw_data: dict | None = None
    signed_by: str | None = None
    notes: str | None = None


class InMemoryShipmentRepo:
    def __init__(self) -> None:
        self.items: dict[str, DemoShipment] = {}
        self.saves = 0
        self._counter = 0

    async def get_by_id(self, shipment_id: str) -> DemoShipment:
        return self.items[shipment_id]

    async def get_by_tracking_number(
        self, tracking_number: str
    ) -> DemoShipment | None:
        for shipment in self.items.values():
            if shipment.tracking_number == tracking_number:
                return shipment
        return None

    async def get_active_for_unit(
        self, fulfillment_unit_id: str
    ) -> DemoShipment | None:
        for shipment in self.items.values():
            if (
                shipment.fulfillment_unit_id == fulfillment_unit_id
                and shipment.status != ShipmentStatus.CANCELLED
            ):
                return shipment
        return None

    def add(self, **kwargs) -> DemoShipment:
        self._counter += 1
        shipment = DemoShipment(id=f"s-{self._counter}", **kwargs)
        self.items[shipment.id] = shipment
        return shipment

    async def create(self, **kwargs) -> DemoShipment:
        unit_id = kwargs["fulfillment_unit_id"]
        for shipment in self.items.values():
            if (
                shipment.fulfillment_unit_id == unit_id
                and shipment.status != ShipmentStatus.CANCELLED
            ):
                raise DuplicateShipmentError(unit_id, shipment.id)
        return self.add(**kwargs)

    async def save(self, shipment: DemoShipment) -> DemoShipment:
        self.saves += 1
        shipment.updated_at = _now()
        self.items[shipment.id] = shipment
        return shipment

    async def list_due_for_tracking(self, statuses, stale_before, limit):
        due = [
            s
            for s in self.items.values()
            if s.status in statuses
            and (
                s.last_tracking_update is None
                or s.last_tracking_update < stale_before
            )
        ]
        return due[:limit]

    async def list_shipments(
        self, *, vendor_id=None, status=None, offset=0, limit=20
    ):
        matches = [
            s
            for s in self.items.values()
            if (vendor_id is None or s.vendor_id == vendor_id)
            and (status is None or s.status == status)
        ]
        matches.sort(key=lambda s: s.created_at, reverse=True)
        return matches[offset : offset + limit], len(matches)

    async def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for shipment in self.items.values():
            counts[shipment.status] = counts.get(shipment.status, 0) + 1
        return counts


class InMemoryEventStore:
    def __init__(self) -> None:
        self.events: dict[str, list[DemoEvent]] = {}
        self._counter = 0

    async def append(self, shipment_id, events, source) -> list[DemoEvent]:
        stored = self.events.setdefault(shipment_id, [])
        seen = {event.timestamp for event in stored}
        written = []
        for event in events:
            if event.timestamp in seen:
                continue
            seen.add(event.timestamp)
            self._counter += 1
            row = DemoEvent(
                id=f"e-{self._counter}",
                shipment_id=shipment_id,
                status=str(event.status),
                timestamp=event.timestamp,
                source=str(source),
                description=event.description,
                status_code=event.status_code,
                location=dict(event.location or {}),
                raw_data=event.raw_data,
                signed_by=event.signed_by,
                notes=event.notes,
            )
            stored.append(row)
            written.append(row)
        return written

    async def timeline(self, shipment_id: str) -> list[DemoEvent]:
        return sorted(
            self.events.get(shipment_id, []), key=lambda e: e.timestamp
        )

    async def latest(self, shipment_id: str) -> DemoEvent | None:
        timeline = await self.timeline(shipment_id)
        return timeline[-1] if timeline else None


class InMemoryCarrierStore:
    def __init__(self, configs: list[CarrierConfig] | None = None) -> None:
        self.configs = {c.code: c for c in configs or []}

    async def get(self, code: str) -> CarrierConfig | None:
        return self.configs.get(code.lower())

    async def get_active(self, code: str) -> CarrierConfig | None:
        config = self.configs.get(code.lower())
        return config if config is not None and config.is_active else None

    async def list_active(self) -> list[CarrierConfig]:
        active = [c for c in self.configs.values() if c.is_active]
        return sorted(active, key=lambda c: (-c.priority, c.code))

    async def list_all(self) -> list[CarrierConfig]:
        return sorted(self.configs.values(), key=lambda c: c.code)

    async def create(self, config: CarrierConfig) -> CarrierConfig:
        self.configs[config.code] = config
        return config

    async def update(self, code: str, changes: dict) -> CarrierConfig:
        current = self.configs[code]
        updated = CarrierConfig.model_validate(
            {**current.model_dump(), **changes}
        )
        self.configs[code] = updated
        return updated

    async def delete(self, code: str) -> None:
        del self.configs[code]


@dataclass
class DemoUnit:
    id: str
    order_id: str = "order-1"
    vendor_id: str = "vendor-1"
    reference_number: str = "SO-1"
    origin: dict = field(
        default_factory=lambda: {"name": "Vendor", "city": "Karachi"}
    )
    destination: dict = field(
        default_factory=lambda: {
            "name": "Ayesha Khan",
            "address": "House 12, Street 4",
            "city": "Lahore",
            "phone": "03001234567",
            "email": "ayesha@example.com",
        }
    )
    package: dict = field(default_factory=lambda: {"weight": 0.4})
    shipping_cost: float = 189.0
    customer_name: str = "Ayesha"
    customer_email: str | None = "ayesha@example.com"
    customer_phone: str | None = "03001234567"


class UnitResolver:
    def __init__(self) -> None:
        self.units: dict[str, DemoUnit] = {
            "fu-1": DemoUnit(id="fu-1"),
            "fu-2": DemoUnit(id="fu-2", reference_number="SO-2"),
        }
        self.attached: dict[str, str] = {}
        self.status_updates: list[tuple[str, str, str]] = []

    async def resolve(self, fulfillment_unit_id: str) -> DemoUnit:
        return self.units[fulfillment_unit_id]

    async def attach_shipment(
        self, fulfillment_unit_id, shipment_id, estimated_delivery
    ) -> None:
        self.attached[fulfillment_unit_id] = shipment_id

    async def update_status(self, fulfillment_unit_id, status, note) -> None:
        self.status_updates.append((fulfillment_unit_id, status, note))


class RecordingSender:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def send(
        self, *, kind, recipient_email, recipient_phone, message
    ) -> None:
        self.messages.append(
            {
                "kind": kind,
                "recipient_email": recipient_email,
                "recipient_phone": recipient_phone,
                "message": message,
            }
        )


class RetryStore:
    def __init__(self) -> None:
        self.events: list[dict] = []
        self._counter = 0

    async def store_failed_webhook(
        self,
        carrier_code: str,
        payload: dict,
        headers: dict,
    ) -> str:
        self._counter += 1
        retry_id = f"retry-{self._counter}"
        self.events.append(
            {
                "id": retry_id,
                "carrier_code": carrier_code,
                "payload": payload,
                "headers": headers,
                "attempts": 0,
            }
        )
        return retry_id

    async def get_due_retries(self, limit: int = 10) -> list[dict]:
        return list(self.events[:limit])

    async def mark_succeeded(self, retry_id: str) -> None:
        pass

    async def mark_failed(self, retry_id: str, error: str) -> None:
        pass

    async def mark_exhausted(self, retry_id: str) -> None:
        pass


class CarrierAPI:
    """Answers carrier HTTP calls with canned JSON, keyed by method and URL.

    Unregistered URLs answer 404, which adapters treat as a failed call.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self, method: str, url: str, body: Any = None, status_code: int = 200
    ) -> None:
        self.routes[(method.upper(), url)] = (status_code, body)

    def calls(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).startswith(url)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not found"})
        status_code, body = self.routes[key]
        return httpx.Response(status_code, json=body)

    def body(self, request: httpx.Request) -> dict:
        return json.loads(request.content)


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture()
def carrier_api() -> CarrierAPI:
    return CarrierAPI()


@pytest.fixture()
def http_client(carrier_api: CarrierAPI) -> httpx.AsyncClient:
    transport = httpx.MockTransport(carrier_api.handler)
    return httpx.AsyncClient(transport=transport)


@pytest.fixture()
def config() -> CourierLinkConfig:
    return CourierLinkConfig(
        default_carrier="tcs",
        poll_enabled=False,
        poll_item_delay_seconds=0,
    )


@pytest.fixture()
def carrier_store() -> InMemoryCarrierStore:
    return InMemoryCarrierStore(
        [
            make_carrier("tcs", priority=3),
            make_carrier("leopards", priority=2),
            make_carrier("postex", priority=1),
        ]
    )


@pytest.fixture()
def registry(
    carrier_store: InMemoryCarrierStore, http_client: httpx.AsyncClient
) -> CarrierRegistry:
    return CarrierRegistry(carrier_store, http_client=http_client)


@pytest.fixture()
def repository() -> InMemoryShipmentRepo:
    return InMemoryShipmentRepo()


@pytest.fixture()
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture()
def resolver() -> UnitResolver:
    return UnitResolver()


@pytest.fixture()
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture()
def retry_store() -> RetryStore:
    return RetryStore()


@pytest.fixture()
def ledger(
    repository, event_store, registry, config, resolver, sender
) -> ShipmentLedger:
    return ShipmentLedger(
        repository=repository,
        event_store=event_store,
        registry=registry,
        config=config,
        resolver=resolver,
        notifier=DeliveryNotifier(sender=sender, resolver=resolver),
    )


@pytest.fixture()
def ingestor(ledger, config, retry_store) -> TrackingIngestor:
    return TrackingIngestor(
        ledger=ledger, config=config, retry_store=retry_store, sleep=no_sleep
    )


@pytest.fixture()
def test_app(
    config,
    repository,
    event_store,
    carrier_store,
    resolver,
    retry_store,
    sender,
    http_client,
) -> Litestar:
    return create_shipping_app(
        config=config,
        repository=repository,
        event_store=event_store,
        carrier_store=carrier_store,
        resolver=resolver,
        retry_store=retry_store,
        notification_sender=sender,
        http_client=http_client,
    )


@pytest.fixture()
def client(test_app: Litestar) -> Iterator[TestClient]:
    with TestClient(app=test_app) as tc:
        yield tc


def tcs_tracking(events: list[dict], current: str | None = None) -> dict:
    """TCS track-consignment reply."""
    return {
        "returnStatus": {"status": "SUCCESS"},
        "trackingDetail": {
            "currentStatus": current,
            "trackingEvents": events,
        },
    }


def tcs_event(status: str, date: str, time: str, city: str = "Lahore"):
    return {
        "activityStatus": status,
        "activityDate": date,
        "activityTime": time,
        "location": city,
    }


def shipment_fields(**fields) -> dict[str, Any]:
    """An in-transit TCS shipment, Karachi to Lahore."""
    defaults = {
        "fulfillment_unit_id": "fu-1",
        "carrier_code": "tcs",
        "carrier_name": "TCS",
        "tracking_number": "TCS123",
        "status": "in_transit",
        "origin": {"city": "Karachi", "address": "Shop 1"},
        "destination": {"city": "Lahore", "address": "House 12"},
    }
    defaults.update(fields)
    return defaults


async def add_shipment(repository, **fields):
    """Store a shipment directly, bypassing booking."""
    return await repository.create(**shipment_fields(**fields))

