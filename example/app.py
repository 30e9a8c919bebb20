"""Litestar example app running courierlink on SQLite with the manual carrier.

Run with ``litestar --app example.app:app run`` after installing the
``sqlite`` extra.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from courierlink.config import CourierLinkConfig
from courierlink.contrib.sqlalchemy.models import Base
from courierlink.contrib.sqlalchemy.repository import (
    SQLAlchemyCarrierConfigStore,
    SQLAlchemyShipmentRepository,
    SQLAlchemyTrackingEventStore,
)
from courierlink.contrib.sqlalchemy.retry_store import SQLAlchemyRetryStore
from courierlink.plugin import create_shipping_app

DEFAULT_CARRIER = "manual"


@dataclass
class DemoUnit:
    id: str
    order_id: str = "order-1"
    vendor_id: str = "vendor-1"
    reference_number: str = ""
    origin: dict = field(
        default_factory=lambda: {"name": "Demo Store", "city": "Karachi"}
    )
    destination: dict = field(
        default_factory=lambda: {
            "name": "Ayesha Khan",
            "address": "House 12, Street 4, Gulberg",
            "city": "Lahore",
            "phone": "03001234567",
        }
    )
    package: dict = field(default_factory=lambda: {"weight": 1.0})
    shipping_cost: float = 200.0
    customer_name: str = "Ayesha"
    customer_email: str | None = "ayesha@example.com"
    customer_phone: str | None = "03001234567"


class DemoUnitResolver:
    """Every unit id resolves; statuses are kept in memory."""

    def __init__(self) -> None:
        self.statuses: dict[str, str] = {}
        self.attached: dict[str, str] = {}

    async def resolve(self, fulfillment_unit_id: str) -> DemoUnit:
        return DemoUnit(
            id=fulfillment_unit_id,
            reference_number=f"SO-{fulfillment_unit_id}",
        )

    async def attach_shipment(
        self,
        fulfillment_unit_id: str,
        shipment_id: str,
        estimated_delivery: datetime | None,
    ) -> None:
        self.attached[fulfillment_unit_id] = shipment_id

    async def update_status(
        self, fulfillment_unit_id: str, status: str, note: str
    ) -> None:
        self.statuses[fulfillment_unit_id] = status


# COURIERLINK_DATABASE_URL selects the database.
config = CourierLinkConfig(
    default_carrier=DEFAULT_CARRIER,
    poll_enabled=False,
)
engine = create_async_engine(config.database_url)
session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


app = create_shipping_app(
    config=config,
    repository=SQLAlchemyShipmentRepository(session_factory),
    event_store=SQLAlchemyTrackingEventStore(session_factory),
    carrier_store=SQLAlchemyCarrierConfigStore(session_factory),
    resolver=DemoUnitResolver(),
    retry_store=SQLAlchemyRetryStore(
        session_factory, backoff_seconds=config.retry_backoff_seconds
    ),
    on_startup=[init_db],
)
