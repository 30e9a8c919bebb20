"""Router and application factories for courierlink."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager

import httpx
from litestar import Litestar, Router
from litestar.datastructures import State

from courierlink.config import CourierLinkConfig
from courierlink.dependencies import ShippingServices, route_dependencies
from courierlink.exceptions import EXCEPTION_HANDLERS
from courierlink.ingestion import TrackingIngestor
from courierlink.ledger import ShipmentLedger
from courierlink.lookup import TrackingLookup
from courierlink.notifier import DeliveryNotifier
from courierlink.protocols import (
    CarrierConfigStore,
    FulfillmentUnitResolver,
    NotificationSender,
    ShipmentRepository,
    TrackingEventStore,
    WebhookRetryStore,
)
from courierlink.registry import CarrierRegistry
from courierlink.routes.carriers import (
    CarrierAdminController,
    PickupController,
)
from courierlink.routes.shipments import ShipmentController
from courierlink.routes.tracking import TrackingController
from courierlink.routes.webhooks import WebhookController
from courierlink.scheduler import TrackingPollScheduler

STATE_KEY = "courierlink"


def build_services(
    *,
    config: CourierLinkConfig,
    repository: ShipmentRepository,
    event_store: TrackingEventStore,
    carrier_store: CarrierConfigStore,
    resolver: FulfillmentUnitResolver | None = None,
    retry_store: WebhookRetryStore | None = None,
    notification_sender: NotificationSender | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ShippingServices:
    """Wire the registry, ledger, ingestion and lookup together."""
    registry = CarrierRegistry(
        carrier_store,
        http_client=http_client,
        timeout=config.http_timeout_seconds,
    )
    ledger = ShipmentLedger(
        repository=repository,
        event_store=event_store,
        registry=registry,
        config=config,
        resolver=resolver,
        notifier=DeliveryNotifier(
            sender=notification_sender, resolver=resolver
        ),
    )
    ingestor = TrackingIngestor(
        ledger=ledger, config=config, retry_store=retry_store
    )
    return ShippingServices(
        config=config,
        carrier_store=carrier_store,
        registry=registry,
        ledger=ledger,
        ingestor=ingestor,
        lookup=TrackingLookup(ingestor),
        retry_store=retry_store,
    )


def services_router(services: ShippingServices, path: str = "/") -> Router:
    """Router with every shipping endpoint bound to ``services``."""
    return Router(
        path=path,
        route_handlers=[
            ShipmentController,
            TrackingController,
            WebhookController,
            PickupController,
            CarrierAdminController,
        ],
        dependencies=route_dependencies(services),
        exception_handlers=EXCEPTION_HANDLERS,
    )


def create_shipping_router(
    *,
    config: CourierLinkConfig,
    repository: ShipmentRepository,
    event_store: TrackingEventStore,
    carrier_store: CarrierConfigStore,
    resolver: FulfillmentUnitResolver | None = None,
    retry_store: WebhookRetryStore | None = None,
    notification_sender: NotificationSender | None = None,
    http_client: httpx.AsyncClient | None = None,
    path: str = "/",
) -> Router:
    """Create a configured Litestar router.

    The host application owns the lifecycle: pass ``http_client`` to
    control when carrier connections are closed, and run a
    ``TrackingPollScheduler`` if background polling is wanted.

    Returns:
        A Litestar Router with all shipping endpoints.
    """
    services = build_services(
        config=config,
        repository=repository,
        event_store=event_store,
        carrier_store=carrier_store,
        resolver=resolver,
        retry_store=retry_store,
        notification_sender=notification_sender,
        http_client=http_client,
    )
    return services_router(services, path=path)


def create_shipping_app(
    *,
    config: CourierLinkConfig,
    repository: ShipmentRepository,
    event_store: TrackingEventStore,
    carrier_store: CarrierConfigStore,
    resolver: FulfillmentUnitResolver | None = None,
    retry_store: WebhookRetryStore | None = None,
    notification_sender: NotificationSender | None = None,
    http_client: httpx.AsyncClient | None = None,
    on_startup: Sequence[Callable[[], Awaitable[object]]] = (),
) -> Litestar:
    """Create a Litestar application serving the shipping endpoints.

    Args:
        config: Runtime configuration.
        repository: Shipment persistence backend.
        event_store: Tracking event persistence backend.
        carrier_store: Carrier configuration persistence backend.
        resolver: Bridge to the order subsystem. Booking needs it.
        retry_store: Storage for the webhook retry queue.
        notification_sender: Customer notification channel.
        http_client: Shared client for carrier calls. One is created and
            closed with the application when omitted.
        on_startup: Coroutine functions awaited before the scheduler
            starts, e.g. creating tables.

    Returns:
        A Litestar app whose lifespan runs the tracking poll scheduler.
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(
        timeout=config.http_timeout_seconds
    )
    services = build_services(
        config=config,
        repository=repository,
        event_store=event_store,
        carrier_store=carrier_store,
        resolver=resolver,
        retry_store=retry_store,
        notification_sender=notification_sender,
        http_client=client,
    )
    scheduler = TrackingPollScheduler(
        ingestor=services.ingestor,
        config=config,
        retry_store=retry_store,
    )

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        for hook in on_startup:
            await hook()
        await scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            if owns_client:
                await client.aclose()

    return Litestar(
        route_handlers=[services_router(services)],
        lifespan=[lifespan],
        state=State({STATE_KEY: services, "scheduler": scheduler}),
    )
