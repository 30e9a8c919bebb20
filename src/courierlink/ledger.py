"""Shipment ledger: booking, status transitions and their side effects."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from courierlink.carriers.base import BaseCarrierAdapter
from courierlink.config import CourierLinkConfig
from courierlink.enums import EventSource, ServiceType, ShipmentStatus
from courierlink.exceptions import (
    BookingFailedError,
    CarrierRejectedError,
    ConfigurationError,
    DuplicateShipmentError,
    FulfillmentUnitNotFoundError,
    ShipmentNotFoundError,
    UnsupportedCarrierError,
)
from courierlink.notifier import DeliveryNotifier
from courierlink.protocols import (
    FulfillmentUnitResolver,
    Shipment,
    ShipmentRepository,
    TrackingEvent,
    TrackingEventStore,
)
from courierlink.registry import CarrierRegistry
from courierlink.state import can_transition, ensure_transition
from courierlink.types import (
    LabelResult,
    LocationInfo,
    PackageInfo,
    ShipmentDetails,
    TrackingEventData,
)

logger = logging.getLogger(__name__)

# Fulfillment unit statuses mirrored back to the order subsystem.
UNIT_CALLBACK_STATUSES = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED}
)


def attempts_exhausted(shipment: Shipment) -> bool:
    """True once the carrier has used up its delivery attempts."""
    return shipment.delivery_attempts >= shipment.max_delivery_attempts


@dataclass
class UpdateOutcome:
    """What applying a carrier update actually changed."""

    previous_status: str
    status: str
    new_events: list[TrackingEvent] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


class ShipmentLedger:
    """Owns shipment records and the status state machine.

    Carrier-sourced updates that would move a shipment backwards are
    skipped (their events are still recorded); manual overrides that
    break the state machine raise ``InvalidTransitionError``.
    """

    def __init__(
        self,
        *,
        repository: ShipmentRepository,
        event_store: TrackingEventStore,
        registry: CarrierRegistry,
        config: CourierLinkConfig,
        resolver: FulfillmentUnitResolver | None = None,
        notifier: DeliveryNotifier | None = None,
    ) -> None:
        self.repository = repository
        self.event_store = event_store
        self.registry = registry
        self.config = config
        self.resolver = resolver
        self.notifier = notifier or DeliveryNotifier(resolver=resolver)

    async def get(self, shipment_id: str) -> Shipment:
        try:
            return await self.repository.get_by_id(shipment_id)
        except KeyError as exc:
            raise ShipmentNotFoundError(shipment_id) from exc

    async def timeline(self, shipment_id: str) -> list[TrackingEvent]:
        await self.get(shipment_id)
        return await self.event_store.timeline(shipment_id)

    async def book(
        self,
        *,
        fulfillment_unit_id: str,
        carrier_code: str | None = None,
        package: PackageInfo | None = None,
        service_type: ServiceType = ServiceType.STANDARD,
        special_instructions: str = "",
        is_cod: bool = False,
        cod_amount: float = 0,
        tracking_number: str | None = None,
    ) -> Shipment:
        """Book a fulfillment unit with a carrier and record the shipment."""
        code = carrier_code or self.config.default_carrier
        if not code:
            raise UnsupportedCarrierError(code)
        if self.resolver is None:
            raise ConfigurationError(
                "Fulfillment unit resolver not configured"
            )

        try:
            unit = await self.resolver.resolve(fulfillment_unit_id)
        except KeyError as exc:
            raise FulfillmentUnitNotFoundError(fulfillment_unit_id) from exc

        existing = await self.repository.get_active_for_unit(unit.id)
        if existing is not None:
            raise DuplicateShipmentError(unit.id, existing.id)

        adapter = await self.registry.get_adapter(code)
        carrier = adapter.config
        details = ShipmentDetails(
            reference_number=unit.reference_number,
            origin=unit.origin,
            destination=unit.destination,
            package=package or unit.package,
            is_cod=is_cod,
            cod_amount=cod_amount,
            service_type=service_type,
            special_instructions=special_instructions or "",
            tracking_number=tracking_number,
        )

        if not carrier.accepts(details.weight, is_cod):
            reason = (
                f"{adapter.name} does not accept COD shipments"
                if details.weight <= carrier.settings.max_weight
                else f"Package exceeds {adapter.name} weight limit of "
                f"{carrier.settings.max_weight} kg"
            )
            raise BookingFailedError(carrier.code, reason)
        if details.declared_value > carrier.settings.max_declared_value:
            raise BookingFailedError(
                carrier.code,
                f"Declared value exceeds {adapter.name} limit of "
                f"{carrier.settings.max_declared_value}",
            )
        if not await adapter.validate_address(details.destination):
            raise BookingFailedError(
                carrier.code,
                f"{adapter.name} does not deliver to "
                f"{details.destination.get('city')!r}",
            )

        result = await adapter.create_shipment(details)
        if not result.success:
            logger.warning(
                "Booking with %s failed for unit %s: %s",
                carrier.code,
                unit.id,
                result.error,
            )
            raise BookingFailedError(
                carrier.code, result.error or "Booking failed"
            )

        status = (
            ShipmentStatus.LABEL_CREATED
            if result.label_url
            else ShipmentStatus.PENDING
        )
        shipping_cost = float(unit.shipping_cost or 0)
        try:
            shipment = await self.repository.create(
                fulfillment_unit_id=unit.id,
                order_id=unit.order_id,
                vendor_id=unit.vendor_id,
                carrier_name=carrier.name,
                carrier_code=carrier.code,
                tracking_number=result.tracking_number,
                awb_number=result.awb_number or result.tracking_number,
                booking_id=result.booking_id,
                label_url=result.label_url or "",
                status=str(status),
                origin=dict(details.origin),
                destination=dict(details.destination),
                package=dict(details.package),
                estimated_delivery=result.estimated_delivery,
                is_cod=is_cod,
                cod_amount=cod_amount if is_cod else 0,
                shipping_cost=shipping_cost,
                insurance_cost=0.0,
                total_cost=shipping_cost,
                service_type=str(service_type),
                special_instructions=details.special_instructions,
            )
        except DuplicateShipmentError:
            # Lost a concurrent booking for the same unit.
            await self._void_booking(adapter, result.tracking_number)
            raise

        await self.event_store.append(
            shipment.id,
            [
                TrackingEventData(
                    status=status,
                    timestamp=datetime.now(tz=UTC),
                    description="Shipment created",
                )
            ],
            EventSource.SYSTEM,
        )
        await self.resolver.attach_shipment(
            unit.id, shipment.id, result.estimated_delivery
        )
        logger.info(
            "Booked shipment %s with %s (tracking %s)",
            shipment.id,
            carrier.code,
            shipment.tracking_number,
        )
        return shipment

    async def get_label(self, shipment_id: str) -> LabelResult:
        """Cached label URL, else fetched from the carrier and stored."""
        shipment = await self.get(shipment_id)
        if shipment.label_url:
            return LabelResult(label_url=shipment.label_url)

        adapter = await self.registry.get_adapter(shipment.carrier_code)
        result = await adapter.get_label(shipment.tracking_number)
        if not result.success:
            raise CarrierRejectedError(
                shipment.carrier_code, result.error or "Label unavailable"
            )
        if result.label_url:
            shipment.label_url = result.label_url
            await self._save(shipment)
        return result

    async def cancel(
        self, shipment_id: str, reason: str | None = None
    ) -> Shipment:
        """Cancel with the carrier, then mark the shipment cancelled."""
        shipment = await self.get(shipment_id)
        ensure_transition(shipment.status, ShipmentStatus.CANCELLED)
        if shipment.status == ShipmentStatus.CANCELLED:
            return shipment

        adapter = await self.registry.get_adapter(shipment.carrier_code)
        result = await adapter.cancel_shipment(shipment.tracking_number)
        if not result.success:
            raise CarrierRejectedError(
                shipment.carrier_code,
                result.error or result.message or "Cancellation failed",
            )

        now = datetime.now(tz=UTC)
        event = TrackingEventData(
            status=ShipmentStatus.CANCELLED,
            timestamp=now,
            description=reason or result.message or "Shipment cancelled",
        )
        await self._transition(shipment, ShipmentStatus.CANCELLED, now)
        await self.event_store.append(shipment.id, [event], EventSource.SYSTEM)
        shipment = await self._save(shipment)
        await self._after_transition(shipment, ShipmentStatus.CANCELLED)
        return shipment

    async def update_status(
        self,
        shipment_id: str,
        status: ShipmentStatus,
        *,
        note: str | None = None,
        location: LocationInfo | None = None,
    ) -> Shipment:
        """Manual status override, validated against the state machine."""
        shipment = await self.get(shipment_id)
        ensure_transition(shipment.status, status)
        if shipment.status == status:
            return shipment

        now = datetime.now(tz=UTC)
        await self._transition(shipment, status, now)
        await self.event_store.append(
            shipment.id,
            [
                TrackingEventData(
                    status=status,
                    timestamp=now,
                    description=note or f"Status updated to {status}",
                    location=location or {},
                    notes=note,
                )
            ],
            EventSource.MANUAL,
        )
        shipment = await self._save(shipment)
        await self._after_transition(shipment, status, note)
        return shipment

    async def apply_carrier_update(
        self,
        shipment: Shipment,
        *,
        status: ShipmentStatus | None,
        events: Sequence[TrackingEventData],
        source: EventSource,
        delivered_at: datetime | None = None,
        signed_by: str | None = None,
    ) -> UpdateOutcome:
        """Record carrier events and move the shipment to ``status``.

        Events already stored (same timestamp) are not written again and
        ``pending`` events are dropped once delivery is on record. A status
        the state machine does not allow from the current one is logged
        and skipped.
        """
        previous = str(shipment.status)
        now = datetime.now(tz=UTC)

        incoming = await self._filter_events(shipment, events, signed_by)
        new_events = await self.event_store.append(
            shipment.id, incoming, source
        )

        target = ShipmentStatus(status) if status else None
        transitioned = False
        if target is not None and target != previous:
            if can_transition(previous, target):
                await self._transition(
                    shipment, target, now, delivered_at=delivered_at
                )
                transitioned = True
                if not any(event.status == target for event in events):
                    new_events += await self.event_store.append(
                        shipment.id,
                        [
                            TrackingEventData(
                                status=target,
                                timestamp=now,
                                description=f"Status updated to {target}",
                                signed_by=signed_by,
                            )
                        ],
                        source,
                    )
            else:
                logger.info(
                    "Ignoring %s update %s -> %s for shipment %s",
                    source,
                    previous,
                    target,
                    shipment.id,
                )

        shipment.last_tracking_update = now
        shipment.last_error = None
        shipment = await self._save(shipment)
        if transitioned:
            await self._after_transition(
                shipment, target, f"Shipment {target} ({source})"
            )
        return UpdateOutcome(
            previous_status=previous,
            status=str(shipment.status),
            new_events=list(new_events),
        )

    async def record_error(
        self, shipment: Shipment, code: str, message: str
    ) -> Shipment:
        shipment.last_error = {
            "code": code,
            "message": message,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
        return await self._save(shipment)

    async def _filter_events(
        self,
        shipment: Shipment,
        events: Sequence[TrackingEventData],
        signed_by: str | None,
    ) -> list[TrackingEventData]:
        delivered_times = [
            event.timestamp
            for event in events
            if event.status == ShipmentStatus.DELIVERED
        ]
        delivered_recorded = shipment.status == ShipmentStatus.DELIVERED
        if not delivered_recorded:
            delivered_recorded = any(
                event.status == ShipmentStatus.DELIVERED
                for event in await self.event_store.timeline(shipment.id)
            )

        kept = []
        for event in events:
            if event.status == ShipmentStatus.PENDING and (
                delivered_recorded
                or any(event.timestamp >= t for t in delivered_times)
            ):
                continue
            if (
                signed_by
                and event.status == ShipmentStatus.DELIVERED
                and not event.signed_by
            ):
                event.signed_by = signed_by
            kept.append(event)
        return kept

    async def _transition(
        self,
        shipment: Shipment,
        target: ShipmentStatus,
        at: datetime,
        *,
        delivered_at: datetime | None = None,
    ) -> None:
        logger.info(
            "Shipment %s: %s -> %s", shipment.id, shipment.status, target
        )
        shipment.status = str(target)
        shipment.last_tracking_update = at

        if (
            target == ShipmentStatus.PICKED_UP
            and shipment.picked_up_at is None
        ):
            shipment.picked_up_at = at
        elif target == ShipmentStatus.DELIVERED:
            shipment.actual_delivery = delivered_at or at
            if (
                shipment.is_cod
                and not shipment.cod_collected
                and self.config.cod_auto_collect
            ):
                shipment.cod_collected = True
                shipment.cod_collected_at = at
        elif target == ShipmentStatus.ATTEMPTED_DELIVERY:
            shipment.delivery_attempts += 1
            if attempts_exhausted(shipment):
                logger.warning(
                    "Shipment %s used %d of %d delivery attempts",
                    shipment.id,
                    shipment.delivery_attempts,
                    shipment.max_delivery_attempts,
                )

    async def _void_booking(
        self, adapter: BaseCarrierAdapter, tracking_number: str
    ) -> None:
        result = await adapter.cancel_shipment(tracking_number)
        if not result.success:
            logger.warning(
                "Could not cancel orphaned %s booking %s: %s",
                adapter.config.code,
                tracking_number,
                result.error or result.message,
            )

    async def _after_transition(
        self,
        shipment: Shipment,
        status: ShipmentStatus,
        note: str | None = None,
    ) -> None:
        if status in UNIT_CALLBACK_STATUSES and self.resolver is not None:
            try:
                await self.resolver.update_status(
                    shipment.fulfillment_unit_id,
                    str(status),
                    note or f"Shipment {status}",
                )
            except Exception:
                logger.exception(
                    "Failed to update fulfillment unit %s to %s",
                    shipment.fulfillment_unit_id,
                    status,
                )
        await self.notifier.notify(shipment, status)

    async def _save(self, shipment: Shipment) -> Shipment:
        shipment.total_cost = float(shipment.shipping_cost or 0) + float(
            shipment.insurance_cost or 0
        )
        return await self.repository.save(shipment)
