"""Shipment endpoints."""

from __future__ import annotations

from typing import Annotated, ClassVar

from litestar import Controller, get, post, put
from litestar.params import Dependency, Parameter
from litestar.status_codes import HTTP_200_OK

from courierlink.enums import ShipmentStatus
from courierlink.ledger import ShipmentLedger
from courierlink.rates import compare_rates
from courierlink.registry import CarrierRegistry
from courierlink.schemas import (
    CancelRequest,
    CreateShipmentRequest,
    LabelResponse,
    RateComparisonResponse,
    RateQuoteResponse,
    RateRequest,
    ShipmentListResponse,
    ShipmentResponse,
    ShipmentTrackingResponse,
    StatusUpdateRequest,
    TrackingEventResponse,
)
from courierlink.types import RateOptions

Ledger = Annotated[ShipmentLedger, Dependency(skip_validation=True)]


class ShipmentController(Controller):
    """Shipment booking, listing and lifecycle endpoints."""

    path = "/shipments"
    tags: ClassVar[list[str]] = ["shipments"]

    @get("/health")
    async def shipments_health(self) -> dict[str, str]:
        """Healthcheck endpoint for shipment routes."""
        return {"status": "ok"}

    @post("/")
    async def create_shipment(
        self, data: CreateShipmentRequest, ledger: Ledger
    ) -> ShipmentResponse:
        """Book a fulfillment unit with a carrier."""
        shipment = await ledger.book(
            fulfillment_unit_id=data.fulfillment_unit_id,
            carrier_code=data.carrier_code,
            package=data.package,
            service_type=data.service_type,
            special_instructions=data.special_instructions,
            is_cod=data.is_cod,
            cod_amount=data.cod_amount,
            tracking_number=data.tracking_number,
        )
        return ShipmentResponse.from_shipment(shipment)

    @get("/")
    async def list_shipments(
        self,
        ledger: Ledger,
        vendor_id: str | None = None,
        status: ShipmentStatus | None = None,
        page: Annotated[int, Parameter(ge=1)] = 1,
        limit: Annotated[int, Parameter(ge=1, le=100)] = 20,
    ) -> ShipmentListResponse:
        shipments, total = await ledger.repository.list_shipments(
            vendor_id=vendor_id,
            status=str(status) if status else None,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return ShipmentListResponse.build(shipments, total, page, limit)

    @get("/stats")
    async def shipment_stats(self, ledger: Ledger) -> dict[str, int]:
        """Shipment counts per status."""
        return await ledger.repository.count_by_status()

    @post("/rates", status_code=HTTP_200_OK)
    async def compare_shipping_rates(
        self,
        data: RateRequest,
        registry: Annotated[
            CarrierRegistry, Dependency(skip_validation=True)
        ],
    ) -> RateComparisonResponse:
        """Quotes from every active carrier, cheapest first."""
        quotes = await compare_rates(
            registry,
            data.origin,
            data.destination,
            data.weight,
            RateOptions(
                service_type=data.service_type,
                is_cod=data.is_cod,
                cod_amount=data.cod_amount,
            ),
        )
        rates = [RateQuoteResponse.from_quote(quote) for quote in quotes]
        return RateComparisonResponse(
            rates=rates, cheapest=rates[0] if rates else None
        )

    @get("/{shipment_id:str}")
    async def get_shipment(
        self, shipment_id: str, ledger: Ledger
    ) -> ShipmentResponse:
        return ShipmentResponse.from_shipment(await ledger.get(shipment_id))

    @get("/{shipment_id:str}/tracking")
    async def get_shipment_tracking(
        self, shipment_id: str, ledger: Ledger
    ) -> ShipmentTrackingResponse:
        """Stored shipment with its full tracking timeline, oldest first."""
        shipment = await ledger.get(shipment_id)
        events = await ledger.event_store.timeline(shipment.id)
        return ShipmentTrackingResponse(
            shipment=ShipmentResponse.from_shipment(shipment),
            events=[TrackingEventResponse.model_validate(e) for e in events],
        )

    @get("/{shipment_id:str}/label")
    async def get_label(
        self, shipment_id: str, ledger: Ledger
    ) -> LabelResponse:
        result = await ledger.get_label(shipment_id)
        return LabelResponse(
            label_url=result.label_url, label_data=result.label_data
        )

    @put("/{shipment_id:str}/status")
    async def update_shipment_status(
        self, shipment_id: str, data: StatusUpdateRequest, ledger: Ledger
    ) -> ShipmentResponse:
        """Manual status override."""
        shipment = await ledger.update_status(
            shipment_id,
            data.status,
            note=data.note,
            location=data.location,
        )
        return ShipmentResponse.from_shipment(shipment)

    @post("/{shipment_id:str}/cancel", status_code=HTTP_200_OK)
    async def cancel_shipment(
        self,
        shipment_id: str,
        ledger: Ledger,
        data: CancelRequest | None = None,
    ) -> ShipmentResponse:
        shipment = await ledger.cancel(
            shipment_id, reason=data.reason if data else None
        )
        return ShipmentResponse.from_shipment(shipment)
