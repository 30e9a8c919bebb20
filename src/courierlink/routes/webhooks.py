"""Carrier webhook endpoints."""

from __future__ import annotations

from typing import Annotated, ClassVar

from litestar import Controller, Request, post
from litestar.params import Dependency
from litestar.status_codes import HTTP_200_OK

from courierlink.ingestion import TrackingIngestor
from courierlink.schemas import WebhookResponse


class WebhookController(Controller):
    """Status pushes from carriers."""

    path = "/webhooks"
    tags: ClassVar[list[str]] = ["webhooks"]

    @post("/courier/{carrier_code:str}", status_code=HTTP_200_OK)
    async def handle_courier_webhook(
        self,
        carrier_code: str,
        request: Request,
        ingestor: Annotated[
            TrackingIngestor, Dependency(skip_validation=True)
        ],
    ) -> WebhookResponse:
        """Receive a status push from a carrier.

        The raw body is verified against the carrier's webhook secret before
        anything is parsed or written.
        """
        raw_body = await request.body()
        outcome = await ingestor.handle_webhook(
            carrier_code, raw_body, dict(request.headers)
        )
        return WebhookResponse(
            carrier=carrier_code.lower(),
            status=outcome.status,
            tracking_number=outcome.tracking_number,
            shipment_status=outcome.shipment_status,
        )
