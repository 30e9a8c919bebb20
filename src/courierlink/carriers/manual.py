"""Manual (no-carrier) adapter for vendors shipping on their own."""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from typing import Any

from courierlink.carriers.base import BaseCarrierAdapter
from courierlink.exceptions import InvalidWebhookError
from courierlink.types import (
    BookingResult,
    CancelResult,
    LabelResult,
    PickupDetails,
    PickupResult,
    ShipmentDetails,
    TrackingResult,
    WebhookUpdate,
)


def generate_tracking_number() -> str:
    return f"MAN-{secrets.token_hex(4).upper()}"


class ManualAdapter(BaseCarrierAdapter):
    """Records shipments without talking to any carrier.

    Status changes only come from manual overrides.
    """

    code = "manual"
    display_name = "Manual Shipping"
    supports_tracking = False
    supports_webhooks = False

    async def create_shipment(self, details: ShipmentDetails) -> BookingResult:
        tracking_number = details.tracking_number or generate_tracking_number()
        return BookingResult(
            tracking_number=tracking_number,
            awb_number=tracking_number,
            estimated_delivery=self.estimated_delivery(
                details.origin.get("city"), details.destination.get("city")
            ),
        )

    async def get_label(self, tracking_number: str) -> LabelResult:
        return LabelResult.failure("Manual shipments have no carrier label")

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        return TrackingResult(tracking_number=tracking_number)

    async def cancel_shipment(self, tracking_number: str) -> CancelResult:
        return CancelResult(message="Shipment cancelled")

    async def schedule_pickup(self, details: PickupDetails) -> PickupResult:
        return PickupResult.failure("Manual carrier does not schedule pickups")

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookUpdate:
        raise InvalidWebhookError("Manual carrier does not accept webhooks")
