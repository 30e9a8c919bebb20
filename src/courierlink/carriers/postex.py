"""PostEx adapter."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from courierlink.carriers.base import (
    BaseCarrierAdapter,
    as_decimal,
    parse_timestamp,
)
from courierlink.enums import ShipmentStatus
from courierlink.exceptions import CommunicationError
from courierlink.types import (
    AddressInfo,
    BookingResult,
    CancelResult,
    LabelResult,
    PickupDetails,
    PickupResult,
    RateOptions,
    RateQuote,
    ShipmentDetails,
    TrackingResult,
    WebhookUpdate,
)

POSTEX_STATUS_MAP: dict[str, ShipmentStatus] = {
    "pending": ShipmentStatus.PENDING,
    "order created": ShipmentStatus.PENDING,
    "picked up": ShipmentStatus.PICKED_UP,
    "in transit": ShipmentStatus.IN_TRANSIT,
    "at sorting facility": ShipmentStatus.IN_TRANSIT,
    "dispatched": ShipmentStatus.IN_TRANSIT,
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "ofd": ShipmentStatus.OUT_FOR_DELIVERY,
    "delivered": ShipmentStatus.DELIVERED,
    "delivery attempt": ShipmentStatus.ATTEMPTED_DELIVERY,
    "delivery failed": ShipmentStatus.ATTEMPTED_DELIVERY,
    "returned": ShipmentStatus.RETURNED,
    "return to origin": ShipmentStatus.RETURNED,
    "rto": ShipmentStatus.RETURNED,
    "cancelled": ShipmentStatus.CANCELLED,
}


def _succeeded(response: Mapping[str, Any]) -> bool:
    return response.get("statusCode") in (200, "200") or bool(
        response.get("success")
    )


def _message(response: Mapping[str, Any], default: str) -> str:
    return str(response.get("message") or response.get("error") or default)


def _body(response: Mapping[str, Any]) -> Mapping[str, Any]:
    # Payloads sit under "dist" or "data" depending on the endpoint.
    return response.get("dist") or response.get("data") or response


class PostExAdapter(BaseCarrierAdapter):
    """PostEx order API (``token`` header)."""

    code = "postex"
    display_name = "PostEx"
    status_map = POSTEX_STATUS_MAP
    tracking_url_template = "https://postex.pk/tracking/{tracking_number}"

    def auth_headers(self) -> dict[str, str]:
        return {"token": self.config.credentials.api_key or ""}

    async def create_shipment(self, details: ShipmentDetails) -> BookingResult:
        creds = self.config.credentials
        destination = details.destination
        package = details.package
        reference = details.reference_number or (
            f"ORD-{int(datetime.now(tz=UTC).timestamp() * 1000)}"
        )
        payload = {
            "cityName": destination.get("city"),
            "customerName": destination.get("name"),
            "customerPhone": self.format_phone(destination.get("phone")),
            "deliveryAddress": destination.get("address"),
            "invoiceDivision": creds.account_number or "",
            "invoicePayment": details.cod_amount if details.is_cod else 0,
            "items": package.get("item_count") or 1,
            "orderDetail": package.get("description") or "Package",
            "orderRefNumber": reference,
            "transactionNotes": details.special_instructions,
            "orderType": "COD" if details.is_cod else "Prepaid",
            "weight": details.weight,
            "pickupAddressCode": creds.pickup_address,
        }
        try:
            response = await self._request(
                "POST", "/api/v1/create-order", json=payload
            )
        except CommunicationError as exc:
            return BookingResult.failure(str(exc))

        if not _succeeded(response):
            return BookingResult.failure(_message(response, "Booking failed"))

        body = _body(response)
        tracking_number = str(
            response.get("trackingNumber") or body.get("trackingNumber") or ""
        )
        return BookingResult(
            tracking_number=tracking_number,
            awb_number=tracking_number,
            booking_id=str(
                response.get("orderId") or body.get("orderId") or ""
            ),
            label_url=response.get("labelUrl") or body.get("labelUrl"),
            estimated_delivery=self.estimated_delivery(
                details.origin.get("city"), destination.get("city")
            ),
            raw_response=response,
        )

    async def get_label(self, tracking_number: str) -> LabelResult:
        try:
            response = await self._request(
                "GET", f"/api/v1/get-label/{tracking_number}"
            )
        except CommunicationError as exc:
            return LabelResult.failure(str(exc))
        return LabelResult(
            label_url=(
                response.get("labelUrl") or _body(response).get("labelUrl")
            ),
            label_data=response.get("labelPdf"),
        )

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        try:
            response = await self._request(
                "GET", f"/api/v1/track-order/{tracking_number}"
            )
        except CommunicationError as exc:
            return TrackingResult.failure(str(exc))

        if not _succeeded(response):
            return TrackingResult.failure(
                _message(response, "Tracking failed")
            )

        data = _body(response)
        history = (
            data.get("transactionStatusHistory") or data.get("history") or []
        )
        events = []
        for item in history:
            event = self.build_event(
                item.get("transactionStatus") or item.get("status"),
                item.get("createdAt") or item.get("datetime"),
                description=item.get("transactionStatusMessage")
                or item.get("message"),
                status_code=item.get("statusCode"),
                city=item.get("city") or item.get("location"),
                facility=item.get("station"),
                raw_data=item,
            )
            if event is not None:
                events.append(event)

        return TrackingResult(
            tracking_number=tracking_number,
            current_status=self.current_status(
                data.get("transactionStatus") or data.get("currentStatus"),
                events,
            ),
            events=events,
            delivered_at=parse_timestamp(data.get("deliveredAt")),
            signed_by=data.get("receiverName"),
            raw_response=response,
        )

    async def cancel_shipment(self, tracking_number: str) -> CancelResult:
        try:
            response = await self._request(
                "POST",
                "/api/v1/cancel-order",
                json={"trackingNumber": tracking_number},
            )
        except CommunicationError as exc:
            return CancelResult(
                success=False, error=str(exc), message=str(exc)
            )
        message = str(response.get("message") or "Cancellation processed")
        if not _succeeded(response):
            return CancelResult(success=False, error=message, message=message)
        return CancelResult(message=message)

    async def fetch_rate(
        self,
        origin: AddressInfo,
        destination: AddressInfo,
        weight: float,
        options: RateOptions,
    ) -> RateQuote | None:
        response = await self._request(
            "POST",
            "/api/v1/get-rates",
            json={
                "originCity": origin.get("city"),
                "destinationCity": destination.get("city"),
                "weight": weight,
                "orderType": "COD" if options.is_cod else "Prepaid",
                "codAmount": options.cod_amount or 0,
            },
        )
        if not _succeeded(response):
            return None

        rates = _body(response)
        return RateQuote(
            rate=as_decimal(
                rates.get("totalCharges") or rates.get("shippingCost")
            ),
            breakdown={
                "freight_charges": as_decimal(rates.get("freightCharges")),
                "cod_charges": as_decimal(rates.get("codCharges")),
                "fuel_surcharge": as_decimal(rates.get("fuelSurcharge")),
                "gst": as_decimal(rates.get("gst")),
            },
            estimated_days=self.estimated_days(
                origin.get("city"), destination.get("city")
            ),
        )

    async def schedule_pickup(self, details: PickupDetails) -> PickupResult:
        try:
            response = await self._request(
                "POST",
                "/api/v1/schedule-pickup",
                json={
                    "pickupDate": self.format_date(details.date),
                    "pickupTime": details.time_slot,
                    "pickupAddress": details.address,
                    "cityName": details.city,
                    "contactName": details.contact_name,
                    "contactPhone": self.format_phone(details.phone),
                    "orderCount": details.shipment_count,
                    "notes": details.instructions,
                },
            )
        except CommunicationError as exc:
            return PickupResult.failure(str(exc))

        if not _succeeded(response):
            return PickupResult.failure(
                _message(response, "Pickup scheduling failed")
            )
        pickup_id = _body(response).get("pickupId") or response.get("pickupId")
        return PickupResult(
            pickup_id=str(pickup_id or ""),
            pickup_date=details.date,
            pickup_time=details.time_slot,
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookUpdate:
        return self.webhook_update(
            payload,
            tracking_number=payload.get("trackingNumber")
            or payload.get("tracking_number"),
            carrier_status=payload.get("transactionStatus")
            or payload.get("status"),
            timestamp=payload.get("createdAt") or payload.get("timestamp"),
            description=payload.get("transactionStatusMessage")
            or payload.get("message"),
            city=payload.get("city") or payload.get("location"),
        )
