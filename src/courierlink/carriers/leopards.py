"""Leopards Courier adapter."""

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

LEOPARDS_STATUS_MAP: dict[str, ShipmentStatus] = {
    "booked": ShipmentStatus.PENDING,
    "packet booked": ShipmentStatus.PENDING,
    "arrived at station": ShipmentStatus.PICKED_UP,
    "dispatched from station": ShipmentStatus.IN_TRANSIT,
    "in transit": ShipmentStatus.IN_TRANSIT,
    "arrived at destination": ShipmentStatus.IN_TRANSIT,
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "ofd": ShipmentStatus.OUT_FOR_DELIVERY,
    "delivered": ShipmentStatus.DELIVERED,
    "delivery failed": ShipmentStatus.ATTEMPTED_DELIVERY,
    "returned to shipper": ShipmentStatus.RETURNED,
    "rts": ShipmentStatus.RETURNED,
    "cancelled": ShipmentStatus.CANCELLED,
}

# Leopards identifies cities by numeric id.
CITY_IDS: dict[str, str] = {
    "karachi": "1",
    "lahore": "2",
    "islamabad": "3",
    "rawalpindi": "4",
    "faisalabad": "5",
    "multan": "6",
    "peshawar": "7",
    "quetta": "8",
    "sialkot": "9",
    "gujranwala": "10",
    "hyderabad": "11",
}

SHIPMENT_TYPE_COD = 1
SHIPMENT_TYPE_NON_COD = 2


def _succeeded(response: Mapping[str, Any]) -> bool:
    return str(response.get("status")) == "1"


def _message(response: Mapping[str, Any], default: str) -> str:
    return str(response.get("error") or response.get("message") or default)


def city_id(city: str | None) -> str | None:
    """Leopards city id, or the city name itself when unknown."""
    if not city:
        return city
    return CITY_IDS.get(city.strip().lower(), city)


class LeopardsAdapter(BaseCarrierAdapter):
    """Leopards web service API (``api-key`` header, ``status == 1``)."""

    code = "leopards"
    display_name = "Leopards Courier"
    status_map = LEOPARDS_STATUS_MAP
    tracking_url_template = (
        "https://leopardscourier.com/tracking/{tracking_number}"
    )

    def auth_headers(self) -> dict[str, str]:
        return {"api-key": self.config.credentials.api_key or ""}

    def _account(self) -> dict[str, Any]:
        creds = self.config.credentials
        return {"api_key": creds.api_key, "api_password": creds.api_secret}

    async def create_shipment(self, details: ShipmentDetails) -> BookingResult:
        destination = details.destination
        package = details.package
        reference = details.reference_number or (
            f"ORD-{int(datetime.now(tz=UTC).timestamp() * 1000)}"
        )
        payload = {
            **self._account(),
            "shipment_type_id": (
                SHIPMENT_TYPE_COD if details.is_cod else SHIPMENT_TYPE_NON_COD
            ),
            "order_id": reference,
            "pickup_address_id": self.config.credentials.pickup_address,
            "consignee_name": destination.get("name"),
            "consignee_phone": self.format_phone(destination.get("phone")),
            "consignee_email": destination.get("email", ""),
            "consignee_address": destination.get("address"),
            "consignee_city": city_id(destination.get("city")),
            "product_type_id": 1,
            "weight": details.weight,
            "pieces": package.get("item_count") or 1,
            "collect_amount": details.cod_amount if details.is_cod else 0,
            "order_amount": details.declared_value,
            "special_instructions": details.special_instructions,
            "product_description": package.get("description") or "Package",
            "is_fragile": 1 if package.get("fragile") else 0,
            "is_insurance": 1 if details.declared_value > 0 else 0,
        }
        try:
            response = await self._request(
                "POST", "/webservice/book-packet", json=payload
            )
        except CommunicationError as exc:
            return BookingResult.failure(str(exc))

        if not _succeeded(response):
            return BookingResult.failure(_message(response, "Booking failed"))

        tracking_number = str(response.get("track_number") or "")
        return BookingResult(
            tracking_number=tracking_number,
            awb_number=str(response.get("cn_number") or tracking_number),
            booking_id=str(response.get("booking_id") or ""),
            label_url=response.get("slip_link"),
            estimated_delivery=self.estimated_delivery(
                details.origin.get("city"), destination.get("city")
            ),
            raw_response=response,
        )

    async def get_label(self, tracking_number: str) -> LabelResult:
        try:
            response = await self._request(
                "GET",
                "/webservice/get-slip",
                params={"track_number": tracking_number},
            )
        except CommunicationError as exc:
            return LabelResult.failure(str(exc))
        return LabelResult(
            label_url=response.get("slip_link"),
            label_data=response.get("slip_pdf"),
        )

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        try:
            response = await self._request(
                "GET",
                "/webservice/track-packet",
                params={**self._account(), "track_number": tracking_number},
            )
        except CommunicationError as exc:
            return TrackingResult.failure(str(exc))

        if not _succeeded(response):
            return TrackingResult.failure(
                _message(response, "Tracking failed")
            )

        packet = response.get("packet_details") or response
        activities = (
            response.get("tracking_details")
            or response.get("activities")
            or []
        )
        events = []
        for activity in activities:
            event = self.build_event(
                activity.get("status") or activity.get("activity"),
                activity.get("date_time") or activity.get("activity_date"),
                description=activity.get("activity") or activity.get("status"),
                status_code=activity.get("status_code"),
                city=activity.get("location") or activity.get("city"),
                facility=activity.get("station"),
                raw_data=activity,
            )
            if event is not None:
                events.append(event)

        return TrackingResult(
            tracking_number=tracking_number,
            current_status=self.current_status(
                packet.get("packet_status")
                or packet.get("booked_packet_status"),
                events,
            ),
            events=events,
            delivered_at=parse_timestamp(packet.get("delivery_date")),
            signed_by=packet.get("received_by"),
            raw_response=response,
        )

    async def cancel_shipment(self, tracking_number: str) -> CancelResult:
        try:
            response = await self._request(
                "POST",
                "/webservice/cancel-packet",
                json={**self._account(), "track_number": tracking_number},
            )
        except CommunicationError as exc:
            return CancelResult(
                success=False, error=str(exc), message=str(exc)
            )
        message = str(response.get("message") or "Cancellation processed")
        if not _succeeded(response):
            return CancelResult(
                success=False,
                error=_message(response, "Cancellation failed"),
                message=message,
            )
        return CancelResult(message=message)

    async def fetch_rate(
        self,
        origin: AddressInfo,
        destination: AddressInfo,
        weight: float,
        options: RateOptions,
    ) -> RateQuote | None:
        response = await self._request(
            "GET",
            "/webservice/get-tariff",
            params={
                "api_key": self.config.credentials.api_key,
                "origin_city": city_id(origin.get("city")),
                "destination_city": city_id(destination.get("city")),
                "weight": weight,
                "shipment_type": "COD" if options.is_cod else "Non-COD",
                "collect_amount": options.cod_amount or 0,
            },
        )
        if not _succeeded(response):
            return None

        return RateQuote(
            rate=as_decimal(
                response.get("charges") or response.get("total_charges")
            ),
            breakdown={
                "freight_charges": as_decimal(response.get("freight_charges")),
                "fuel_surcharge": as_decimal(response.get("fuel_surcharge")),
                "cod_charges": as_decimal(response.get("cod_charges")),
                "gst": as_decimal(response.get("gst")),
            },
            estimated_days=self.estimated_days(
                origin.get("city"), destination.get("city")
            ),
        )

    async def schedule_pickup(self, details: PickupDetails) -> PickupResult:
        try:
            response = await self._request(
                "POST",
                "/webservice/request-pickup",
                json={
                    **self._account(),
                    "pickup_date": self.format_date(details.date),
                    "pickup_time": details.time_slot,
                    "pickup_address": details.address,
                    "city_id": city_id(details.city),
                    "contact_name": details.contact_name,
                    "contact_phone": self.format_phone(details.phone),
                    "shipment_count": details.shipment_count,
                    "instructions": details.instructions,
                },
            )
        except CommunicationError as exc:
            return PickupResult.failure(str(exc))

        if not _succeeded(response):
            return PickupResult.failure(
                _message(response, "Pickup scheduling failed")
            )
        return PickupResult(
            pickup_id=str(response.get("pickup_id") or ""),
            pickup_date=details.date,
            pickup_time=details.time_slot,
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookUpdate:
        return self.webhook_update(
            payload,
            tracking_number=payload.get("track_number")
            or payload.get("cn_number"),
            carrier_status=payload.get("status"),
            timestamp=payload.get("date_time"),
            description=payload.get("activity"),
            city=payload.get("location") or payload.get("city"),
        )
