"""TCS Express adapter."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from courierlink.carriers.base import (
    MAJOR_CITIES,
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

TCS_STATUS_MAP: dict[str, ShipmentStatus] = {
    "booked": ShipmentStatus.PENDING,
    "shipment booked": ShipmentStatus.PENDING,
    "label printed": ShipmentStatus.LABEL_CREATED,
    "picked up": ShipmentStatus.PICKED_UP,
    "in transit": ShipmentStatus.IN_TRANSIT,
    "arrived at hub": ShipmentStatus.IN_TRANSIT,
    "departed from hub": ShipmentStatus.IN_TRANSIT,
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "delivered": ShipmentStatus.DELIVERED,
    "delivery attempted": ShipmentStatus.ATTEMPTED_DELIVERY,
    "returned to shipper": ShipmentStatus.RETURNED,
    "rto": ShipmentStatus.RETURNED,
    "cancelled": ShipmentStatus.CANCELLED,
}

DEFAULT_PICKUP_SLOT = "10:00-14:00"


def _succeeded(response: Mapping[str, Any]) -> bool:
    return (response.get("returnStatus") or {}).get("status") == "SUCCESS"


def _message(response: Mapping[str, Any], default: str) -> str:
    return (response.get("returnStatus") or {}).get("statusMessage") or default


class TCSAdapter(BaseCarrierAdapter):
    """TCS consignment API.

    Authenticates with ``X-IBM-Client-Id``/``X-IBM-Client-Secret`` headers
    and reports outcomes in ``returnStatus.status``.
    """

    code = "tcs"
    display_name = "TCS"
    status_map = TCS_STATUS_MAP
    tracking_url_template = (
        "https://www.tcsexpress.com/track/{tracking_number}"
    )
    major_cities = MAJOR_CITIES | {"multan"}

    def auth_headers(self) -> dict[str, str]:
        creds = self.config.credentials
        return {
            "X-IBM-Client-Id": creds.api_key or "",
            "X-IBM-Client-Secret": creds.api_secret or "",
        }

    def _account(self) -> dict[str, Any]:
        creds = self.config.credentials
        return {
            "userName": creds.username,
            "password": creds.password,
            "costCenterCode": creds.cost_center_id,
        }

    async def create_shipment(self, details: ShipmentDetails) -> BookingResult:
        destination = details.destination
        package = details.package
        payload = {
            **self._account(),
            "consigneeName": destination.get("name"),
            "consigneeAddress": destination.get("address"),
            "consigneeMobNo": self.format_phone(destination.get("phone")),
            "consigneeEmail": destination.get("email", ""),
            "destinationCityName": destination.get("city"),
            "weight": details.weight,
            "pieces": package.get("item_count") or 1,
            "codAmount": details.cod_amount if details.is_cod else 0,
            "customerReferenceNo": details.reference_number,
            "services": "COD" if details.is_cod else "Non-COD",
            "productDetails": package.get("description") or "Package",
            "fragile": "Yes" if package.get("fragile") else "No",
            "remarks": details.special_instructions,
            "insuranceValue": details.declared_value,
        }
        try:
            response = await self._request(
                "POST", "/booking/book-consignment", json=payload
            )
        except CommunicationError as exc:
            return BookingResult.failure(str(exc))

        if not _succeeded(response):
            return BookingResult.failure(_message(response, "Booking failed"))

        reply = response.get("bookingReply") or {}
        consignment = str(reply.get("consignmentNo") or "")
        return BookingResult(
            tracking_number=consignment,
            awb_number=consignment,
            booking_id=str(reply.get("bookingId") or ""),
            # Labels come from a separate endpoint.
            label_url=None,
            estimated_delivery=self.estimated_delivery(
                details.origin.get("city"), destination.get("city")
            ),
            raw_response=response,
        )

    async def get_label(self, tracking_number: str) -> LabelResult:
        try:
            response = await self._request(
                "GET", f"/booking/get-label/{tracking_number}"
            )
        except CommunicationError as exc:
            return LabelResult.failure(str(exc))
        return LabelResult(
            label_url=response.get("labelUrl"),
            label_data=response.get("labelPdf"),
        )

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        try:
            response = await self._request(
                "GET",
                "/track/track-consignment",
                params={"consignmentNo": tracking_number},
            )
        except CommunicationError as exc:
            return TrackingResult.failure(str(exc))

        if not _succeeded(response):
            return TrackingResult.failure(
                _message(response, "Tracking failed")
            )

        detail = response.get("trackingDetail") or {}
        events = []
        for item in detail.get("trackingEvents") or []:
            timestamp = " ".join(
                str(part)
                for part in (
                    item.get("activityDate"),
                    item.get("activityTime"),
                )
                if part
            )
            event = self.build_event(
                item.get("activityStatus"),
                timestamp,
                description=item.get("activityDescription"),
                status_code=item.get("activityCode"),
                city=item.get("location") or item.get("activityLocation"),
                facility=item.get("facility"),
                raw_data=item,
            )
            if event is not None:
                events.append(event)

        return TrackingResult(
            tracking_number=tracking_number,
            current_status=self.current_status(
                detail.get("currentStatus"), events
            ),
            events=events,
            delivered_at=parse_timestamp(detail.get("deliveryDate")),
            signed_by=detail.get("receiverName"),
            raw_response=response,
        )

    async def cancel_shipment(self, tracking_number: str) -> CancelResult:
        try:
            response = await self._request(
                "POST",
                "/booking/cancel-consignment",
                json={"consignmentNo": tracking_number},
            )
        except CommunicationError as exc:
            return CancelResult(
                success=False, error=str(exc), message=str(exc)
            )
        message = _message(response, "Cancellation processed")
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
        service = options.service_type or "Overnight"
        response = await self._request(
            "GET",
            "/tariff/get-tariff",
            params={
                "originCity": origin.get("city"),
                "destinationCity": destination.get("city"),
                "weight": weight,
                "service": service,
                "cod": "Yes" if options.is_cod else "No",
                "codAmount": options.cod_amount or 0,
            },
        )
        if not _succeeded(response):
            return None

        tariff = response.get("tariffDetail") or {}
        return RateQuote(
            rate=as_decimal(tariff.get("totalCharges")),
            breakdown={
                "freight_charges": as_decimal(tariff.get("freightCharges")),
                "fuel_surcharge": as_decimal(tariff.get("fuelSurcharge")),
                "cod_charges": as_decimal(tariff.get("codCharges")),
                "other_charges": as_decimal(tariff.get("otherCharges")),
            },
            estimated_days=self.estimated_days(
                origin.get("city"), destination.get("city")
            ),
            service_type=service,
        )

    async def schedule_pickup(self, details: PickupDetails) -> PickupResult:
        slot = details.time_slot or DEFAULT_PICKUP_SLOT
        try:
            response = await self._request(
                "POST",
                "/pickup/schedule-pickup",
                json={
                    **self._account(),
                    "pickupDate": self.format_date(details.date),
                    "pickupTime": slot,
                    "pickupAddress": details.address,
                    "pickupCity": details.city,
                    "contactPerson": details.contact_name,
                    "contactNumber": self.format_phone(details.phone),
                    "noOfShipments": details.shipment_count,
                    "remarks": details.instructions,
                },
            )
        except CommunicationError as exc:
            return PickupResult.failure(str(exc))

        if not _succeeded(response):
            return PickupResult.failure(
                _message(response, "Pickup scheduling failed")
            )
        reply = response.get("pickupReply") or {}
        return PickupResult(
            pickup_id=str(reply.get("pickupId") or ""),
            pickup_date=details.date,
            pickup_time=slot,
        )

    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookUpdate:
        return self.webhook_update(
            payload,
            tracking_number=payload.get("consignmentNo"),
            carrier_status=payload.get("status"),
            timestamp=payload.get("timestamp"),
            description=payload.get("statusDescription"),
            city=payload.get("location"),
        )
