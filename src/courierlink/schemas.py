"""Request/response schemas for HTTP endpoints."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from courierlink.carrier_config import CarrierConfig
from courierlink.enums import ServiceType, ShipmentStatus
from courierlink.registry import tracking_url
from courierlink.types import RateQuote

# Never returned by admin read endpoints.
SECRET_FIELDS: dict[str, Any] = {
    "webhook_secret": True,
    "credentials": {"api_secret", "password"},
}


class CreateShipmentRequest(BaseModel):
    """Payload for booking a fulfillment unit.

    ``carrier_code`` falls back to the configured default carrier.
    ``tracking_number`` is only honoured by the manual carrier.
    """

    fulfillment_unit_id: str
    carrier_code: str | None = None
    package: dict[str, Any] | None = None
    service_type: ServiceType = ServiceType.STANDARD
    special_instructions: str = ""
    is_cod: bool = False
    cod_amount: float = Field(default=0, ge=0)
    tracking_number: str | None = None


class ShipmentResponse(BaseModel):
    """Serialized shipment response payload."""

    id: str
    fulfillment_unit_id: str
    order_id: str
    vendor_id: str
    carrier_code: str
    carrier_name: str
    tracking_number: str
    awb_number: str = ""
    booking_id: str = ""
    label_url: str = ""
    tracking_url: str | None = None
    status: ShipmentStatus
    origin: dict[str, Any] = Field(default_factory=dict)
    destination: dict[str, Any] = Field(default_factory=dict)
    package: dict[str, Any] = Field(default_factory=dict)
    estimated_delivery: datetime | None = None
    actual_delivery: datetime | None = None
    picked_up_at: datetime | None = None
    last_tracking_update: datetime | None = None
    is_cod: bool = False
    cod_amount: float = 0
    cod_collected: bool = False
    cod_collected_at: datetime | None = None
    shipping_cost: float = 0
    insurance_cost: float = 0
    total_cost: float = 0
    currency: str = "PKR"
    service_type: str = ServiceType.STANDARD
    special_instructions: str = ""
    delivery_attempts: int = 0
    max_delivery_attempts: int = 3
    last_error: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_shipment(cls, shipment):
        data = {
            name: getattr(shipment, name)
            for name in cls.model_fields
            if name != "tracking_url" and hasattr(shipment, name)
        }
        for key in ("origin", "destination", "package"):
            data[key] = data.get(key) or {}
        data["tracking_url"] = tracking_url(
            shipment.carrier_code, shipment.tracking_number
        )
        return cls.model_validate(data)


class ShipmentListResponse(BaseModel):
    items: list[ShipmentResponse]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, shipments, total: int, page: int, limit: int):
        return cls(
            items=[ShipmentResponse.from_shipment(s) for s in shipments],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        )


class TrackingEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: ShipmentStatus
    status_code: str | None = None
    description: str = ""
    location: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    source: str | None = None
    signed_by: str | None = None
    notes: str | None = None


class ShipmentTrackingResponse(BaseModel):
    shipment: ShipmentResponse
    events: list[TrackingEventResponse]


class StatusUpdateRequest(BaseModel):
    """Manual status override."""

    status: ShipmentStatus
    note: str | None = None
    location: dict[str, Any] | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class LabelResponse(BaseModel):
    label_url: str | None = None
    label_data: str | None = None


class RateRequest(BaseModel):
    origin: dict[str, Any]
    destination: dict[str, Any]
    weight: float = Field(gt=0)
    service_type: ServiceType | None = None
    is_cod: bool = False
    cod_amount: float = Field(default=0, ge=0)


class RateQuoteResponse(BaseModel):
    """A single carrier quote. Amounts are plain numbers on the wire."""

    carrier_code: str
    carrier_name: str
    rate: float
    currency: str
    estimated_days: int
    service_type: str
    breakdown: dict[str, float] = Field(default_factory=dict)
    from_rate_card: bool = False

    @classmethod
    def from_quote(cls, quote: RateQuote):
        return cls(
            carrier_code=quote.carrier_code,
            carrier_name=quote.carrier_name,
            rate=float(quote.rate),
            currency=quote.currency,
            estimated_days=quote.estimated_days,
            service_type=quote.service_type,
            breakdown={k: float(v) for k, v in quote.breakdown.items()},
            from_rate_card=quote.from_rate_card,
        )


class RateComparisonResponse(BaseModel):
    rates: list[RateQuoteResponse]
    cheapest: RateQuoteResponse | None = None


class PickupRequest(BaseModel):
    pickup_date: date
    address: str
    city: str
    contact_name: str
    phone: str
    time_slot: str = "10:00-14:00"
    shipment_count: int = Field(default=1, ge=1)
    instructions: str = ""


class PickupResponse(BaseModel):
    carrier_code: str
    pickup_id: str | None = None
    pickup_date: date | None = None
    pickup_time: str | None = None


class TrackingLookupResponse(BaseModel):
    """Public tracking answer. Addresses are reduced to their city."""

    found: bool
    tracking_number: str
    carrier_code: str | None = None
    carrier_name: str | None = None
    status: ShipmentStatus | None = None
    origin: dict[str, Any] = Field(default_factory=dict)
    destination: dict[str, Any] = Field(default_factory=dict)
    estimated_delivery: datetime | None = None
    actual_delivery: datetime | None = None
    tracking_url: str | None = None
    events: list[TrackingEventResponse] = Field(default_factory=list)
    message: str | None = None


class WebhookResponse(BaseModel):
    """Webhook handling response payload."""

    carrier: str
    status: str
    tracking_number: str
    shipment_status: str | None = None


def carrier_config_response(config: CarrierConfig) -> dict[str, Any]:
    """Admin view of a carrier configuration without its secrets."""
    return config.model_dump(mode="json", exclude=SECRET_FIELDS)
