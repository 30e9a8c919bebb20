"""Normalized shapes exchanged between carrier adapters and the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self, TypedDict

from courierlink.enums import ServiceType, ShipmentStatus


class AddressInfo(TypedDict, total=False):
    name: str
    company: str
    address: str
    address2: str
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    email: str


class DimensionsInfo(TypedDict, total=False):
    length: float
    width: float
    height: float


class PackageInfo(TypedDict, total=False):
    weight: float
    dimensions: DimensionsInfo
    description: str
    declared_value: float
    item_count: int
    fragile: bool


class LocationInfo(TypedDict, total=False):
    city: str
    facility: str
    address: str


@dataclass(kw_only=True)
class ShipmentDetails:
    """Everything a carrier needs to book one consignment."""

    reference_number: str
    origin: AddressInfo
    destination: AddressInfo
    package: PackageInfo
    is_cod: bool = False
    cod_amount: float = 0
    service_type: ServiceType = ServiceType.STANDARD
    special_instructions: str = ""
    # Only honoured by the manual carrier.
    tracking_number: str | None = None

    @property
    def weight(self) -> float:
        return float(self.package.get("weight") or 0)

    @property
    def declared_value(self) -> float:
        return float(self.package.get("declared_value") or 0)


@dataclass(kw_only=True)
class RateOptions:
    service_type: str | None = None
    is_cod: bool = False
    cod_amount: float = 0


@dataclass(kw_only=True)
class PickupDetails:
    date: date
    address: str
    city: str
    contact_name: str
    phone: str
    time_slot: str = "10:00-14:00"
    shipment_count: int = 1
    instructions: str = ""


@dataclass(kw_only=True)
class TrackingEventData:
    """A normalized tracking event, not yet persisted."""

    status: ShipmentStatus
    timestamp: datetime
    description: str = ""
    status_code: str | None = None
    location: LocationInfo = field(default_factory=dict)
    raw_data: dict[str, Any] | None = None
    signed_by: str | None = None
    notes: str | None = None


@dataclass(kw_only=True)
class CarrierResult:
    """Tagged success/failure outcome of a carrier call."""

    success: bool = True
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> Self:
        return cls(success=False, error=error)


@dataclass(kw_only=True)
class BookingResult(CarrierResult):
    tracking_number: str = ""
    awb_number: str = ""
    booking_id: str = ""
    label_url: str | None = None
    estimated_delivery: datetime | None = None
    raw_response: dict[str, Any] | None = None


@dataclass(kw_only=True)
class LabelResult(CarrierResult):
    label_url: str | None = None
    label_data: str | None = None


@dataclass(kw_only=True)
class TrackingResult(CarrierResult):
    tracking_number: str = ""
    current_status: ShipmentStatus | None = None
    events: list[TrackingEventData] = field(default_factory=list)
    delivered_at: datetime | None = None
    signed_by: str | None = None
    raw_response: dict[str, Any] | None = None


@dataclass(kw_only=True)
class CancelResult(CarrierResult):
    message: str = ""


@dataclass(kw_only=True)
class RateQuote(CarrierResult):
    rate: Decimal = Decimal(0)
    currency: str = "PKR"
    estimated_days: int = 3
    breakdown: dict[str, Decimal] = field(default_factory=dict)
    service_type: str = "Standard"
    # True when the price came from the stored rate card, not the carrier API.
    from_rate_card: bool = False
    carrier_code: str = ""
    carrier_name: str = ""


@dataclass(kw_only=True)
class PickupResult(CarrierResult):
    pickup_id: str | None = None
    pickup_date: date | None = None
    pickup_time: str | None = None


@dataclass(kw_only=True)
class WebhookUpdate:
    """Normalized content of a carrier webhook."""

    tracking_number: str
    status: ShipmentStatus
    events: list[TrackingEventData]
    raw_data: dict[str, Any]
