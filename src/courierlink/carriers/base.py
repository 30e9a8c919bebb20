"""Carrier adapter contract and the plumbing shared by every carrier."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any, ClassVar

import httpx

from courierlink.carrier_config import CarrierConfig
from courierlink.enums import CarrierEnvironment, ShipmentStatus
from courierlink.exceptions import CommunicationError, InvalidWebhookError
from courierlink.types import (
    AddressInfo,
    BookingResult,
    CancelResult,
    LabelResult,
    LocationInfo,
    PickupDetails,
    PickupResult,
    RateOptions,
    RateQuote,
    ShipmentDetails,
    TrackingEventData,
    TrackingResult,
    WebhookUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

MAJOR_CITIES = frozenset(
    {"karachi", "lahore", "islamabad", "rawalpindi", "faisalabad"}
)

# Shared vocabulary understood for every carrier.
DEFAULT_STATUS_MAP: dict[str, ShipmentStatus] = {
    "booked": ShipmentStatus.PENDING,
    "picked": ShipmentStatus.PICKED_UP,
    "picked up": ShipmentStatus.PICKED_UP,
    "in transit": ShipmentStatus.IN_TRANSIT,
    "intransit": ShipmentStatus.IN_TRANSIT,
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY,
    "ofd": ShipmentStatus.OUT_FOR_DELIVERY,
    "delivered": ShipmentStatus.DELIVERED,
    "returned": ShipmentStatus.RETURNED,
    "return to origin": ShipmentStatus.RETURNED,
    "rto": ShipmentStatus.RETURNED,
    "cancelled": ShipmentStatus.CANCELLED,
    "failed": ShipmentStatus.FAILED,
}


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a carrier timestamp into an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings (a trailing ``Z`` included) and
    epoch seconds or milliseconds. Naive values are taken as UTC. Returns
    ``None`` for anything else, including booleans, NaN and epochs outside
    the range a datetime can hold.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (ValueError, OverflowError, OSError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError:
        return None


class BaseCarrierAdapter(ABC):
    """Capability set implemented once per carrier.

    Adapters translate the normalized shapes in ``courierlink.types`` to
    a carrier's wire format and back. Expected carrier failures (HTTP
    errors, timeouts, rejections) are returned as failure results; they
    never escape as exceptions. ``parse_webhook`` is the one exception:
    a malformed payload raises ``InvalidWebhookError``.
    """

    code: ClassVar[str]
    display_name: ClassVar[str]
    supports_tracking: ClassVar[bool] = True
    supports_webhooks: ClassVar[bool] = True
    major_cities: ClassVar[frozenset[str]] = MAJOR_CITIES
    status_map: ClassVar[dict[str, ShipmentStatus]] = {}
    tracking_url_template: ClassVar[str | None] = None

    def __init__(
        self,
        config: CarrierConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def tracking_url(cls, tracking_number: str | None) -> str | None:
        """Public tracking page on the carrier's site, if it has one."""
        if not tracking_number or not cls.tracking_url_template:
            return None
        return cls.tracking_url_template.format(
            tracking_number=tracking_number
        )

    @property
    def name(self) -> str:
        return self.config.name or self.display_name

    @property
    def base_url(self) -> str | None:
        creds = self.config.credentials
        if self.config.environment == CarrierEnvironment.PRODUCTION:
            return creds.base_url
        return creds.test_base_url or creds.base_url

    def auth_headers(self) -> dict[str, str]:
        api_key = self.config.credentials.api_key
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call the carrier API and return the decoded JSON body.

        Raises CommunicationError on transport errors, timeouts, HTTP
        error statuses and undecodable bodies.
        """
        if not self.base_url:
            raise CommunicationError(
                f"{self.name} API base URL not configured"
            )

        url = f"{self.base_url.rstrip('/')}{endpoint}"
        headers = {"Content-Type": "application/json", **self.auth_headers()}

        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=headers,
                    timeout=self.timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, json=json, params=params, headers=headers
                    )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.warning("[%s] API error: %s", self.code, detail)
            raise CommunicationError(
                f"{self.name} API Error: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("[%s] API error: %r", self.code, exc)
            raise CommunicationError(
                f"{self.name} API Error: {exc or type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise CommunicationError(
                f"{self.name} API Error: invalid JSON response"
            ) from exc

        if not isinstance(body, dict):
            raise CommunicationError(
                f"{self.name} API Error: unexpected response body"
            )
        return body

    # -- contract ---------------------------------------------------------

    @abstractmethod
    async def create_shipment(self, details: ShipmentDetails) -> BookingResult:
        """Book a consignment with the carrier."""

    @abstractmethod
    async def get_label(self, tracking_number: str) -> LabelResult: ...

    @abstractmethod
    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        """Fetch the carrier's tracking history with normalized statuses."""

    @abstractmethod
    async def cancel_shipment(self, tracking_number: str) -> CancelResult: ...

    @abstractmethod
    async def schedule_pickup(
        self, details: PickupDetails
    ) -> PickupResult: ...

    @abstractmethod
    def parse_webhook(self, payload: Mapping[str, Any]) -> WebhookUpdate:
        """Normalize a webhook body. Raises InvalidWebhookError."""

    async def fetch_rate(
        self,
        origin: AddressInfo,
        destination: AddressInfo,
        weight: float,
        options: RateOptions,
    ) -> RateQuote | None:
        """Ask the carrier API for a live quote.

        Returns ``None`` when the carrier answers without a usable quote.
        Carriers without a tariff API leave this as is.
        """
        return None

    async def calculate_rate(
        self,
        origin: AddressInfo,
        destination: AddressInfo,
        weight: float,
        options: RateOptions | None = None,
    ) -> RateQuote:
        """Quote a parcel, falling back to configuration pricing."""
        options = options or RateOptions()
        try:
            quote = await self.fetch_rate(origin, destination, weight, options)
        except CommunicationError as exc:
            logger.warning(
                "[%s] live rate unavailable, using rate card: %s",
                self.code,
                exc,
            )
            quote = None

        if quote is not None:
            return quote
        return self.rate_from_config(origin, destination, weight)

    def rate_from_config(
        self,
        origin: AddressInfo,
        destination: AddressInfo,
        weight: float,
    ) -> RateQuote:
        from_city = origin.get("city", "")
        to_city = destination.get("city", "")
        rate = self.config.calculate_rate(from_city, to_city, weight)
        if rate is None:
            return RateQuote.failure(f"{self.name} has no rate for this route")
        return RateQuote(
            rate=Decimal(rate),
            estimated_days=self.estimated_days(from_city, to_city),
            from_rate_card=True,
        )

    async def validate_address(self, address: AddressInfo) -> bool:
        return self.config.serves_city(address.get("city"))

    def normalize_status(self, carrier_status: str | None) -> ShipmentStatus:
        """Map a carrier status string onto the normalized vocabulary.

        Configured mappings win over the adapter's table, which wins over
        the shared defaults. Anything unmapped is ``in_transit``.
        """
        key = (carrier_status or "").strip().lower()
        if not key:
            return ShipmentStatus.IN_TRANSIT
        for table in (self.config.status_mapping, self.status_map):
            if key in table:
                return ShipmentStatus(table[key])
        return DEFAULT_STATUS_MAP.get(key, ShipmentStatus.IN_TRANSIT)

    def verify_webhook_signature(
        self, raw_body: bytes, signature: str | None
    ) -> bool:
        """Check an HMAC-SHA256 hex digest of the raw request body.

        Carriers without a configured ``webhook_secret`` accept every
        payload.
        """
        secret = self.config.webhook_secret
        if not secret:
            return True
        if not signature:
            return False
        expected = hmac.new(
            secret.encode(), raw_body, hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(
            expected.encode(),
            signature.strip().lower().encode("utf-8", "replace"),
        )

    # -- helpers ----------------------------------------------------------

    def build_event(
        self,
        carrier_status: str | None,
        timestamp: Any,
        *,
        description: str | None = None,
        status_code: str | None = None,
        city: str | None = None,
        facility: str | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> TrackingEventData | None:
        """Build a normalized event, or ``None`` for a bad timestamp."""
        parsed = parse_timestamp(timestamp)
        if parsed is None:
            logger.warning(
                "[%s] dropping event with unreadable timestamp %r",
                self.code,
                timestamp,
            )
            return None
        location: LocationInfo = {}
        if city:
            location["city"] = str(city)
        if facility:
            location["facility"] = str(facility)
        return TrackingEventData(
            status=self.normalize_status(carrier_status),
            timestamp=parsed,
            description=str(description or carrier_status or ""),
            status_code=str(status_code) if status_code is not None else None,
            location=location,
            raw_data=raw_data,
        )

    def current_status(
        self,
        carrier_status: str | None,
        events: list[TrackingEventData],
    ) -> ShipmentStatus | None:
        """Carrier's headline status, else the newest event's status."""
        if carrier_status:
            return self.normalize_status(carrier_status)
        if events:
            return max(events, key=lambda e: e.timestamp).status
        return None

    def webhook_update(
        self,
        payload: Mapping[str, Any],
        *,
        tracking_number: Any,
        carrier_status: str | None,
        timestamp: Any,
        description: str | None = None,
        city: str | None = None,
    ) -> WebhookUpdate:
        """Wrap one webhook status change as a WebhookUpdate.

        A missing timestamp means "now"; a missing tracking number or an
        unreadable timestamp makes the payload invalid.
        """
        if not tracking_number:
            raise InvalidWebhookError(
                f"{self.name} webhook has no tracking number"
            )
        if timestamp in (None, ""):
            timestamp = datetime.now(tz=UTC)
        event = self.build_event(
            carrier_status,
            timestamp,
            description=description,
            city=city,
            raw_data=dict(payload),
        )
        if event is None:
            raise InvalidWebhookError(
                f"{self.name} webhook has an invalid timestamp"
            )
        return WebhookUpdate(
            tracking_number=str(tracking_number),
            status=event.status,
            events=[event],
            raw_data=dict(payload),
        )

    @staticmethod
    def format_phone(phone: str | None) -> str:
        """Normalize a Pakistani phone number to ``92XXXXXXXXXX``."""
        if not phone:
            return ""
        cleaned = re.sub(r"\D", "", phone)
        if cleaned.startswith("0"):
            return "92" + cleaned[1:]
        if not cleaned.startswith("92"):
            return "92" + cleaned
        return cleaned

    @staticmethod
    def format_date(value: date | datetime) -> str:
        if isinstance(value, datetime):
            value = value.astimezone(UTC).date()
        return value.isoformat()

    def estimated_days(
        self, origin_city: str | None, destination_city: str | None
    ) -> int:
        origin = (origin_city or "").strip().lower()
        destination = (destination_city or "").strip().lower()
        if origin == destination:
            return 1
        if origin in self.major_cities and destination in self.major_cities:
            return 2
        return 3

    def estimated_delivery(
        self, origin_city: str | None, destination_city: str | None
    ) -> datetime:
        days = self.estimated_days(origin_city, destination_city)
        return datetime.now(tz=UTC) + timedelta(days=days)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"HTTP {response.status_code}"


def as_decimal(value: Any) -> Decimal:
    """Coerce a carrier amount (number, numeric string or null) to Decimal."""
    if value in (None, ""):
        return Decimal(0)
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return Decimal(0)
