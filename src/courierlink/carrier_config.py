"""Carrier configuration: credentials, rate card and status mapping."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courierlink.enums import CarrierEnvironment, ShipmentStatus


WILDCARD = "*"


def _city_matches(pattern: str, city: str) -> bool:
    pattern = pattern.strip().lower()
    return pattern == WILDCARD or pattern == city.strip().lower()


class RateSlab(BaseModel):
    """Flat price for parcels up to ``max_weight`` kilograms."""

    max_weight: Decimal
    rate: Decimal


class RateCardEntry(BaseModel):
    from_city: str
    to_city: str
    weight_slabs: list[RateSlab] = Field(default_factory=list)
    base_rate: Decimal | None = None
    per_kg_rate: Decimal | None = None

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in (self.from_city.strip(), self.to_city.strip())

    def matches(self, from_city: str, to_city: str) -> bool:
        """Case-insensitive city-pair match; ``*`` stands for any city."""
        return _city_matches(self.from_city, from_city) and _city_matches(
            self.to_city, to_city
        )


class CarrierCredentials(BaseModel):
    api_key: str | None = None
    api_secret: str | None = None
    account_number: str | None = None
    username: str | None = None
    password: str | None = None
    base_url: str | None = None
    test_base_url: str | None = None
    cost_center_id: str | None = None
    pickup_address: str | None = None


class CarrierService(BaseModel):
    code: str
    name: str
    description: str | None = None
    estimated_days: int | None = None
    is_active: bool = True


class CarrierSettings(BaseModel):
    """Operational limits and switches for one carrier."""

    auto_fetch_tracking: bool = True
    tracking_fetch_interval: int = 60
    max_tracking_retries: int = 3
    supports_cod: bool = True
    supports_pickup: bool = True
    supports_return: bool = True
    max_weight: Decimal = Decimal(30)
    max_declared_value: Decimal = Decimal(500000)


class CarrierConfig(BaseModel):
    """Administrator-managed settings for one carrier.

    ``code`` is globally unique and is the key the registry resolves
    adapters by.
    """

    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    display_name: str | None = None
    logo: str | None = None
    is_active: bool = False
    environment: CarrierEnvironment = CarrierEnvironment.SANDBOX
    credentials: CarrierCredentials = Field(
        default_factory=CarrierCredentials
    )
    services: list[CarrierService] = Field(default_factory=list)
    supported_cities: list[str] = Field(default_factory=list)
    supported_countries: list[str] = Field(default_factory=lambda: ["PK"])
    rate_card: list[RateCardEntry] = Field(default_factory=list)
    default_rate: Decimal | None = None
    fuel_surcharge_percent: Decimal = Decimal(0)
    webhook_secret: str | None = None
    status_mapping: dict[str, ShipmentStatus] = Field(default_factory=dict)
    settings: CarrierSettings = Field(default_factory=CarrierSettings)
    support_phone: str | None = None
    support_email: str | None = None
    priority: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("code")
    @classmethod
    def _lowercase_code(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("status_mapping", mode="before")
    @classmethod
    def _drop_unknown_statuses(cls, value):
        # Rows pointing at unknown statuses are dropped, not rejected.
        if not isinstance(value, dict):
            return value
        known = {status.value for status in ShipmentStatus}
        return {
            str(key).strip().lower(): str(target)
            for key, target in value.items()
            if str(target) in known
        }

    def find_rate_entry(
        self, from_city: str, to_city: str
    ) -> RateCardEntry | None:
        """Exact city pairs win over wildcard entries."""
        fallback = None
        for entry in self.rate_card:
            if not entry.matches(from_city, to_city):
                continue
            if not entry.is_wildcard:
                return entry
            if fallback is None:
                fallback = entry
        return fallback

    def with_surcharge(self, amount: Decimal) -> int:
        """Apply the fuel surcharge and round up to a whole amount."""
        surcharge = amount * self.fuel_surcharge_percent / Decimal(100)
        return math.ceil(amount + surcharge)

    def calculate_rate(
        self, from_city: str, to_city: str, weight: float | Decimal
    ) -> int | None:
        """Price a parcel from the stored rate card.

        The first weight slab whose ``max_weight`` covers the parcel wins
        (boundary inclusive). Without slabs the entry's base rate plus a
        per-kilogram rate beyond the first kilogram is used. When no entry
        matches the route the carrier's ``default_rate`` applies. Returns
        ``None`` when nothing in the configuration prices the parcel.
        """
        weight = Decimal(str(weight))
        entry = self.find_rate_entry(from_city or "", to_city or "")

        if entry is not None:
            slabs = sorted(entry.weight_slabs, key=lambda s: s.max_weight)
            for slab in slabs:
                if weight <= slab.max_weight:
                    return self.with_surcharge(slab.rate)

            if entry.base_rate is not None:
                rate = entry.base_rate
                if entry.per_kg_rate:
                    rate += entry.per_kg_rate * max(Decimal(0), weight - 1)
                return self.with_surcharge(rate)

        if self.default_rate is not None:
            return self.with_surcharge(self.default_rate)

        return None

    def accepts(self, weight: float | Decimal, is_cod: bool = False) -> bool:
        """Whether the operational settings allow this parcel."""
        if Decimal(str(weight)) > self.settings.max_weight:
            return False
        if is_cod and not self.settings.supports_cod:
            return False
        return True

    def serves_city(self, city: str | None) -> bool:
        if not self.supported_cities or not city:
            return True
        wanted = city.strip().lower()
        return any(c.strip().lower() == wanted for c in self.supported_cities)
