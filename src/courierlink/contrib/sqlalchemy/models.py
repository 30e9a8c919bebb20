"""SQLAlchemy 2.0 async models for shipment tracking."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC.

    Backends without timezone support (SQLite) hand back naive values;
    those are read as UTC so comparisons and dedup stay consistent.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all courierlink models."""


class ShipmentModel(Base):
    """Shipment record implementing the Shipment protocol."""

    __tablename__ = "courierlink_shipments"
    __table_args__ = (
        # At most one live shipment per fulfillment unit.
        Index(
            "uq_courierlink_shipments_live_unit",
            "fulfillment_unit_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_id
    )
    fulfillment_unit_id: Mapped[str] = mapped_column(String(64), index=True)
    order_id: Mapped[str] = mapped_column(String(64), index=True, default="")
    vendor_id: Mapped[str] = mapped_column(String(64), index=True, default="")
    carrier_name: Mapped[str] = mapped_column(String(128), default="")
    carrier_code: Mapped[str] = mapped_column(String(32), index=True)
    tracking_number: Mapped[str] = mapped_column(
        String(128), index=True, default=""
    )
    awb_number: Mapped[str] = mapped_column(String(128), default="")
    booking_id: Mapped[str] = mapped_column(String(128), default="")
    label_url: Mapped[str] = mapped_column(String(1024), default="")
    status: Mapped[str] = mapped_column(
        String(32), index=True, default="pending"
    )
    origin: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    destination: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    package: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    estimated_delivery: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    actual_delivery: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    picked_up_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    last_tracking_update: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    is_cod: Mapped[bool] = mapped_column(Boolean, default=False)
    cod_amount: Mapped[float] = mapped_column(Float, default=0.0)
    cod_collected: Mapped[bool] = mapped_column(Boolean, default=False)
    cod_collected_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    shipping_cost: Mapped[float] = mapped_column(Float, default=0.0)
    insurance_cost: Mapped[float] = mapped_column(Float, default=0.0)
    total_cost: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), default="PKR")
    service_type: Mapped[str] = mapped_column(String(32), default="standard")
    special_instructions: Mapped[str] = mapped_column(Text, default="")
    delivery_attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_delivery_attempts: Mapped[int] = mapped_column(Integer, default=3)
    last_error: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, onupdate=_utcnow
    )


class TrackingEventModel(Base):
    """One immutable tracking event; unique per shipment and timestamp."""

    __tablename__ = "courierlink_tracking_events"
    __table_args__ = (
        UniqueConstraint(
            "shipment_id", "timestamp", name="uq_tracking_event_timestamp"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_id
    )
    shipment_id: Mapped[str] = mapped_column(String(36), index=True)
    status: Mapped[str] = mapped_column(String(32))
    status_code: Mapped[str | None] = mapped_column(
        String(64), nullable=True, default=None
    )
    description: Mapped[str] = mapped_column(Text, default="")
    location: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    source: Mapped[str] = mapped_column(String(20))
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )
    signed_by: Mapped[str | None] = mapped_column(
        String(128), nullable=True, default=None
    )
    notes: Mapped[str | None] = mapped_column(
        Text, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow
    )


class CarrierConfigModel(Base):
    """Stored carrier configuration.

    Nested settings live in JSON columns; decimal amounts are kept as
    strings and parsed back by ``CarrierConfig``.
    """

    __tablename__ = "courierlink_carrier_configs"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    display_name: Mapped[str | None] = mapped_column(
        String(128), nullable=True, default=None
    )
    logo: Mapped[str | None] = mapped_column(
        String(512), nullable=True, default=None
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    environment: Mapped[str] = mapped_column(String(16), default="sandbox")
    priority: Mapped[int] = mapped_column(Integer, default=0)
    credentials: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    services: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    supported_cities: Mapped[list[str]] = mapped_column(JSON, default=list)
    supported_countries: Mapped[list[str]] = mapped_column(
        JSON, default=list
    )
    rate_card: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list
    )
    default_rate: Mapped[str | None] = mapped_column(
        String(32), nullable=True, default=None
    )
    fuel_surcharge_percent: Mapped[str] = mapped_column(
        String(32), default="0"
    )
    webhook_secret: Mapped[str | None] = mapped_column(
        String(255), nullable=True, default=None
    )
    status_mapping: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    support_phone: Mapped[str | None] = mapped_column(
        String(32), nullable=True, default=None
    )
    support_email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, onupdate=_utcnow
    )


class WebhookRetryModel(Base):
    """Webhook retry queue entry."""

    __tablename__ = "courierlink_webhook_retries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_id
    )
    carrier_code: Mapped[str] = mapped_column(String(32), index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    headers: Mapped[dict[str, Any]] = mapped_column(JSON)
    attempts: Mapped[int] = mapped_column(default=0)
    next_retry_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=None
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, default=None
    )
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow
    )
