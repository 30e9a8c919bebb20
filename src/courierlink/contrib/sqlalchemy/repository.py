"""SQLAlchemy 2.0 async repository implementations."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courierlink.carrier_config import CarrierConfig
from courierlink.contrib.sqlalchemy.models import (
    CarrierConfigModel,
    ShipmentModel,
    TrackingEventModel,
)
from courierlink.enums import EventSource, ShipmentStatus
from courierlink.exceptions import DuplicateShipmentError
from courierlink.types import TrackingEventData

# Managed by the database, never copied from a CarrierConfig.
_TIMESTAMP_FIELDS = {"created_at", "updated_at"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SQLAlchemyShipmentRepository:
    """Shipment repository backed by SQLAlchemy async sessions.

    Implements the ShipmentRepository protocol.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, shipment_id: str) -> ShipmentModel:
        """Get a shipment by ID. Raises KeyError if not found."""
        async with self._session_factory() as session:
            result = await session.get(ShipmentModel, shipment_id)
            if result is None:
                raise KeyError(shipment_id)
            session.expunge(result)
            return result

    async def get_by_tracking_number(
        self, tracking_number: str
    ) -> ShipmentModel | None:
        async with self._session_factory() as session:
            stmt = (
                select(ShipmentModel)
                .where(ShipmentModel.tracking_number == tracking_number)
                .order_by(ShipmentModel.created_at.desc())
                .limit(1)
            )
            shipment = (await session.execute(stmt)).scalars().first()
            if shipment is not None:
                session.expunge(shipment)
            return shipment

    async def get_active_for_unit(
        self, fulfillment_unit_id: str
    ) -> ShipmentModel | None:
        async with self._session_factory() as session:
            stmt = (
                select(ShipmentModel)
                .where(
                    ShipmentModel.fulfillment_unit_id == fulfillment_unit_id
                )
                .where(ShipmentModel.status != str(ShipmentStatus.CANCELLED))
                .order_by(ShipmentModel.created_at.desc())
                .limit(1)
            )
            shipment = (await session.execute(stmt)).scalars().first()
            if shipment is not None:
                session.expunge(shipment)
            return shipment

    async def create(self, **kwargs) -> ShipmentModel:
        """Create a new shipment record.

        Raises DuplicateShipmentError when the unique index rejects a
        second live shipment for the same fulfillment unit.
        """
        # Ensure status is a string
        if "status" in kwargs:
            kwargs["status"] = str(kwargs["status"])
        async with self._session_factory() as session:
            shipment = ShipmentModel(**kwargs)
            session.add(shipment)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                unit_id = kwargs.get("fulfillment_unit_id", "")
                existing = await self.get_active_for_unit(unit_id)
                if existing is None:
                    raise
                raise DuplicateShipmentError(unit_id, existing.id) from exc
            await session.refresh(shipment)
            session.expunge(shipment)
            return shipment

    async def save(self, shipment: ShipmentModel) -> ShipmentModel:
        """Save an existing shipment (merge and commit)."""
        async with self._session_factory() as session:
            merged = await session.merge(shipment)
            await session.commit()
            await session.refresh(merged)
            session.expunge(merged)
            return merged

    async def list_due_for_tracking(
        self,
        statuses: Sequence[str],
        stale_before: datetime,
        limit: int,
    ) -> list[ShipmentModel]:
        async with self._session_factory() as session:
            stmt = (
                select(ShipmentModel)
                .where(ShipmentModel.status.in_([str(s) for s in statuses]))
                .where(
                    or_(
                        ShipmentModel.last_tracking_update.is_(None),
                        ShipmentModel.last_tracking_update < stale_before,
                    )
                )
                .order_by(
                    ShipmentModel.last_tracking_update.asc().nulls_first()
                )
                .limit(limit)
            )
            shipments = list((await session.execute(stmt)).scalars().all())
            for s in shipments:
                session.expunge(s)
            return shipments

    async def list_shipments(
        self,
        *,
        vendor_id: str | None = None,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[ShipmentModel], int]:
        """Newest first page of shipments plus the total match count."""
        filters = []
        if vendor_id is not None:
            filters.append(ShipmentModel.vendor_id == vendor_id)
        if status is not None:
            filters.append(ShipmentModel.status == str(status))

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(ShipmentModel).where(*filters)
            )
            stmt = (
                select(ShipmentModel)
                .where(*filters)
                .order_by(ShipmentModel.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            shipments = list((await session.execute(stmt)).scalars().all())
            for s in shipments:
                session.expunge(s)
            return shipments, int(total or 0)

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_factory() as session:
            stmt = select(ShipmentModel.status, func.count()).group_by(
                ShipmentModel.status
            )
            rows = (await session.execute(stmt)).all()
            return {status: count for status, count in rows}


class SQLAlchemyTrackingEventStore:
    """Append-only tracking events backed by SQLAlchemy.

    Implements the TrackingEventStore protocol. Events whose timestamp is
    already stored for the shipment are skipped; the unique constraint on
    ``(shipment_id, timestamp)`` backs this up.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        shipment_id: str,
        events: Sequence[TrackingEventData],
        source: EventSource,
    ) -> list[TrackingEventModel]:
        incoming: dict[datetime, TrackingEventData] = {}
        for event in events:
            incoming.setdefault(_as_utc(event.timestamp), event)
        if not incoming:
            return []

        async with self._session_factory() as session:
            stmt = select(TrackingEventModel.timestamp).where(
                TrackingEventModel.shipment_id == shipment_id,
                TrackingEventModel.timestamp.in_(list(incoming)),
            )
            existing = {
                _as_utc(ts) for ts in (await session.execute(stmt)).scalars()
            }
            rows = [
                TrackingEventModel(
                    shipment_id=shipment_id,
                    status=str(event.status),
                    status_code=event.status_code,
                    description=event.description or "",
                    location=dict(event.location or {}),
                    timestamp=timestamp,
                    source=str(source),
                    raw_data=event.raw_data,
                    signed_by=event.signed_by,
                    notes=event.notes,
                )
                for timestamp, event in incoming.items()
                if timestamp not in existing
            ]
            if not rows:
                return []
            session.add_all(rows)
            await session.commit()
            for row in rows:
                await session.refresh(row)
                session.expunge(row)
            return rows

    async def timeline(self, shipment_id: str) -> list[TrackingEventModel]:
        """All events of a shipment, oldest first."""
        async with self._session_factory() as session:
            stmt = (
                select(TrackingEventModel)
                .where(TrackingEventModel.shipment_id == shipment_id)
                .order_by(
                    TrackingEventModel.timestamp.asc(),
                    TrackingEventModel.created_at.asc(),
                )
            )
            events = list((await session.execute(stmt)).scalars().all())
            for e in events:
                session.expunge(e)
            return events

    async def latest(self, shipment_id: str) -> TrackingEventModel | None:
        async with self._session_factory() as session:
            stmt = (
                select(TrackingEventModel)
                .where(TrackingEventModel.shipment_id == shipment_id)
                .order_by(TrackingEventModel.timestamp.desc())
                .limit(1)
            )
            event = (await session.execute(stmt)).scalars().first()
            if event is not None:
                session.expunge(event)
            return event


def _to_config(row: CarrierConfigModel) -> CarrierConfig:
    return CarrierConfig.model_validate(row)


def _column_values(config: CarrierConfig) -> dict[str, Any]:
    return config.model_dump(mode="json", exclude=_TIMESTAMP_FIELDS)


class SQLAlchemyCarrierConfigStore:
    """Carrier configuration store backed by SQLAlchemy.

    Implements the CarrierConfigStore protocol. Rows are returned as
    validated ``CarrierConfig`` models, never as ORM instances.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get(self, code: str) -> CarrierConfig | None:
        async with self._session_factory() as session:
            row = await session.get(CarrierConfigModel, code.lower())
            return _to_config(row) if row is not None else None

    async def get_active(self, code: str) -> CarrierConfig | None:
        config = await self.get(code)
        if config is None or not config.is_active:
            return None
        return config

    async def list_active(self) -> list[CarrierConfig]:
        """Active configurations, highest priority first."""
        async with self._session_factory() as session:
            stmt = (
                select(CarrierConfigModel)
                .where(CarrierConfigModel.is_active.is_(True))
                .order_by(
                    CarrierConfigModel.priority.desc(),
                    CarrierConfigModel.code.asc(),
                )
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_config(row) for row in rows]

    async def list_all(self) -> list[CarrierConfig]:
        async with self._session_factory() as session:
            stmt = select(CarrierConfigModel).order_by(
                CarrierConfigModel.priority.desc(),
                CarrierConfigModel.code.asc(),
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_config(row) for row in rows]

    async def create(self, config: CarrierConfig) -> CarrierConfig:
        async with self._session_factory() as session:
            row = CarrierConfigModel(**_column_values(config))
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_config(row)

    async def update(
        self, code: str, changes: dict[str, Any]
    ) -> CarrierConfig:
        """Apply changes. Raises KeyError if not found."""
        async with self._session_factory() as session:
            row = await session.get(CarrierConfigModel, code.lower())
            if row is None:
                raise KeyError(code)
            merged = CarrierConfig.model_validate(
                {**_to_config(row).model_dump(), **changes, "code": row.code}
            )
            for key, value in _column_values(merged).items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return _to_config(row)

    async def delete(self, code: str) -> None:
        """Remove a configuration. Raises KeyError if not found."""
        async with self._session_factory() as session:
            row = await session.get(CarrierConfigModel, code.lower())
            if row is None:
                raise KeyError(code)
            await session.delete(row)
            await session.commit()
