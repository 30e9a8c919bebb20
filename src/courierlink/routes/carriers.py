"""Carrier endpoints: pickups and carrier configuration admin."""

from __future__ import annotations

import logging
from typing import Annotated, Any, ClassVar

from litestar import Controller, delete, get, post, put
from litestar.exceptions import ValidationException
from litestar.params import Dependency
from pydantic import ValidationError

from courierlink.carrier_config import CarrierConfig
from courierlink.exceptions import (
    CarrierConfigExistsError,
    CarrierConfigNotFoundError,
    CarrierRejectedError,
)
from courierlink.protocols import CarrierConfigStore
from courierlink.registry import CarrierRegistry
from courierlink.schemas import (
    PickupRequest,
    PickupResponse,
    carrier_config_response,
)
from courierlink.types import PickupDetails

logger = logging.getLogger(__name__)

Store = Annotated[CarrierConfigStore, Dependency(skip_validation=True)]


class PickupController(Controller):
    """Pickup scheduling with a carrier."""

    path = "/carriers"
    tags: ClassVar[list[str]] = ["carriers"]

    @post("/{carrier_code:str}/pickups")
    async def schedule_pickup(
        self,
        carrier_code: str,
        data: PickupRequest,
        registry: Annotated[
            CarrierRegistry, Dependency(skip_validation=True)
        ],
    ) -> PickupResponse:
        """Ask a carrier to collect parcels from a vendor address."""
        adapter = await registry.get_adapter(carrier_code)
        if not adapter.config.settings.supports_pickup:
            raise CarrierRejectedError(
                adapter.code, f"{adapter.name} does not offer pickups"
            )

        result = await adapter.schedule_pickup(
            PickupDetails(
                date=data.pickup_date,
                address=data.address,
                city=data.city,
                contact_name=data.contact_name,
                phone=data.phone,
                time_slot=data.time_slot,
                shipment_count=data.shipment_count,
                instructions=data.instructions,
            )
        )
        if not result.success:
            raise CarrierRejectedError(
                adapter.code, result.error or "Pickup scheduling failed"
            )
        return PickupResponse(
            carrier_code=adapter.code,
            pickup_id=result.pickup_id,
            pickup_date=result.pickup_date or data.pickup_date,
            pickup_time=result.pickup_time or data.time_slot,
        )


class CarrierAdminController(Controller):
    """Carrier configuration CRUD. Credentials are never echoed back."""

    path = "/admin/carriers"
    tags: ClassVar[list[str]] = ["admin"]

    @get("/")
    async def list_carrier_configs(
        self, carrier_store: Store
    ) -> list[dict[str, Any]]:
        configs = await carrier_store.list_all()
        return [carrier_config_response(c) for c in configs]

    @post("/")
    async def create_carrier_config(
        self, data: CarrierConfig, carrier_store: Store
    ) -> dict[str, Any]:
        if await carrier_store.get(data.code) is not None:
            raise CarrierConfigExistsError(data.code)
        created = await carrier_store.create(data)
        logger.info("Created carrier configuration %s", created.code)
        return carrier_config_response(created)

    @get("/{code:str}")
    async def get_carrier_config(
        self, code: str, carrier_store: Store
    ) -> dict[str, Any]:
        config = await carrier_store.get(code.lower())
        if config is None:
            raise CarrierConfigNotFoundError(code)
        return carrier_config_response(config)

    @put("/{code:str}")
    async def update_carrier_config(
        self, code: str, data: dict[str, Any], carrier_store: Store
    ) -> dict[str, Any]:
        """Partial update; omitted fields keep their stored values.

        Secrets not present in the body are preserved.
        """
        code = code.lower()
        current = await carrier_store.get(code)
        if current is None:
            raise CarrierConfigNotFoundError(code)

        changes = {k: v for k, v in data.items() if k != "code"}
        if isinstance(changes.get("credentials"), dict):
            changes["credentials"] = {
                **current.credentials.model_dump(),
                **changes["credentials"],
            }
        try:
            merged = CarrierConfig.model_validate(
                {**current.model_dump(), **changes}
            )
        except ValidationError as exc:
            raise ValidationException(
                detail=f"Invalid configuration for carrier {code!r}",
                extra=exc.errors(include_url=False, include_context=False),
            ) from exc

        try:
            updated = await carrier_store.update(
                code, merged.model_dump(include=set(changes))
            )
        except KeyError as exc:
            raise CarrierConfigNotFoundError(code) from exc
        logger.info(
            "Updated carrier configuration %s: %s", code, sorted(changes)
        )
        return carrier_config_response(updated)

    @delete("/{code:str}")
    async def delete_carrier_config(
        self, code: str, carrier_store: Store
    ) -> None:
        try:
            await carrier_store.delete(code.lower())
        except KeyError as exc:
            raise CarrierConfigNotFoundError(code) from exc
        logger.info("Deleted carrier configuration %s", code)
