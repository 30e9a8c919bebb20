"""Carrier registry: resolves carrier codes to configured adapters."""

from __future__ import annotations

import logging

import httpx

from courierlink.carrier_config import CarrierConfig
from courierlink.carriers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    BaseCarrierAdapter,
)
from courierlink.carriers.leopards import LeopardsAdapter
from courierlink.carriers.manual import ManualAdapter
from courierlink.carriers.postex import PostExAdapter
from courierlink.carriers.tcs import TCSAdapter
from courierlink.exceptions import (
    CarrierNotConfiguredError,
    UnsupportedCarrierError,
)
from courierlink.protocols import CarrierConfigStore

logger = logging.getLogger(__name__)

MANUAL_CARRIER = ManualAdapter.code

ADAPTERS: dict[str, type[BaseCarrierAdapter]] = {
    adapter.code: adapter
    for adapter in (TCSAdapter, LeopardsAdapter, PostExAdapter, ManualAdapter)
}


def default_manual_config() -> CarrierConfig:
    """Built-in configuration used when no ``manual`` row is stored."""
    return CarrierConfig(
        code=MANUAL_CARRIER, name=ManualAdapter.display_name, is_active=False
    )


def tracking_url(carrier_code: str, tracking_number: str) -> str | None:
    adapter = ADAPTERS.get((carrier_code or "").lower())
    return adapter.tracking_url(tracking_number) if adapter else None


def _priority_order(config: CarrierConfig) -> tuple[int, str]:
    return (-config.priority, config.code)


class CarrierRegistry:
    """Closed mapping of carrier codes to adapter classes.

    Adapters are built per call from the stored configuration so that
    credential or rate card edits take effect without a restart.
    """

    def __init__(
        self,
        store: CarrierConfigStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self._http_client = http_client
        self._timeout = timeout

    @staticmethod
    def supported_codes() -> list[str]:
        return sorted(ADAPTERS)

    @staticmethod
    def adapter_class(code: str | None) -> type[BaseCarrierAdapter]:
        adapter = ADAPTERS.get((code or "").strip().lower())
        if adapter is None:
            raise UnsupportedCarrierError(code)
        return adapter

    def build(self, config: CarrierConfig) -> BaseCarrierAdapter:
        adapter = self.adapter_class(config.code)
        return adapter(
            config, http_client=self._http_client, timeout=self._timeout
        )

    async def get_adapter(self, code: str | None) -> BaseCarrierAdapter:
        """Adapter for an active carrier.

        Raises UnsupportedCarrierError for codes outside the closed set and
        CarrierNotConfiguredError when no active configuration exists. The
        manual carrier always resolves.
        """
        adapter = self.adapter_class(code)
        config = await self.store.get_active(adapter.code)
        if config is None:
            if adapter.code != MANUAL_CARRIER:
                raise CarrierNotConfiguredError(adapter.code)
            config = default_manual_config()
        return self.build(config)

    async def all_active(
        self,
    ) -> list[tuple[CarrierConfig, BaseCarrierAdapter]]:
        """Every active carrier with an adapter, highest priority first."""
        pairs = []
        configs = await self.store.list_active()
        for config in sorted(configs, key=_priority_order):
            if config.code not in ADAPTERS:
                logger.debug(
                    "Skipping active carrier %s: no adapter", config.code
                )
                continue
            pairs.append((config, self.build(config)))
        return pairs
