"""Rate comparison across active carriers."""

from __future__ import annotations

import asyncio
import logging

from courierlink.exceptions import CourierLinkError
from courierlink.registry import CarrierRegistry
from courierlink.types import AddressInfo, RateOptions, RateQuote

logger = logging.getLogger(__name__)


async def quote_carrier(
    registry: CarrierRegistry,
    carrier_code: str,
    origin: AddressInfo,
    destination: AddressInfo,
    weight: float,
    options: RateOptions | None = None,
) -> RateQuote:
    """Quote a single carrier. Registry errors propagate."""
    adapter = await registry.get_adapter(carrier_code)
    quote = await adapter.calculate_rate(origin, destination, weight, options)
    quote.carrier_code = adapter.config.code
    quote.carrier_name = adapter.config.display_name or adapter.name
    return quote


async def compare_rates(
    registry: CarrierRegistry,
    origin: AddressInfo,
    destination: AddressInfo,
    weight: float,
    options: RateOptions | None = None,
) -> list[RateQuote]:
    """Ask every active carrier for a quote, cheapest first.

    Carriers are queried concurrently. A carrier that raises, returns a
    failure, or whose settings exclude the parcel is left out of the
    result; an empty list is a valid answer. Equal rates keep carrier
    priority order.
    """
    options = options or RateOptions()
    carriers = [
        (config, adapter)
        for config, adapter in await registry.all_active()
        if config.accepts(weight, options.is_cod)
    ]
    if not carriers:
        return []

    results = await asyncio.gather(
        *(
            adapter.calculate_rate(origin, destination, weight, options)
            for _, adapter in carriers
        ),
        return_exceptions=True,
    )

    quotes: list[RateQuote] = []
    for (config, adapter), result in zip(carriers, results, strict=True):
        if isinstance(result, Exception):
            level = (
                logging.WARNING
                if isinstance(result, CourierLinkError)
                else logging.ERROR
            )
            logger.log(
                level,
                "Error getting rate from %s: %s",
                config.code,
                result,
                exc_info=result if level == logging.ERROR else None,
            )
            continue
        if isinstance(result, BaseException):
            raise result
        if not result.success:
            logger.info("No rate from %s: %s", config.code, result.error)
            continue
        result.carrier_code = config.code
        result.carrier_name = config.display_name or adapter.name
        quotes.append(result)

    return sorted(quotes, key=lambda quote: quote.rate)
