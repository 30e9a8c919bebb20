"""Tests for multi-carrier rate comparison."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import InMemoryCarrierStore, make_carrier
from courierlink.carriers.postex import PostExAdapter
from courierlink.exceptions import CarrierNotConfiguredError
from courierlink.rates import compare_rates, quote_carrier
from courierlink.registry import CarrierRegistry
from courierlink.types import RateOptions

KHI = {"city": "Karachi"}
LHE = {"city": "Lahore"}


def tcs_tariff(carrier_api, total):
    carrier_api.add(
        "GET",
        "https://tcs.test/tariff/get-tariff",
        {
            "returnStatus": {"status": "SUCCESS"},
            "tariffDetail": {"totalCharges": total},
        },
    )


async def test_cheapest_first_and_failing_carrier_left_out(
    carrier_api, http_client
):
    store = InMemoryCarrierStore(
        [
            make_carrier("tcs", priority=3),
            make_carrier("leopards", priority=2),
            make_carrier("postex", priority=1, rate_card=[]),
        ]
    )
    registry = CarrierRegistry(store, http_client=http_client)
    tcs_tariff(carrier_api, 300)

    quotes = await compare_rates(registry, KHI, LHE, 0.4)

    assert [(q.carrier_code, q.rate) for q in quotes] == [
        ("leopards", Decimal(189)),
        ("tcs", Decimal(300)),
    ]
    assert quotes[0].from_rate_card is True
    assert quotes[0].carrier_name == "Leopards Courier"


async def test_raising_adapter_is_skipped(registry, monkeypatch):
    monkeypatch.setattr(
        PostExAdapter,
        "calculate_rate",
        AsyncMock(side_effect=RuntimeError("boom")),
    )
    quotes = await compare_rates(registry, KHI, LHE, 0.4)
    assert [q.carrier_code for q in quotes] == ["tcs", "leopards"]


async def test_equal_rates_keep_priority_order(registry):
    quotes = await compare_rates(registry, KHI, LHE, 0.4)
    assert [q.carrier_code for q in quotes] == ["tcs", "leopards", "postex"]
    assert {q.rate for q in quotes} == {Decimal(189)}


async def test_overweight_parcel_gets_no_quotes(registry, carrier_api):
    quotes = await compare_rates(registry, KHI, LHE, 45)
    assert quotes == []
    assert carrier_api.requests == []


async def test_cod_excludes_carriers_without_cod(http_client):
    store = InMemoryCarrierStore(
        [
            make_carrier("tcs", settings={"supports_cod": False}),
            make_carrier("leopards"),
        ]
    )
    registry = CarrierRegistry(store, http_client=http_client)
    quotes = await compare_rates(
        registry, KHI, LHE, 0.4, RateOptions(is_cod=True, cod_amount=1000)
    )
    assert [q.carrier_code for q in quotes] == ["leopards"]


async def test_no_active_carriers(http_client):
    registry = CarrierRegistry(InMemoryCarrierStore(), http_client=http_client)
    assert await compare_rates(registry, KHI, LHE, 1) == []


async def test_quote_single_carrier(registry, carrier_api):
    tcs_tariff(carrier_api, "199")
    quote = await quote_carrier(registry, "tcs", KHI, LHE, 0.4)
    assert quote.rate == Decimal(199)
    assert quote.carrier_code == "tcs"


async def test_quote_single_carrier_not_configured(http_client):
    registry = CarrierRegistry(InMemoryCarrierStore(), http_client=http_client)
    with pytest.raises(CarrierNotConfiguredError):
        await quote_carrier(registry, "tcs", KHI, LHE, 0.4)
