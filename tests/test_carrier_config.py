"""Tests for carrier configuration and rate card pricing."""

from decimal import Decimal

import pytest

from conftest import make_carrier
from courierlink.carrier_config import CarrierConfig
from courierlink.enums import ShipmentStatus


@pytest.mark.parametrize(
    ("weight", "expected"),
    [
        (0.3, 189),
        (0.5, 189),
        (0.51, 231),
        (1, 231),
        (1.01, 368),
        (3, 368),
    ],
)
def test_slab_pricing_is_boundary_inclusive(weight, expected):
    carrier = make_carrier("tcs")
    assert carrier.calculate_rate("Karachi", "Lahore", weight) == expected


def test_route_match_ignores_case_and_whitespace():
    carrier = make_carrier("tcs")
    assert carrier.calculate_rate(" karachi", "LAHORE ", 0.4) == 189


def test_weight_beyond_last_slab_without_fallback_is_unpriced():
    carrier = make_carrier("tcs")
    assert carrier.calculate_rate("Karachi", "Lahore", 4) is None


def test_base_and_per_kg_rate():
    """Base rate covers the first kilogram."""
    carrier = make_carrier(
        "leopards",
        rate_card=[
            {
                "from_city": "Lahore",
                "to_city": "Multan",
                "base_rate": "200",
                "per_kg_rate": "50",
            }
        ],
        fuel_surcharge_percent="0",
    )
    assert carrier.calculate_rate("Lahore", "Multan", 3) == 300
    assert carrier.calculate_rate("Lahore", "Multan", 0.5) == 200


def test_wildcard_route_covers_any_city():
    carrier = make_carrier(
        "leopards",
        rate_card=[
            {"from_city": "*", "to_city": "*", "base_rate": "300"},
            {"from_city": "Lahore", "to_city": "Multan", "base_rate": "200"},
            {"from_city": "Karachi", "to_city": "*", "base_rate": "250"},
        ],
        fuel_surcharge_percent="0",
    )
    assert carrier.calculate_rate("Lahore", "Multan", 1) == 200
    assert carrier.calculate_rate("Quetta", "Sukkur", 1) == 300
    assert carrier.find_rate_entry("Karachi", "Gilgit").is_wildcard
    assert not carrier.find_rate_entry("lahore", "multan").is_wildcard


def test_default_rate_used_for_unknown_route():
    carrier = make_carrier("postex", default_rate="250")
    # 250 + 5 % fuel surcharge
    assert carrier.calculate_rate("Quetta", "Sukkur", 1) == 263


def test_unknown_route_without_default_rate():
    carrier = make_carrier("postex")
    assert carrier.calculate_rate("Quetta", "Sukkur", 1) is None


def test_surcharge_rounds_up():
    carrier = make_carrier("tcs", fuel_surcharge_percent="12.5")
    assert carrier.with_surcharge(Decimal("101")) == 114


def test_code_is_lowercased():
    carrier = CarrierConfig(code=" TCS ", name="TCS")
    assert carrier.code == "tcs"


def test_status_mapping_drops_unknown_targets():
    carrier = make_carrier(
        "tcs",
        status_mapping={
            "Arrived Hub": "in_transit",
            "Weird": "teleported",
        },
    )
    assert carrier.status_mapping == {
        "arrived hub": ShipmentStatus.IN_TRANSIT
    }


def test_new_carrier_is_inactive_by_default():
    carrier = CarrierConfig(code="tcs", name="TCS")
    assert carrier.is_active is False
    assert carrier.supported_countries == ["PK"]


class TestAccepts:
    def test_within_weight_limit(self):
        assert make_carrier("tcs").accepts(29.9) is True

    def test_over_weight_limit(self):
        assert make_carrier("tcs").accepts(31) is False

    def test_cod_not_supported(self):
        carrier = make_carrier("tcs", settings={"supports_cod": False})
        assert carrier.accepts(1, is_cod=True) is False
        assert carrier.accepts(1, is_cod=False) is True


class TestServesCity:
    def test_empty_list_serves_everywhere(self):
        assert make_carrier("tcs").serves_city("Gwadar") is True

    def test_restricted_list(self):
        carrier = make_carrier("tcs", supported_cities=["Karachi", "Lahore"])
        assert carrier.serves_city("lahore") is True
        assert carrier.serves_city("Gwadar") is False

    def test_missing_city_is_not_rejected(self):
        carrier = make_carrier("tcs", supported_cities=["Karachi"])
        assert carrier.serves_city(None) is True
