"""Litestar example app tests."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

from litestar.testing import TestClient


def _load_example_module():
    path = Path(__file__).resolve().parents[1] / "example" / "app.py"
    spec = importlib.util.spec_from_file_location(
        "courierlink_example",
        path,
    )
    if spec is None or spec.loader is None:
        raise RuntimeError("Cannot load example app module")
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


def test_example_app_books_with_manual_carrier(tmp_path, monkeypatch):
    monkeypatch.setenv(
        "COURIERLINK_DATABASE_URL",
        f"sqlite+aiosqlite:///{tmp_path / 'example.db'}",
    )
    module = _load_example_module()

    assert module.DEFAULT_CARRIER == "manual"

    with TestClient(app=module.app) as client:
        created = client.post(
            "/shipments",
            json={"fulfillment_unit_id": "fu-1", "tracking_number": "HAND-1"},
        )
        tracked = client.get("/track/HAND-1")

    assert created.status_code == 201
    assert created.json()["carrier_code"] == "manual"
    assert created.json()["shipping_cost"] == 200.0
    assert tracked.status_code == 200
    assert tracked.json()["destination"] == {"city": "Lahore"}
