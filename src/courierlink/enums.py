"""Normalized enumerations shared by every carrier integration."""

from __future__ import annotations

from enum import StrEnum


class ShipmentStatus(StrEnum):
    """Carrier-agnostic shipment status."""

    PENDING = "pending"
    LABEL_CREATED = "label_created"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    ATTEMPTED_DELIVERY = "attempted_delivery"
    RETURNED = "returned"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EventSource(StrEnum):
    """Where a tracking event came from."""

    COURIER_API = "courier_api"
    WEBHOOK = "webhook"
    MANUAL = "manual"
    SYSTEM = "system"


class CarrierEnvironment(StrEnum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"


class ServiceType(StrEnum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"
    SAME_DAY = "same_day"
    ECONOMY = "economy"
