"""Customer notification tests."""

import logging
from unittest.mock import AsyncMock

from conftest import DemoShipment, RecordingSender, UnitResolver
from courierlink.notifier import DeliveryNotifier, LoggingNotificationSender


def shipment():
    return DemoShipment(
        id="s-1", fulfillment_unit_id="fu-1", carrier_code="tcs"
    )


async def test_delivered_message():
    sender = RecordingSender()
    notifier = DeliveryNotifier(sender=sender, resolver=UnitResolver())

    assert await notifier.notify(shipment(), "delivered") is True

    [message] = sender.messages
    assert message["kind"] == "delivered"
    assert message["recipient_email"] == "ayesha@example.com"
    assert "SO-1 has been delivered" in message["message"]


async def test_silent_statuses():
    sender = RecordingSender()
    notifier = DeliveryNotifier(sender=sender, resolver=UnitResolver())
    for status in ("pending", "picked_up", "in_transit", "cancelled"):
        assert await notifier.notify(shipment(), status) is False
    assert sender.messages == []


async def test_attempted_delivery_kind():
    sender = RecordingSender()
    notifier = DeliveryNotifier(sender=sender, resolver=UnitResolver())
    await notifier.notify(shipment(), "attempted_delivery")
    assert sender.messages[0]["kind"] == "delivery_attempted"


async def test_no_contact_details():
    resolver = UnitResolver()
    unit = resolver.units["fu-1"]
    unit.customer_email = None
    unit.customer_phone = None
    sender = RecordingSender()
    notifier = DeliveryNotifier(sender=sender, resolver=resolver)

    assert await notifier.notify(shipment(), "delivered") is False
    assert sender.messages == []


async def test_without_resolver():
    notifier = DeliveryNotifier(sender=RecordingSender())
    assert await notifier.notify(shipment(), "delivered") is False


async def test_sender_failure_is_logged(caplog):
    sender = AsyncMock()
    sender.send = AsyncMock(side_effect=ConnectionError("smtp down"))
    notifier = DeliveryNotifier(sender=sender, resolver=UnitResolver())

    with caplog.at_level(logging.ERROR, logger="courierlink.notifier"):
        assert await notifier.notify(shipment(), "delivered") is False

    assert "Error sending delivered notification" in caplog.text


async def test_logging_sender(caplog):
    with caplog.at_level(logging.INFO, logger="courierlink.notifier"):
        await LoggingNotificationSender().send(
            kind="delivered",
            recipient_email=None,
            recipient_phone="03001234567",
            message="Delivered",
        )
    assert "03001234567" in caplog.text
