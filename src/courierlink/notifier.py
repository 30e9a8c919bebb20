"""Customer notifications for delivery milestones."""

from __future__ import annotations

import logging

from courierlink.enums import ShipmentStatus
from courierlink.protocols import (
    FulfillmentUnitResolver,
    NotificationSender,
    Shipment,
)

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATES: dict[ShipmentStatus, tuple[str, str]] = {
    ShipmentStatus.OUT_FOR_DELIVERY: (
        "out_for_delivery",
        "Hi {name}, your order {reference} is out for delivery today!",
    ),
    ShipmentStatus.DELIVERED: (
        "delivered",
        "Hi {name}, your order {reference} has been delivered. "
        "We hope you enjoy your purchase!",
    ),
    ShipmentStatus.ATTEMPTED_DELIVERY: (
        "delivery_attempted",
        "Hi {name}, delivery was attempted for your order {reference}. "
        "The courier will try again soon.",
    ),
    ShipmentStatus.RETURNED: (
        "returned",
        "Hi {name}, your order {reference} is being returned to the seller.",
    ),
}


class LoggingNotificationSender:
    """NotificationSender that only logs. Used when nothing else is wired."""

    async def send(
        self,
        *,
        kind: str,
        recipient_email: str | None,
        recipient_phone: str | None,
        message: str,
    ) -> None:
        logger.info(
            "Notification %s for %s: %s",
            kind,
            recipient_email or recipient_phone or "unknown recipient",
            message,
        )


class DeliveryNotifier:
    """Turns shipment transitions into customer messages.

    Failures are logged and swallowed so that a broken notification
    channel can never block a status update.
    """

    def __init__(
        self,
        sender: NotificationSender | None = None,
        resolver: FulfillmentUnitResolver | None = None,
    ) -> None:
        self.sender = sender or LoggingNotificationSender()
        self.resolver = resolver

    async def notify(self, shipment: Shipment, status: str) -> bool:
        """Send the message for ``status``. Returns True if one was sent."""
        template = MESSAGE_TEMPLATES.get(ShipmentStatus(status))
        if template is None or self.resolver is None:
            return False

        kind, text = template
        try:
            unit = await self.resolver.resolve(shipment.fulfillment_unit_id)
            if not (unit.customer_email or unit.customer_phone):
                return False
            await self.sender.send(
                kind=kind,
                recipient_email=unit.customer_email,
                recipient_phone=unit.customer_phone,
                message=text.format(
                    name=unit.customer_name or "Customer",
                    reference=unit.reference_number,
                ),
            )
        except Exception:
            logger.exception(
                "Error sending %s notification for shipment %s",
                kind,
                shipment.id,
            )
            return False
        return True
