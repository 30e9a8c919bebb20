"""Tracking ingestion: carrier webhooks and the tracking poll."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from courierlink.carriers.base import BaseCarrierAdapter
from courierlink.config import CourierLinkConfig
from courierlink.enums import EventSource
from courierlink.exceptions import (
    CarrierRejectedError,
    CourierLinkError,
    InvalidSignatureError,
    InvalidWebhookError,
    WebhookDeferredError,
)
from courierlink.ledger import ShipmentLedger, UpdateOutcome
from courierlink.protocols import Shipment, WebhookRetryStore
from courierlink.retry import enqueue_webhook_retry
from courierlink.state import TRACKABLE_STATUSES
from courierlink.types import WebhookUpdate

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-webhook-signature", "x-signature")


@dataclass
class PollSummary:
    checked: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class WebhookOutcome:
    status: str
    tracking_number: str
    shipment_id: str | None = None
    shipment_status: str | None = None


def signature_from(headers: Mapping[str, str]) -> str | None:
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in SIGNATURE_HEADERS:
        if lowered.get(name):
            return lowered[name]
    return None


class TrackingIngestor:
    """Feeds carrier webhooks and polled tracking into the ledger.

    Both paths end in ``ShipmentLedger.apply_carrier_update`` and are
    idempotent on event timestamps, so they may overlap safely.
    """

    def __init__(
        self,
        *,
        ledger: ShipmentLedger,
        config: CourierLinkConfig,
        retry_store: WebhookRetryStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.ledger = ledger
        self.config = config
        self.retry_store = retry_store
        self._sleep = sleep

    @property
    def registry(self):
        return self.ledger.registry

    async def handle_webhook(
        self,
        carrier_code: str,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> WebhookOutcome:
        """Verify, parse and apply one carrier webhook.

        Nothing is written when the signature does not verify. A verified
        webhook that fails to apply for an unexpected reason is queued for
        retry and reported as deferred.
        """
        adapter = await self.registry.get_adapter(carrier_code)
        signature = signature_from(headers)
        if not adapter.verify_webhook_signature(raw_body, signature):
            logger.warning(
                "Rejected %s webhook: invalid signature", adapter.code
            )
            raise InvalidSignatureError(adapter.code)

        try:
            payload = json.loads(raw_body or b"null")
        except ValueError as exc:
            raise InvalidWebhookError(
                "Webhook body is not valid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise InvalidWebhookError("Webhook body must be a JSON object")

        update = adapter.parse_webhook(payload)
        try:
            return await self.apply_webhook(adapter, update)
        except CourierLinkError:
            raise
        except Exception as exc:
            if self.retry_store is None or not self.config.retry_enabled:
                raise
            await enqueue_webhook_retry(
                self.retry_store,
                carrier_code=adapter.code,
                payload=payload,
                headers={key.lower(): value for key, value in headers.items()},
                reason=str(exc),
            )
            raise WebhookDeferredError(
                "Webhook accepted but not yet applied; queued for retry"
            ) from exc

    async def replay_webhook(
        self, carrier_code: str, payload: dict[str, Any]
    ) -> WebhookOutcome:
        """Apply a previously verified webhook payload."""
        adapter = await self.registry.get_adapter(carrier_code)
        update = adapter.parse_webhook(payload)
        return await self.apply_webhook(adapter, update)

    async def apply_webhook(
        self, adapter: BaseCarrierAdapter, update: WebhookUpdate
    ) -> WebhookOutcome:
        repository = self.ledger.repository
        shipment = await repository.get_by_tracking_number(
            update.tracking_number
        )
        if shipment is None or shipment.carrier_code != adapter.code:
            logger.info(
                "Ignoring %s webhook for unknown tracking number %s",
                adapter.code,
                update.tracking_number,
            )
            return WebhookOutcome(
                status="ignored", tracking_number=update.tracking_number
            )

        outcome = await self.ledger.apply_carrier_update(
            shipment,
            status=update.status,
            events=update.events,
            source=EventSource.WEBHOOK,
        )
        return WebhookOutcome(
            status="processed",
            tracking_number=update.tracking_number,
            shipment_id=shipment.id,
            shipment_status=outcome.status,
        )

    async def refresh(self, shipment: Shipment) -> UpdateOutcome | None:
        """Pull tracking for one shipment from its carrier.

        Returns ``None`` when the carrier has no tracking API. A failed
        carrier call is stored on the shipment as ``last_error`` and
        raised as CarrierRejectedError.
        """
        adapter = await self.registry.get_adapter(shipment.carrier_code)
        if not adapter.supports_tracking:
            return None

        result = await adapter.get_tracking(shipment.tracking_number)
        if not result.success:
            message = result.error or "Tracking failed"
            await self.ledger.record_error(
                shipment, "tracking_failed", message
            )
            raise CarrierRejectedError(adapter.code, message)

        return await self.ledger.apply_carrier_update(
            shipment,
            status=result.current_status,
            events=result.events,
            source=EventSource.COURIER_API,
            delivered_at=result.delivered_at,
            signed_by=result.signed_by,
        )

    async def poll_once(self) -> PollSummary:
        """Refresh every in-flight shipment whose tracking is stale.

        Shipments are processed one at a time with a pause in between to
        stay inside carrier rate limits. A failure only affects its own
        shipment.
        """
        stale_before = datetime.now(tz=UTC) - timedelta(
            seconds=self.config.poll_stale_after_seconds
        )
        shipments = await self.ledger.repository.list_due_for_tracking(
            [str(status) for status in TRACKABLE_STATUSES],
            stale_before,
            self.config.poll_batch_size,
        )
        logger.info("Found %d shipments to update", len(shipments))

        summary = PollSummary()
        for index, shipment in enumerate(shipments):
            if index:
                await self._sleep(self.config.poll_item_delay_seconds)
            summary.checked += 1
            try:
                outcome = await self.refresh(shipment)
            except Exception:
                logger.exception(
                    "Error updating shipment %s (%s)",
                    shipment.id,
                    shipment.tracking_number,
                )
                summary.failed += 1
                continue

            if outcome is None:
                summary.skipped += 1
            elif outcome.changed or outcome.new_events:
                summary.updated += 1

        logger.info(
            "Tracking updates complete. Checked: %d, updated: %d, "
            "failed: %d, skipped: %d",
            summary.checked,
            summary.updated,
            summary.failed,
            summary.skipped,
        )
        return summary
