"""Webhook retry mechanism with exponential backoff."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from courierlink.config import CourierLinkConfig
from courierlink.exceptions import CourierLinkError
from courierlink.protocols import WebhookRetryStore

if TYPE_CHECKING:
    from courierlink.ingestion import TrackingIngestor

logger = logging.getLogger(__name__)


def compute_next_retry_at(
    attempt: int,
    backoff_seconds: int,
) -> datetime:
    """Compute the next retry time with exponential backoff.

    delay = backoff_seconds * 2^(attempt - 1)
    """
    delay = backoff_seconds * (2 ** (attempt - 1))
    return datetime.now(tz=UTC) + timedelta(seconds=delay)


async def enqueue_webhook_retry(
    store: WebhookRetryStore | None,
    *,
    carrier_code: str,
    payload: dict,
    headers: dict[str, str],
    reason: str,
) -> str | None:
    """Persist a webhook for replay when a retry store is configured."""
    if store is None:
        return None

    retry_id = await store.store_failed_webhook(
        carrier_code=carrier_code,
        payload=payload,
        headers=headers,
    )
    logger.warning(
        "Webhook from %s failed, queued for retry as %s: %s",
        carrier_code,
        retry_id,
        reason,
    )
    return retry_id


async def _replay(
    retry: dict,
    retry_store: WebhookRetryStore,
    ingestor: TrackingIngestor,
    max_attempts: int,
) -> None:
    retry_id = retry["id"]
    carrier_code = retry["carrier_code"]
    attempt = retry["attempts"] + 1
    try:
        outcome = await ingestor.replay_webhook(carrier_code, retry["payload"])
    except CourierLinkError as exc:
        # Unknown carrier or unreadable payload; replaying cannot help.
        await retry_store.mark_exhausted(retry_id)
        logger.error(
            "Retry %s: %s webhook cannot be applied: %s",
            retry_id,
            carrier_code,
            exc,
        )
    except Exception as exc:
        if attempt >= max_attempts:
            await retry_store.mark_exhausted(retry_id)
            logger.warning(
                "Retry %s: %s webhook gave up after %d attempts: %s",
                retry_id,
                carrier_code,
                attempt,
                exc,
            )
        else:
            await retry_store.mark_failed(retry_id, error=str(exc))
            logger.info(
                "Retry %s: attempt %d failed: %s", retry_id, attempt, exc
            )
    else:
        await retry_store.mark_succeeded(retry_id)
        logger.info(
            "Retry %s: %s webhook for %s %s",
            retry_id,
            carrier_code,
            outcome.tracking_number,
            outcome.status,
        )


async def process_due_retries(
    *,
    retry_store: WebhookRetryStore,
    ingestor: TrackingIngestor,
    config: CourierLinkConfig,
    limit: int = 10,
) -> int:
    """Replay webhooks whose retry time has come.

    Payloads were signature-checked when first received, so replays go
    straight to parsing. A payload that can never apply is exhausted at
    once; other failures back off until ``retry_max_attempts``.

    Returns:
        How many queued webhooks were looked at.
    """
    due = await retry_store.get_due_retries(limit=limit)
    for retry in due:
        await _replay(retry, retry_store, ingestor, config.retry_max_attempts)
    return len(due)
