# tests/test_retry.py
"""Tests for the webhook retry mechanism."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import add_shipment
from courierlink.config import CourierLinkConfig
from courierlink.exceptions import InvalidWebhookError
from courierlink.retry import (
    compute_next_retry_at,
    enqueue_webhook_retry,
    process_due_retries,
)

PAYLOAD = {
    "consignmentNo": "TCS123",
    "status": "Delivered",
    "timestamp": "2025-01-16T14:00:00Z",
}


def due(attempts=0, payload=PAYLOAD):
    return {
        "id": "retry-1",
        "carrier_code": "tcs",
        "payload": payload,
        "headers": {},
        "attempts": attempts,
    }


@pytest.fixture
def mock_retry_store():
    store = AsyncMock()
    store.get_due_retries = AsyncMock(return_value=[])
    store.mark_succeeded = AsyncMock()
    store.mark_failed = AsyncMock()
    store.mark_exhausted = AsyncMock()
    return store


@pytest.fixture
def mock_ingestor():
    ingestor = AsyncMock()
    ingestor.replay_webhook = AsyncMock()
    return ingestor


@pytest.fixture
def retry_config():
    return CourierLinkConfig(retry_max_attempts=3, retry_backoff_seconds=10)


def test_compute_backoff():
    """Backoff increases exponentially."""
    base = 10
    t1 = compute_next_retry_at(attempt=1, backoff_seconds=base)
    t2 = compute_next_retry_at(attempt=2, backoff_seconds=base)
    t3 = compute_next_retry_at(attempt=3, backoff_seconds=base)

    now = datetime.now(tz=UTC)
    assert t1 > now
    assert t2 > t1
    assert t3 > t2


def test_compute_backoff_first_attempt():
    """First attempt backoff is base_seconds."""
    now = datetime.now(tz=UTC)
    result = compute_next_retry_at(attempt=1, backoff_seconds=60)
    expected_min = now + timedelta(seconds=55)
    expected_max = now + timedelta(seconds=65)
    assert expected_min < result < expected_max


async def test_enqueue_without_store():
    assert (
        await enqueue_webhook_retry(
            None, carrier_code="tcs", payload={}, headers={}, reason="x"
        )
        is None
    )


async def test_enqueue_stores_webhook(retry_store):
    retry_id = await enqueue_webhook_retry(
        retry_store,
        carrier_code="tcs",
        payload=PAYLOAD,
        headers={"x-webhook-signature": "abc"},
        reason="db down",
    )
    assert retry_id == "retry-1"
    assert retry_store.events[0]["payload"] == PAYLOAD


async def test_process_retries_empty(
    mock_retry_store, mock_ingestor, retry_config
):
    """No retries to process: does nothing."""
    processed = await process_due_retries(
        retry_store=mock_retry_store,
        ingestor=mock_ingestor,
        config=retry_config,
    )
    assert processed == 0
    mock_ingestor.replay_webhook.assert_not_called()


async def test_process_retries_success(
    mock_retry_store, mock_ingestor, retry_config
):
    """Successful replay marks the retry succeeded."""
    mock_retry_store.get_due_retries = AsyncMock(return_value=[due()])

    processed = await process_due_retries(
        retry_store=mock_retry_store,
        ingestor=mock_ingestor,
        config=retry_config,
    )

    assert processed == 1
    mock_ingestor.replay_webhook.assert_awaited_once_with("tcs", PAYLOAD)
    mock_retry_store.mark_succeeded.assert_called_once_with("retry-1")


async def test_process_retries_failure_under_max(
    mock_retry_store, mock_ingestor, retry_config
):
    """Failed retry under max_attempts marks as failed."""
    mock_retry_store.get_due_retries = AsyncMock(
        return_value=[due(attempts=1)]
    )
    mock_ingestor.replay_webhook = AsyncMock(
        side_effect=Exception("still failing")
    )

    processed = await process_due_retries(
        retry_store=mock_retry_store,
        ingestor=mock_ingestor,
        config=retry_config,
    )

    assert processed == 1
    mock_retry_store.mark_failed.assert_called_once_with(
        "retry-1", error="still failing"
    )
    mock_retry_store.mark_exhausted.assert_not_called()


async def test_process_retries_exhausted(
    mock_retry_store, mock_ingestor, retry_config
):
    """Failed retry reaching max_attempts marks as exhausted."""
    mock_retry_store.get_due_retries = AsyncMock(
        return_value=[due(attempts=2)]
    )
    mock_ingestor.replay_webhook = AsyncMock(
        side_effect=Exception("still failing")
    )

    processed = await process_due_retries(
        retry_store=mock_retry_store,
        ingestor=mock_ingestor,
        config=retry_config,
    )

    assert processed == 1
    mock_retry_store.mark_exhausted.assert_called_once_with("retry-1")


async def test_process_retries_unrecoverable_payload(
    mock_retry_store, mock_ingestor, retry_config
):
    """A payload that can never apply is exhausted at once."""
    mock_retry_store.get_due_retries = AsyncMock(return_value=[due()])
    mock_ingestor.replay_webhook = AsyncMock(
        side_effect=InvalidWebhookError("no tracking number")
    )

    await process_due_retries(
        retry_store=mock_retry_store,
        ingestor=mock_ingestor,
        config=retry_config,
    )

    mock_retry_store.mark_exhausted.assert_called_once_with("retry-1")
    mock_retry_store.mark_failed.assert_not_called()


async def test_replay_applies_stored_webhook(
    ingestor, repository, retry_store, config
):
    shipment = await add_shipment(repository)
    await retry_store.store_failed_webhook("tcs", PAYLOAD, {})

    processed = await process_due_retries(
        retry_store=retry_store, ingestor=ingestor, config=config
    )

    assert processed == 1
    assert shipment.status == "delivered"
