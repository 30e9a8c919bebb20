"""Background jobs: tracking poll and webhook retry replay."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from courierlink.config import CourierLinkConfig
from courierlink.ingestion import TrackingIngestor
from courierlink.protocols import WebhookRetryStore
from courierlink.retry import process_due_retries

logger = logging.getLogger(__name__)


class TrackingPollScheduler:
    """Runs the recurring ingestion jobs as asyncio tasks.

    Call start() from the application lifespan and stop() on shutdown.
    A failing run is logged; the loop carries on at the next interval.
    """

    def __init__(
        self,
        *,
        ingestor: TrackingIngestor,
        config: CourierLinkConfig,
        retry_store: WebhookRetryStore | None = None,
        initial_delay_seconds: float = 5.0,
    ) -> None:
        self.ingestor = ingestor
        self.config = config
        self.retry_store = retry_store
        self.initial_delay_seconds = initial_delay_seconds
        self._tasks: list[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.info("Tracking scheduler already running")
            return

        self._running = True
        interval = self.config.poll_interval_seconds
        if self.config.poll_enabled:
            self._tasks.append(
                asyncio.create_task(
                    self._run_job_loop(
                        "tracking_poll", self.run_poll, interval
                    )
                )
            )
        if self.retry_store is not None and self.config.retry_enabled:
            self._tasks.append(
                asyncio.create_task(
                    self._run_job_loop(
                        "webhook_retry",
                        self.run_retries,
                        self.config.retry_backoff_seconds,
                    )
                )
            )
        logger.info(
            "Tracking scheduler started with %d jobs", len(self._tasks)
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Tracking scheduler stopped")

    async def run_poll(self) -> Any:
        return await self.ingestor.poll_once()

    async def run_retries(self) -> int:
        if self.retry_store is None:
            return 0
        return await process_due_retries(
            retry_store=self.retry_store,
            ingestor=self.ingestor,
            config=self.config,
        )

    async def _run_job_loop(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ) -> None:
        await asyncio.sleep(self.initial_delay_seconds)

        while self._running:
            try:
                logger.debug("Running %s", name)
                result = await job()
                logger.info("Job %s completed: %s", name, result)
            except Exception:
                logger.exception("Job %s failed", name)

            await asyncio.sleep(interval_seconds)
