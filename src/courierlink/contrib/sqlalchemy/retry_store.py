"""Database-backed queue of carrier webhooks awaiting replay."""

from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courierlink.contrib.sqlalchemy.models import WebhookRetryModel
from courierlink.retry import compute_next_retry_at

PENDING = "pending"
SUCCEEDED = "succeeded"
EXHAUSTED = "exhausted"


class SQLAlchemyRetryStore:
    """Webhook retry queue on the ``courierlink_webhook_retries`` table.

    Implements the WebhookRetryStore protocol. Rows are never deleted;
    finished entries keep their final status so exhausted webhooks can be
    inspected and replayed by hand.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        backoff_seconds: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._backoff_seconds = backoff_seconds

    async def store_failed_webhook(
        self,
        carrier_code: str,
        payload: dict,
        headers: dict,
    ) -> str:
        retry = WebhookRetryModel(
            carrier_code=carrier_code.lower(),
            payload=dict(payload),
            headers={key.lower(): value for key, value in headers.items()},
            attempts=0,
            next_retry_at=compute_next_retry_at(
                attempt=1, backoff_seconds=self._backoff_seconds
            ),
            status=PENDING,
        )
        async with self._session_factory() as session, session.begin():
            session.add(retry)
            await session.flush()
            retry_id = retry.id
        return retry_id

    async def get_due_retries(self, limit: int = 10) -> list[dict]:
        """Pending entries whose retry time has passed, oldest due first."""
        stmt = (
            select(
                WebhookRetryModel.id,
                WebhookRetryModel.carrier_code,
                WebhookRetryModel.payload,
                WebhookRetryModel.headers,
                WebhookRetryModel.attempts,
            )
            .where(
                WebhookRetryModel.status == PENDING,
                WebhookRetryModel.next_retry_at <= datetime.now(tz=UTC),
            )
            .order_by(WebhookRetryModel.next_retry_at.asc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [dict(row) for row in rows]

    async def list_exhausted(self, limit: int = 50) -> list[dict]:
        """Dead-lettered webhooks, most recent first."""
        stmt = (
            select(WebhookRetryModel)
            .where(WebhookRetryModel.status == EXHAUSTED)
            .order_by(WebhookRetryModel.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            retries = (await session.execute(stmt)).scalars().all()
            return [
                {
                    "id": r.id,
                    "carrier_code": r.carrier_code,
                    "payload": r.payload,
                    "attempts": r.attempts,
                    "last_error": r.last_error,
                }
                for r in retries
            ]

    async def mark_succeeded(self, retry_id: str) -> None:
        await self._set_status(retry_id, SUCCEEDED)

    async def mark_failed(self, retry_id: str, error: str) -> None:
        """Count the failed attempt and push the next one back."""
        async with self._session_factory() as session, session.begin():
            retry = await session.get(WebhookRetryModel, retry_id)
            if retry is None:
                return
            retry.attempts += 1
            retry.last_error = error
            retry.next_retry_at = compute_next_retry_at(
                attempt=retry.attempts + 1,
                backoff_seconds=self._backoff_seconds,
            )

    async def mark_exhausted(self, retry_id: str) -> None:
        await self._set_status(retry_id, EXHAUSTED)

    async def _set_status(self, retry_id: str, status: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(WebhookRetryModel)
                .where(WebhookRetryModel.id == retry_id)
                .values(status=status)
            )
