"""Idempotency-Key replay for booking creation."""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class StoredResponse(NamedTuple):
    status_code: int
    body: dict[str, Any]


def fingerprint(request_body: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a request body."""
    canonical = json.dumps(request_body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyMismatchError(ProblemDetailsException):
    """An Idempotency-Key was reused for a different request."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=f"Idempotency key '{idempotency_key}' was already used for '{operation}' with a different request body",
            type_uri="https://example.com/problems/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


class IdempotencyService:
    """
    Remembers the outcome of a keyed request so a retry gets the same answer.

    Problem responses are remembered as well: a client retrying a create
    that lost its date sees the same 409, and one that hit an unreachable
    payment processor sees the same 503 naming the booking that was kept.
    """

    def __init__(self, db: AsyncSession, ttl_hours: Optional[int] = None):
        self.db = db
        self.ttl_hours = ttl_hours or settings.idempotency_ttl_hours

    async def lookup(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[StoredResponse]:
        """
        The remembered response for a retried request, or None.

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        now = now or utcnow()
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.operation == operation,
            IdempotencyRecord.expires_at > now
        )
        record = (await self.db.execute(stmt)).scalar_one_or_none()
        if record is None:
            return None

        if record.request_body_hash != fingerprint(request_body):
            logger.warning(
                "Idempotency key reused with a different body",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )
            raise IdempotencyMismatchError(idempotency_key, operation)

        logger.info(
            "Replaying remembered response",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "status_code": record.response_status_code,
            }
        )
        return StoredResponse(record.response_status_code, json.loads(record.response_body))

    async def remember(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        response: StoredResponse,
        now: Optional[datetime] = None,
    ) -> None:
        """Persist a response. The first writer of a key wins; later writes are dropped."""
        now = now or utcnow()
        self.db.add(IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_body_hash=fingerprint(request_body),
            response_status_code=response.status_code,
            response_body=json.dumps(response.body, sort_keys=True, separators=(",", ":")),
            expires_at=now + timedelta(hours=self.ttl_hours),
            created_at=now,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Idempotency key already remembered by a concurrent request",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )

    async def replay_or_run(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        run: Callable[[], Awaitable[dict[str, Any]]],
    ) -> StoredResponse:
        """
        Run the operation once per key and replay its outcome afterwards.

        A problem raised by the operation is remembered and re-raised.
        """
        replay = await self.lookup(idempotency_key, operation, request_body)
        if replay is not None:
            return replay

        try:
            body = await run()
        except ProblemDetailsException as e:
            await self.remember(
                idempotency_key, operation, request_body, StoredResponse(e.status_code, e.problem_details)
            )
            raise

        response = StoredResponse(200, body)
        await self.remember(idempotency_key, operation, request_body, response)
        return response

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete records past their expiry. Returns the number removed."""
        now = now or utcnow()
        result = await self.db.execute(delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= now))
        await self.db.commit()

        if result.rowcount:
            logger.info("Purged expired idempotency records", extra={"deleted_count": result.rowcount})
        return result.rowcount
