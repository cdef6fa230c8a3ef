"""Redis-backed submission store, pending queue and approved-location sets.

Key layout (shared with the legacy service):

- ``submission:{id}``        JSON record
- ``unapproved_submissions`` list of pending ids, newest first
- ``pandal:{id}:photos``     set of approved ids per location entity
- ``submission:{id}:lock``   redis-py owner-token lock held during transitions

All operations are single-key; callers sequence them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pydantic import ValidationError as SchemaValidationError
from redis import asyncio as aioredis
from redis.asyncio.lock import Lock
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError, LockNotOwnedError, RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from pujo_gallery.core.errors import STORE, NotFound, TransitionConflict, UpstreamFailure
from pujo_gallery.core.settings import Settings, settings
from pujo_gallery.schemas.submission import Submission

logger = logging.getLogger(__name__)

PENDING_QUEUE_KEY = "unapproved_submissions"
LOCK_POLL_SECONDS = 0.05


def submission_key(submission_id: str) -> str:
    return f"submission:{submission_id}"


def approved_set_key(pandal_id: str) -> str:
    return f"pandal:{pandal_id}:photos"


def lock_key(submission_id: str) -> str:
    return f"submission:{submission_id}:lock"


def create_redis_client(config: Settings | None = None) -> aioredis.Redis:
    """Build the pooled redis client with bounded timeouts and retries."""
    config = config or settings
    return aioredis.Redis.from_url(
        config.redis_url,
        decode_responses=True,
        socket_timeout=config.redis_socket_timeout_seconds,
        socket_connect_timeout=config.redis_socket_timeout_seconds,
        retry=Retry(ExponentialBackoff(cap=1.0, base=0.05), config.redis_max_retries),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


class SubmissionStore:
    """Durable submission records plus the pending queue and approved sets."""

    def __init__(self, client: Any, config: Settings | None = None) -> None:
        config = config or settings
        self._redis = client
        self._lock_ttl_ms = config.transition_lock_ttl_ms
        self._lock_wait_seconds = config.transition_lock_wait_seconds

    async def aclose(self) -> None:
        """Release the connection pool."""
        await self._redis.aclose()

    async def get(self, submission_id: str) -> Submission:
        """Load a record.

        Raises:
            NotFound: If no record exists for `submission_id`
            UpstreamFailure: If redis fails or the stored record is unreadable
        """
        try:
            raw = await self._redis.get(submission_key(submission_id))
        except RedisError as err:
            raise self._failure("get", submission_id, err) from err
        if raw is None:
            raise NotFound(submission_id=submission_id)
        try:
            return Submission.from_json(raw)
        except (SchemaValidationError, ValueError) as err:
            logger.error("Unreadable submission record %s: %s", submission_id, err)
            raise UpstreamFailure(
                "Stored submission record is unreadable",
                submission_id=submission_id,
                collaborator=STORE,
            ) from err

    async def put(self, submission: Submission) -> None:
        """Overwrite the full record."""
        try:
            await self._redis.set(submission_key(submission.id), submission.to_json())
        except RedisError as err:
            raise self._failure("put", submission.id, err) from err

    async def delete(self, submission_id: str) -> None:
        try:
            await self._redis.delete(submission_key(submission_id))
        except RedisError as err:
            raise self._failure("delete", submission_id, err) from err

    async def push_pending(self, submission_id: str) -> None:
        try:
            await self._redis.lpush(PENDING_QUEUE_KEY, submission_id)
        except RedisError as err:
            raise self._failure("queue push", submission_id, err) from err

    async def remove_pending(self, submission_id: str) -> None:
        """Remove every occurrence of an id from the pending queue; absent ids are a no-op."""
        try:
            await self._redis.lrem(PENDING_QUEUE_KEY, 0, submission_id)
        except RedisError as err:
            raise self._failure("queue remove", submission_id, err) from err

    async def pending_ids(self, limit: int | None = None) -> list[str]:
        """Return pending ids, newest first."""
        stop = -1 if limit is None else max(limit, 1) - 1
        try:
            return list(await self._redis.lrange(PENDING_QUEUE_KEY, 0, stop))
        except RedisError as err:
            raise self._failure("queue read", None, err) from err

    async def add_approved(self, pandal_id: str, submission_id: str) -> None:
        try:
            await self._redis.sadd(approved_set_key(pandal_id), submission_id)
        except RedisError as err:
            raise self._failure("approved-set add", submission_id, err) from err

    async def approved_ids(self, pandal_id: str) -> set[str]:
        try:
            return set(await self._redis.smembers(approved_set_key(pandal_id)))
        except RedisError as err:
            raise self._failure("approved-set read", None, err) from err

    @asynccontextmanager
    async def transition_lock(self, submission_id: str) -> AsyncIterator[None]:
        """Hold the per-submission advisory lock for the duration of the block.

        Waits up to the configured window for a concurrent holder to finish.

        Raises:
            TransitionConflict: If the lock could not be taken in time
        """
        # redis-py releases with an owner-token check in a single Lua script,
        # so an expired lock taken over by another click is never deleted here.
        lock = self._redis.lock(
            lock_key(submission_id),
            timeout=self._lock_ttl_ms / 1000,
            sleep=LOCK_POLL_SECONDS,
            blocking_timeout=self._lock_wait_seconds,
        )
        try:
            acquired = await lock.acquire()
        except LockError as err:
            raise TransitionConflict(submission_id=submission_id) from err
        except RedisError as err:
            raise self._failure("lock acquire", submission_id, err) from err
        if not acquired:
            raise TransitionConflict(submission_id=submission_id)

        try:
            yield
        finally:
            await self._release_lock(lock, submission_id)

    async def _release_lock(self, lock: Lock, submission_id: str) -> None:
        try:
            await lock.release()
        except LockNotOwnedError:
            logger.warning(
                "Transition lock for %s expired before release and was not removed",
                submission_id,
            )
        except RedisError as err:
            logger.warning(
                "Could not release transition lock for %s (expires on its own): %s",
                submission_id,
                err,
            )

    @staticmethod
    def _failure(operation: str, submission_id: str | None, err: Exception) -> UpstreamFailure:
        logger.error(
            "Submission store %s failed for submission %s: %s",
            operation,
            submission_id,
            err,
        )
        return UpstreamFailure(
            f"Submission store {operation} failed",
            submission_id=submission_id,
            collaborator=STORE,
        )
