"""Redis-backed job store with optimistic, versioned writes.

Each job is a single JSON string stored under ``{key_prefix}{job_id}``.
Plain writes (:meth:`RedisJobStore.put`, :meth:`RedisJobStore.put_with_expiry`)
overwrite the whole record.  The worker never uses them: every worker write
goes through :meth:`RedisJobStore.compare_and_set`, a Lua script that
compares the stored ``version`` with the caller's expected version and
swaps the record atomically.  Concurrent invocations for the same job
therefore cannot silently overwrite each other.

Connectivity failures surface as
:class:`~profrater.core.exceptions.StoreUnavailableError`.  Nothing in this
module retries; callers decide.

Typical usage::

    store = RedisJobStore.from_url(settings.redis_url)
    job = await store.get(job_id)
    running = await store.compare_and_set(job.transition(JobStatus.RUNNING), job.version)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import AsyncIterator, Iterator, Protocol, runtime_checkable

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError
from redis.exceptions import TimeoutError as RedisTimeoutError

from profrater.core.exceptions import JobConflictError, StoreUnavailableError
from profrater.core.schemas.jobs import Job

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lua scripts
# ---------------------------------------------------------------------------

# Atomic compare-and-set on the JSON ``version`` field.
#
# KEYS[1]: job key
# ARGV[1]: expected version (integer string)
# ARGV[2]: new JSON payload (already carrying version = expected + 1)
#
# Returns {1, new_version} on success, {0, current_version} on mismatch and
# {0, -1} when the key does not exist.  KEEPTTL preserves any expiry set at
# creation time.
_LUA_COMPARE_AND_SET = """
local key      = KEYS[1]
local expected = tonumber(ARGV[1])
local payload  = ARGV[2]

local current = redis.call('GET', key)
if not current then
    return {0, -1}
end
local version = tonumber(cjson.decode(current)['version'])
if version ~= expected then
    return {0, version}
end
redis.call('SET', key, payload, 'KEEPTTL')
return {1, expected + 1}
"""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


@runtime_checkable
class JobStore(Protocol):
    """Persistence contract shared by the submission service and the worker."""

    async def get(self, job_id: str) -> Job | None:
        """Return the job, or ``None`` if it does not exist."""
        ...

    async def put(self, job: Job) -> None:
        """Overwrite the whole record unconditionally."""
        ...

    async def put_with_expiry(self, job: Job, ttl_seconds: int) -> None:
        """Overwrite the whole record and expire it after ``ttl_seconds``."""
        ...

    async def delete(self, job_id: str) -> None:
        ...

    async def compare_and_set(self, job: Job, expected_version: int) -> Job:
        """Write ``job`` only if the stored version equals ``expected_version``.

        Returns:
            The stored job, carrying ``version == expected_version + 1``.

        Raises:
            JobConflictError: If the stored version differs or the record is gone.
        """
        ...

    def iter_jobs(self) -> AsyncIterator[Job]:
        """Yield every stored job (order unspecified)."""
        ...

    async def ping(self) -> bool:
        ...


# ---------------------------------------------------------------------------
# Redis implementation
# ---------------------------------------------------------------------------


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate Redis connectivity failures into ``StoreUnavailableError``."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.warning("job_store: %s failed: %s", operation, exc)
        raise StoreUnavailableError(
            f"Job store unavailable during {operation}: {exc}", operation=operation
        ) from exc


class RedisJobStore:
    """Job store backed by a ``redis.asyncio`` client.

    Args:
        redis_client: An initialised ``redis.asyncio.Redis`` connection created
            with ``decode_responses=True``.
        key_prefix: Prefix prepended to every job id.
    """

    def __init__(self, redis_client: aioredis.Redis, key_prefix: str = "job:") -> None:
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self._sha_cas: str = ""

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        *,
        key_prefix: str = "job:",
        socket_timeout: float = 5.0,
    ) -> "RedisJobStore":
        """Build a store from a Redis URL (``rediss://`` enables TLS)."""
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}{job_id}"

    async def _ensure_script_loaded(self) -> None:
        if self._sha_cas:
            return
        self._sha_cas = await self.redis_client.script_load(_LUA_COMPARE_AND_SET)

    # ------------------------------------------------------------------
    # Plain operations
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Job | None:
        with _store_errors("get"):
            raw = await self.redis_client.get(self._key(job_id))
        if raw is None:
            return None
        return Job.from_record(raw)

    async def put(self, job: Job) -> None:
        with _store_errors("put"):
            await self.redis_client.set(self._key(job.id), job.to_record())

    async def put_with_expiry(self, job: Job, ttl_seconds: int) -> None:
        with _store_errors("put_with_expiry"):
            await self.redis_client.set(
                self._key(job.id), job.to_record(), ex=ttl_seconds
            )

    async def delete(self, job_id: str) -> None:
        with _store_errors("delete"):
            await self.redis_client.delete(self._key(job_id))

    # ------------------------------------------------------------------
    # Conditional write
    # ------------------------------------------------------------------

    async def compare_and_set(self, job: Job, expected_version: int) -> Job:
        """Atomically replace the record if its version is ``expected_version``.

        Args:
            job: The new job state.  Its ``version`` field is ignored and
                replaced by ``expected_version + 1``.
            expected_version: Version the caller read before computing ``job``.

        Returns:
            The job as stored, with the incremented version.

        Raises:
            JobConflictError: On version mismatch or missing record.
            StoreUnavailableError: On connectivity loss.
        """
        stored = job.model_copy(update={"version": expected_version + 1})
        payload = stored.to_record()
        key = self._key(job.id)

        with _store_errors("compare_and_set"):
            await self._ensure_script_loaded()
            try:
                result = await self.redis_client.evalsha(  # type: ignore[misc]
                    self._sha_cas, 1, key, str(expected_version), payload
                )
            except NoScriptError:
                # Script cache flushed (restart / SCRIPT FLUSH); reload once.
                self._sha_cas = ""
                await self._ensure_script_loaded()
                result = await self.redis_client.evalsha(  # type: ignore[misc]
                    self._sha_cas, 1, key, str(expected_version), payload
                )

        ok, version = int(result[0]), int(result[1])
        if not ok:
            current = None if version < 0 else version
            logger.info(
                "job_store: conditional write rejected for %s (expected=%d, current=%s)",
                job.id,
                expected_version,
                current,
            )
            raise JobConflictError(job.id, expected_version, current)
        return stored

    # ------------------------------------------------------------------
    # Scanning / health
    # ------------------------------------------------------------------

    async def iter_jobs(self) -> AsyncIterator[Job]:
        """Yield every job under the key prefix using ``SCAN``.

        Records that no longer parse are logged and skipped.
        """
        with _store_errors("scan"):
            keys = [key async for key in self.redis_client.scan_iter(match=f"{self.key_prefix}*")]
        for key in keys:
            with _store_errors("get"):
                raw = await self.redis_client.get(key)
            if raw is None:
                continue  # expired between SCAN and GET
            try:
                job = Job.from_record(raw)
            except ValidationError as exc:
                logger.warning("job_store: skipping unreadable record %s: %s", key, exc)
                continue
            yield job

    async def ping(self) -> bool:
        """Return ``True`` if Redis answers ``PING``; never raises."""
        try:
            return bool(await self.redis_client.ping())
        except Exception:  # noqa: BLE001
            logger.exception("job_store: ping failed")
            return False

    async def close(self) -> None:
        await self.redis_client.aclose()
