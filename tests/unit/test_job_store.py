"""Unit tests for RedisJobStore.

Tests cover:
- get() returns None for a missing key and parses stored JSON otherwise
- put() / put_with_expiry() write the JSON record under the prefixed key
- compare_and_set() sends expected version and a payload carrying version+1
- compare_and_set() raises JobConflictError on mismatch and on a missing key
- compare_and_set() reloads the Lua script once after NoScriptError
- connection/timeout errors surface as StoreUnavailableError
- iter_jobs() scans the prefix and skips unreadable records
- ping() never raises

All Redis calls are mocked via AsyncMock.  No live Redis is required.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError
from redis.exceptions import TimeoutError as RedisTimeoutError

from profrater.core.exceptions import JobConflictError, StoreUnavailableError
from profrater.core.job_store import JobStore, RedisJobStore
from profrater.core.schemas.jobs import Job, JobStatus


def _make_store(
    *,
    evalsha_return: Any = (1, 2),
    script_load_return: str = "sha-fake",
) -> tuple[RedisJobStore, MagicMock]:
    """Return a (RedisJobStore, mock_redis) pair with the CAS script preloaded."""
    mock_redis = MagicMock()
    mock_redis.get = AsyncMock(return_value=None)
    mock_redis.set = AsyncMock(return_value=True)
    mock_redis.delete = AsyncMock(return_value=1)
    mock_redis.ping = AsyncMock(return_value=True)
    mock_redis.script_load = AsyncMock(return_value=script_load_return)
    mock_redis.evalsha = AsyncMock(return_value=list(evalsha_return))
    mock_redis.aclose = AsyncMock()

    store = RedisJobStore(mock_redis, key_prefix="job:")
    store._sha_cas = script_load_return
    return store, mock_redis


def _job() -> Job:
    return Job.create("Jane Doe", "Test University")


class TestPlainOperations:
    def test_redis_store_satisfies_protocol(self) -> None:
        store, _ = _make_store()
        assert isinstance(store, JobStore)

    async def test_get_missing_returns_none(self) -> None:
        store, mock_redis = _make_store()
        assert await store.get("nope") is None
        mock_redis.get.assert_awaited_once_with("job:nope")

    async def test_get_parses_record(self) -> None:
        job = _job()
        store, mock_redis = _make_store()
        mock_redis.get.return_value = job.to_record()

        loaded = await store.get(job.id)

        assert loaded == job

    async def test_put_writes_json_under_prefixed_key(self) -> None:
        job = _job()
        store, mock_redis = _make_store()

        await store.put(job)

        key, payload = mock_redis.set.await_args.args
        assert key == f"job:{job.id}"
        assert json.loads(payload)["professorName"] == "Jane Doe"

    async def test_put_with_expiry_sets_ttl(self) -> None:
        job = _job()
        store, mock_redis = _make_store()

        await store.put_with_expiry(job, 3600)

        assert mock_redis.set.await_args.kwargs == {"ex": 3600}

    async def test_delete(self) -> None:
        store, mock_redis = _make_store()
        await store.delete("abc")
        mock_redis.delete.assert_awaited_once_with("job:abc")


class TestCompareAndSet:
    async def test_success_returns_job_with_incremented_version(self) -> None:
        job = _job()
        store, mock_redis = _make_store(evalsha_return=(1, 2))

        stored = await store.compare_and_set(job.transition(JobStatus.RUNNING), 1)

        assert stored.version == 2
        assert stored.status == JobStatus.RUNNING
        sha, numkeys, key, expected, payload = mock_redis.evalsha.await_args.args
        assert (sha, numkeys, key, expected) == ("sha-fake", 1, f"job:{job.id}", "1")
        assert json.loads(payload)["version"] == 2

    async def test_version_mismatch_raises_conflict(self) -> None:
        store, _ = _make_store(evalsha_return=(0, 3))

        with pytest.raises(JobConflictError) as exc_info:
            await store.compare_and_set(_job(), 1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.current_version == 3

    async def test_missing_record_raises_conflict_with_no_version(self) -> None:
        store, _ = _make_store(evalsha_return=(0, -1))

        with pytest.raises(JobConflictError) as exc_info:
            await store.compare_and_set(_job(), 1)

        assert exc_info.value.current_version is None

    async def test_script_loaded_lazily(self) -> None:
        store, mock_redis = _make_store()
        store._sha_cas = ""

        await store.compare_and_set(_job(), 1)

        mock_redis.script_load.assert_awaited_once()

    async def test_reloads_script_after_noscript(self) -> None:
        store, mock_redis = _make_store(script_load_return="sha-new")
        store._sha_cas = "sha-stale"
        mock_redis.evalsha.side_effect = [NoScriptError("gone"), [1, 2]]

        stored = await store.compare_and_set(_job(), 1)

        assert stored.version == 2
        assert mock_redis.evalsha.await_count == 2
        assert mock_redis.evalsha.await_args.args[0] == "sha-new"


class TestUnavailable:
    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError("slow")])
    async def test_get_maps_connectivity_errors(self, error: Exception) -> None:
        store, mock_redis = _make_store()
        mock_redis.get.side_effect = error

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get("abc")

        assert exc_info.value.operation == "get"

    async def test_put_maps_connectivity_errors(self) -> None:
        store, mock_redis = _make_store()
        mock_redis.set.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailableError):
            await store.put(_job())

    async def test_compare_and_set_maps_connectivity_errors(self) -> None:
        store, mock_redis = _make_store()
        mock_redis.evalsha.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailableError):
            await store.compare_and_set(_job(), 1)

    async def test_ping_false_when_redis_down(self) -> None:
        store, mock_redis = _make_store()
        mock_redis.ping.side_effect = RedisConnectionError("refused")
        assert await store.ping() is False

    async def test_ping_true(self) -> None:
        store, _ = _make_store()
        assert await store.ping() is True


class TestIterJobs:
    async def test_scans_prefix_and_skips_bad_records(self) -> None:
        good = _job()
        store, mock_redis = _make_store()

        async def _scan_iter(match: str):
            assert match == "job:*"
            for key in ("job:a", "job:b", "job:c"):
                yield key

        mock_redis.scan_iter = _scan_iter
        mock_redis.get.side_effect = [good.to_record(), "{not json", None]

        jobs = [job async for job in store.iter_jobs()]

        assert jobs == [good]
