"""Tests for event store backends."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
import orjson
from redis.exceptions import RedisError
from gitmonitor.config import Settings
from gitmonitor.models import Event, Report
from gitmonitor.store import (
    DuplicateReportError,
    InMemoryEventStore,
    RedisEventStore,
    StoreError,
    StoreInitError,
    create_store,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_event(event_id: str, minutes: int = 0, suspicious: bool = True, **kwargs) -> Event:
    return Event(
        id=event_id,
        type=kwargs.pop("type", "PushEvent"),
        repo_name="octo/repo",
        actor_name="octocat",
        created_at=BASE_TIME + timedelta(minutes=minutes),
        raw_payload=kwargs.pop("raw_payload", {"payload": {}}),
        is_suspicious=suspicious,
        **kwargs,
    )


def make_report(event_id: str, minutes: int = 0) -> Report:
    return Report(
        event_id=event_id,
        repo_name="octo/repo",
        event_type="PushEvent",
        overall_summary="Summary",
        root_cause="• cause",
        impact="• impact",
        next_steps="• step",
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_keeps_later_payload():
    """Upserting the same id twice leaves one event with the later payload."""
    store = InMemoryEventStore()

    await store.upsert_event(make_event("1", raw_payload={"payload": {"v": 1}}))
    await store.upsert_event(make_event("1", raw_payload={"payload": {"v": 2}}))

    pending = await store.list_unprocessed_suspicious_events(limit=10)
    assert len(pending) == 1
    stored = await store.get_event("1")
    assert stored.payload == {"v": 2}


@pytest.mark.asyncio
async def test_upsert_does_not_reset_processed_flag():
    store = InMemoryEventStore()
    await store.upsert_event(make_event("1"))
    await store.mark_processed("1")

    await store.upsert_event(make_event("1"))

    assert (await store.get_event("1")).processed is True
    assert await store.list_unprocessed_suspicious_events() == []


@pytest.mark.asyncio
async def test_list_unprocessed_suspicious_newest_first_and_bounded():
    store = InMemoryEventStore()
    for i in range(5):
        await store.upsert_event(make_event(str(i), minutes=i))
    await store.upsert_event(make_event("quiet", minutes=10, suspicious=False))
    await store.mark_processed("4")

    pending = await store.list_unprocessed_suspicious_events(limit=3)

    assert [e.id for e in pending] == ["3", "2", "1"]


@pytest.mark.asyncio
async def test_insert_report_rejects_duplicates():
    """An event never gets two reports."""
    store = InMemoryEventStore()
    await store.insert_report(make_report("1"))

    with pytest.raises(DuplicateReportError) as exc_info:
        await store.insert_report(make_report("1"))

    assert exc_info.value.event_id == "1"
    assert (await store.get_report("1")).overall_summary == "Summary"


@pytest.mark.asyncio
async def test_list_reports_newest_first_with_since_filter():
    store = InMemoryEventStore()
    for i in range(4):
        await store.insert_report(make_report(str(i), minutes=i))

    all_reports = await store.list_reports()
    assert [r.event_id for r in all_reports] == ["3", "2", "1", "0"]

    recent = await store.list_reports(since=BASE_TIME + timedelta(minutes=1))
    assert [r.event_id for r in recent] == ["3", "2"]

    limited = await store.list_reports(limit=1)
    assert [r.event_id for r in limited] == ["3"]


@pytest.mark.asyncio
async def test_memory_store_health_check():
    assert await InMemoryEventStore().health_check() is True


def test_create_store_defaults_to_memory():
    assert isinstance(create_store(Settings(STORE_BACKEND="memory")), InMemoryEventStore)


def test_create_store_falls_back_without_redis_url():
    store = create_store(Settings(STORE_BACKEND="redis", REDIS_URL=None))
    assert isinstance(store, InMemoryEventStore)


def test_create_store_selects_redis():
    store = create_store(Settings(STORE_BACKEND="redis", REDIS_URL="redis://localhost:6379"))
    assert isinstance(store, RedisEventStore)


def async_redis_client() -> AsyncMock:
    """A stand-in for redis.asyncio.Redis: awaitable commands, buffered pipeline."""
    client = AsyncMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline = MagicMock(return_value=pipe)
    return client


@pytest.mark.asyncio
async def test_redis_store_initialize_failure_is_fatal():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.side_effect = RedisError("Connection refused")

        store = RedisEventStore(redis_url="redis://localhost:6379")
        with pytest.raises(StoreInitError):
            await store.initialize()


@pytest.mark.asyncio
async def test_redis_store_upsert_indexes_pending_events():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.hget.return_value = None
        pipe = mock_redis.pipeline.return_value

        store = RedisEventStore(redis_url="redis://localhost:6379")
        await store.upsert_event(make_event("42"))

        key, field, data = pipe.hset.call_args[0]
        assert key == "gitmonitor:events"
        assert field == "42"
        assert orjson.loads(data)["repo_name"] == "octo/repo"
        pipe.zadd.assert_called_once_with(
            "gitmonitor:events:pending", {"42": BASE_TIME.timestamp()}
        )
        pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_store_upsert_keeps_processed_event_out_of_queue():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        processed = make_event("42", processed=True)
        mock_redis.hget.return_value = orjson.dumps(processed.model_dump(mode="json"))
        pipe = mock_redis.pipeline.return_value

        store = RedisEventStore(redis_url="redis://localhost:6379")
        await store.upsert_event(make_event("42"))

        assert orjson.loads(pipe.hset.call_args[0][2])["processed"] is True
        pipe.zrem.assert_called_once_with("gitmonitor:events:pending", "42")
        pipe.zadd.assert_not_called()


@pytest.mark.asyncio
async def test_redis_store_duplicate_report():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.hsetnx.return_value = 0

        store = RedisEventStore(redis_url="redis://localhost:6379")
        with pytest.raises(DuplicateReportError):
            await store.insert_report(make_report("7"))
        mock_redis.zadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_store_list_reports_uses_exclusive_since():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        report = make_report("9", minutes=5)
        mock_redis.zrevrangebyscore.return_value = [b"9"]
        mock_redis.hmget.return_value = [orjson.dumps(report.model_dump(mode="json"))]

        store = RedisEventStore(redis_url="redis://localhost:6379")
        reports = await store.list_reports(since=BASE_TIME, limit=5)

        assert [r.event_id for r in reports] == ["9"]
        mock_redis.zrevrangebyscore.assert_awaited_once_with(
            "gitmonitor:reports:index", "+inf", f"({BASE_TIME.timestamp()}", start=0, num=5
        )


@pytest.mark.asyncio
async def test_redis_store_health_check_failure():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.side_effect = RedisError("Connection refused")

        store = RedisEventStore(redis_url="redis://localhost:6379")
        assert await store.health_check() is False


@pytest.mark.asyncio
async def test_redis_store_list_reports_wraps_redis_errors():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.zrevrangebyscore.side_effect = RedisError("Connection refused")

        store = RedisEventStore(redis_url="redis://localhost:6379")
        with pytest.raises(StoreError):
            await store.list_reports()


@pytest.mark.asyncio
async def test_redis_store_close_awaits_client():
    with patch("gitmonitor.store.redis_store.Redis") as mock_redis_class:
        mock_redis = async_redis_client()
        mock_redis_class.from_url.return_value = mock_redis

        store = RedisEventStore(redis_url="redis://localhost:6379")
        await store.health_check()
        await store.close()

        mock_redis.aclose.assert_awaited_once()
