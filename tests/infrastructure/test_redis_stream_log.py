"""
Unit tests for RedisStreamSharedLog with a mocked Redis connection.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from community_grid.core.exceptions import PublishFailureError
from community_grid.domain.claims.events.remote_event import RemoteEvent
from community_grid.infrastructure.cache.redis_client import RedisClient
from community_grid.infrastructure.shared_log.redis_stream_log import RedisStreamSharedLog

STREAM = "community_grid_test"


@pytest.fixture
def mock_redis():
    redis_mock = MagicMock()
    redis_mock.xadd = AsyncMock(return_value="1-0")
    redis_mock.xrevrange = AsyncMock(return_value=[])
    redis_mock.xread = AsyncMock(return_value=[])
    return redis_mock


@pytest.fixture
def mock_redis_client(mock_redis):
    client = MagicMock(spec=RedisClient)
    client.connect_async = AsyncMock(return_value=mock_redis)
    client.close = AsyncMock()
    return client


@pytest.fixture
def stream_log(mock_redis_client) -> RedisStreamSharedLog:
    return RedisStreamSharedLog(mock_redis_client, stream_key=STREAM, block_ms=10, batch_size=5, retry_seconds=0.01)


def _event() -> RemoteEvent:
    return RemoteEvent(cell_id="426536_138521", lng=85.30725, lat=27.70425, color="#00f2ff", timestamp=1, origin="r1")


async def _wait_for(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_append_xadds_wire_payload(stream_log, mock_redis):
    await stream_log.append(_event())
    mock_redis.xadd.assert_awaited_once_with(STREAM, _event().to_wire())


@pytest.mark.asyncio
async def test_append_redis_error_becomes_publish_failure(stream_log, mock_redis):
    mock_redis.xadd.side_effect = RedisConnectionError("refused")
    with pytest.raises(PublishFailureError) as exc_info:
        await stream_log.append(_event())
    assert exc_info.value.cell_key == "426536_138521"


@pytest.mark.asyncio
async def test_append_connect_failure_becomes_publish_failure(stream_log, mock_redis_client):
    mock_redis_client.connect_async.side_effect = OSError("no route")
    with pytest.raises(PublishFailureError):
        await stream_log.append(_event())


@pytest.mark.asyncio
async def test_subscribe_with_replay_reads_from_start_and_dispatches(stream_log, mock_redis, mock_redis_client):
    batches = [[(STREAM, [("1-0", {"cellId": "1_1"}), ("2-0", {"cellId": "1_2"})])]]

    async def fake_xread(streams, count=None, block=None):
        if batches:
            return batches.pop(0)
        await asyncio.sleep(0.01)
        return []

    mock_redis.xread.side_effect = fake_xread
    received = []

    subscription = await stream_log.subscribe(received.append, replay=True)
    await _wait_for(lambda: len(received) == 2)

    assert received == [{"cellId": "1_1"}, {"cellId": "1_2"}]
    first_call = mock_redis.xread.await_args_list[0]
    assert first_call.args[0] == {STREAM: "0-0"}
    assert first_call.kwargs == {"count": 5, "block": 10}
    # follow-up reads continue after the last delivered id
    await _wait_for(lambda: mock_redis.xread.await_count >= 2)
    assert mock_redis.xread.await_args_list[1].args[0] == {STREAM: "2-0"}

    subscription.unsubscribe()
    await stream_log.close()
    mock_redis_client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_subscribe_without_replay_starts_at_tail(stream_log, mock_redis):
    mock_redis.xrevrange.return_value = [("42-0", {"cellId": "9_9"})]

    await stream_log.subscribe(lambda payload: None, replay=False)
    await _wait_for(lambda: mock_redis.xread.await_count >= 1)

    mock_redis.xrevrange.assert_awaited_once_with(STREAM, count=1)
    assert mock_redis.xread.await_args_list[0].args[0] == {STREAM: "42-0"}
    await stream_log.close()


@pytest.mark.asyncio
async def test_read_loop_retries_after_redis_error(stream_log, mock_redis, mocker):
    mock_logger_warning = mocker.patch("community_grid.infrastructure.shared_log.redis_stream_log.logger.warning")
    responses = [RedisConnectionError("lost"), [(STREAM, [("5-0", {"cellId": "3_3"})])]]

    async def flaky_xread(streams, count=None, block=None):
        if responses:
            response = responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        await asyncio.sleep(0.01)
        return []

    mock_redis.xread.side_effect = flaky_xread
    received = []

    await stream_log.subscribe(received.append)
    await _wait_for(lambda: received == [{"cellId": "3_3"}])

    mock_logger_warning.assert_called()
    await stream_log.close()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_reader(stream_log, mock_redis, mocker):
    mocker.patch("community_grid.infrastructure.shared_log.redis_stream_log.logger.error")
    batches = [
        [(STREAM, [("1-0", {"cellId": "bad"})])],
        [(STREAM, [("2-0", {"cellId": "good"})])],
    ]

    async def fake_xread(streams, count=None, block=None):
        if batches:
            return batches.pop(0)
        await asyncio.sleep(0.01)
        return []

    mock_redis.xread.side_effect = fake_xread
    received = []

    def callback(payload):
        if payload["cellId"] == "bad":
            raise ValueError("bad payload")
        received.append(payload)

    await stream_log.subscribe(callback)
    await _wait_for(lambda: received == [{"cellId": "good"}])
    await stream_log.close()
