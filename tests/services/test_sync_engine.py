"""
Unit tests for SyncEngine: local claims, remote claims and the shared-log subscription.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from community_grid.application.interfaces.collaborators import SharedLog
from community_grid.core.exceptions import InvalidCoordinateError, PublishFailureError
from community_grid.domain.claims.entities.claim import ClaimOrigin
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.grid.value_objects.cell_id import CellId
from community_grid.services.color_picker import FixedColorPicker
from community_grid.services.sync_engine import ClaimStatus, SyncEngine

LNG, LAT = 85.30725, 27.70425


def _remote_payload(cell: CellId, color: str = "#ff0055", timestamp: int = 1, **extra):
    payload = {"cellId": cell.key, "lng": LNG, "lat": LAT, "color": color, "timestamp": timestamp}
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_local_claim_inserts_renders_and_publishes(sync_engine: SyncEngine, memory_log, mock_render_sink, indexer):
    result = sync_engine.try_claim_local(LNG, LAT)

    assert result.status is ClaimStatus.INSERTED
    assert result.cell_id == indexer.cell_id_for(LNG, LAT)
    assert result.claim.color == "#00f2ff"
    assert sync_engine.claim_set.size() == 1
    assert sync_engine.metrics.claimed_cells == 1
    mock_render_sink.set_features.assert_called_once_with(sync_engine.claim_set.snapshot())

    assert await sync_engine.drain(timeout=1.0)
    assert memory_log.history == [{
        "cellId": result.cell_id.key,
        "lng": LNG,
        "lat": LAT,
        "color": "#00f2ff",
        "timestamp": 1_700_000_000_000,
        "origin": "replica-a",
    }]


@pytest.mark.asyncio
async def test_duplicate_local_claim_never_publishes(sync_engine: SyncEngine, memory_log, mock_render_sink):
    sync_engine.try_claim_local(LNG, LAT)
    second = sync_engine.try_claim_local(LNG + 0.00001, LAT + 0.00001)
    await sync_engine.drain(timeout=1.0)

    assert second.status is ClaimStatus.ALREADY_PRESENT
    assert second.claim is None
    assert len(memory_log.history) == 1
    assert mock_render_sink.set_features.call_count == 1
    assert sync_engine.metrics.metrics.duplicate_local == 1


@pytest.mark.asyncio
async def test_local_claim_with_per_call_color_picker(sync_engine: SyncEngine):
    result = sync_engine.try_claim_local(LNG, LAT, color_picker=FixedColorPicker("#7a00ff"))
    assert result.claim.color == "#7a00ff"


def test_invalid_coordinate_raises_and_leaves_state_untouched(sync_engine: SyncEngine, mock_render_sink):
    with pytest.raises(InvalidCoordinateError):
        sync_engine.try_claim_local(float("nan"), LAT)
    assert sync_engine.claim_set.size() == 0
    mock_render_sink.set_features.assert_not_called()


@pytest.mark.asyncio
async def test_publish_failure_keeps_local_claim(claim_set, indexer, mock_render_sink, metrics, task_tracker):
    failing_log = MagicMock(spec=SharedLog)
    failing_log.append = AsyncMock(side_effect=PublishFailureError("x_y", ConnectionError("down")))
    engine = SyncEngine(claim_set, indexer, failing_log, render_sink=mock_render_sink,
                        color_picker=FixedColorPicker("#00ff9d"), metrics=metrics, task_tracker=task_tracker)

    result = engine.try_claim_local(LNG, LAT)
    assert await engine.drain(timeout=1.0)

    assert result.inserted
    assert claim_set.size() == 1
    assert metrics.metrics.publish_failures == 1
    failing_log.append.assert_awaited_once()


@pytest.mark.asyncio
async def test_unexpected_adapter_error_counts_as_publish_failure(claim_set, indexer, metrics, task_tracker):
    broken_log = MagicMock(spec=SharedLog)
    broken_log.append = AsyncMock(side_effect=ValueError("bad serializer"))
    engine = SyncEngine(claim_set, indexer, broken_log, color_picker=FixedColorPicker("#00ff9d"),
                        metrics=metrics, task_tracker=task_tracker)

    result = engine.try_claim_local(LNG, LAT)
    assert await engine.drain(timeout=1.0)

    assert result.inserted
    assert claim_set.size() == 1
    assert metrics.metrics.publish_failures == 1
    assert task_tracker.failed_count == 1


def test_claim_without_running_loop_is_kept_and_counted_as_publish_failure(sync_engine: SyncEngine):
    result = sync_engine.try_claim_local(LNG, LAT)
    assert result.inserted
    assert sync_engine.claim_set.size() == 1
    assert sync_engine.metrics.metrics.publish_failures == 1


@pytest.mark.asyncio
async def test_own_echo_is_a_noop(sync_engine: SyncEngine, memory_log, mock_render_sink, flush_loop):
    await sync_engine.start(replay=True)
    sync_engine.try_claim_local(LNG, LAT)
    await sync_engine.drain(timeout=1.0)
    await flush_loop()

    assert sync_engine.claim_set.size() == 1
    assert mock_render_sink.set_features.call_count == 1
    assert sync_engine.metrics.metrics.duplicate_remote == 1


def test_remote_geometry_is_rebuilt_from_cell_id(sync_engine: SyncEngine, indexer):
    cell = CellId(10, 20)
    # transmitted coordinates point somewhere else entirely
    result = sync_engine.on_remote_payload(_remote_payload(cell, lng=-120.0, lat=-45.0))

    assert result.status is ClaimStatus.INSERTED
    claim = sync_engine.claim_set.get(cell)
    assert claim.geometry == indexer.polygon_for(cell)
    assert claim.origin is ClaimOrigin.REMOTE
    assert claim.color == "#ff0055"


def test_remote_after_local_is_already_present(sync_engine: SyncEngine, mock_render_sink):
    local = sync_engine.try_claim_local(LNG, LAT)
    result = sync_engine.on_remote_payload(_remote_payload(local.cell_id))

    assert result.status is ClaimStatus.ALREADY_PRESENT
    assert sync_engine.claim_set.get(local.cell_id).color == "#00f2ff"
    assert mock_render_sink.set_features.call_count == 1


def test_malformed_remote_payload_is_dropped(sync_engine: SyncEngine, mock_render_sink):
    result = sync_engine.on_remote_payload({"cellId": "garbage", "color": "#fff"})

    assert result.status is ClaimStatus.REJECTED
    assert result.reason
    assert sync_engine.claim_set.size() == 0
    assert sync_engine.metrics.metrics.malformed_events == 1
    mock_render_sink.set_features.assert_not_called()


def test_remote_claim_with_fractional_timestamp_is_applied(sync_engine: SyncEngine):
    result = sync_engine.on_remote_payload(_remote_payload(CellId(5, 5), timestamp=1700000000000.5))

    assert result.status is ClaimStatus.INSERTED
    assert sync_engine.claim_set.size() == 1
    assert sync_engine.claim_set.get(CellId(5, 5)).origin_timestamp == 1700000000000
    assert sync_engine.metrics.metrics.malformed_events == 0


def test_render_sink_failure_does_not_undo_claim(sync_engine: SyncEngine, mock_render_sink):
    mock_render_sink.set_features.side_effect = RuntimeError("map gone")
    result = sync_engine.on_remote_payload(_remote_payload(CellId(1, 1)))
    assert result.inserted
    assert sync_engine.claim_set.size() == 1


def test_count_listener_sees_new_size_before_call_returns(sync_engine: SyncEngine):
    seen = []
    sync_engine.metrics.add_count_listener(seen.append)
    sync_engine.on_remote_payload(_remote_payload(CellId(1, 1)))
    sync_engine.on_remote_payload(_remote_payload(CellId(1, 1)))
    sync_engine.on_remote_payload(_remote_payload(CellId(1, 2)))
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_start_replays_history(sync_engine: SyncEngine, memory_log, flush_loop):
    await memory_log.append_raw(_remote_payload(CellId(1, 1)))
    await memory_log.append_raw(_remote_payload(CellId(1, 2)))
    await memory_log.append_raw({"bogus": True})

    await sync_engine.start(replay=True)
    await flush_loop()

    assert sync_engine.is_subscribed
    assert sync_engine.claim_set.size() == 2
    assert sync_engine.metrics.metrics.malformed_events == 1


@pytest.mark.asyncio
async def test_start_without_replay_skips_history(sync_engine: SyncEngine, memory_log, flush_loop):
    await memory_log.append_raw(_remote_payload(CellId(1, 1)))
    await sync_engine.start(replay=False)
    await memory_log.append_raw(_remote_payload(CellId(1, 2)))
    await flush_loop()

    assert [claim.key for claim in sync_engine.claim_set] == ["1_2"]


@pytest.mark.asyncio
async def test_start_is_idempotent(sync_engine: SyncEngine, memory_log):
    await sync_engine.start()
    await sync_engine.start()
    assert memory_log.subscriber_count == 1


@pytest.mark.asyncio
async def test_stop_ignores_late_deliveries(sync_engine: SyncEngine, memory_log, flush_loop):
    await sync_engine.start()
    await memory_log.append_raw(_remote_payload(CellId(3, 3)))
    sync_engine.stop()
    sync_engine.stop()
    await flush_loop()

    assert not sync_engine.is_subscribed
    assert memory_log.subscriber_count == 0
    assert sync_engine.claim_set.size() == 0


@pytest.mark.asyncio
async def test_start_failure_propagates(claim_set, indexer):
    broken_log = MagicMock(spec=SharedLog)
    broken_log.subscribe = AsyncMock(side_effect=ConnectionError("no log"))
    engine = SyncEngine(claim_set, indexer, broken_log)

    with pytest.raises(ConnectionError):
        await engine.start()
    assert not engine.is_subscribed


@pytest.mark.asyncio
async def test_replicas_converge_on_same_set(indexer, memory_log, flush_loop):
    replica_a = SyncEngine(ClaimSet(), indexer, memory_log, color_picker=FixedColorPicker("#00f2ff"), replica_id="a")
    replica_b = SyncEngine(ClaimSet(), indexer, memory_log, color_picker=FixedColorPicker("#ff0055"), replica_id="b")
    await replica_a.start()
    await replica_b.start()

    replica_a.try_claim_local(LNG, LAT)
    replica_b.try_claim_local(LNG + 0.001, LAT)
    # both visit the same cell before seeing each other's events
    replica_a.try_claim_local(LNG + 0.002, LAT)
    replica_b.try_claim_local(LNG + 0.002, LAT)

    await replica_a.drain(timeout=1.0)
    await replica_b.drain(timeout=1.0)
    await flush_loop()

    keys_a = {claim.key for claim in replica_a.claim_set}
    keys_b = {claim.key for claim in replica_b.claim_set}
    assert keys_a == keys_b
    assert len(keys_a) == 3
