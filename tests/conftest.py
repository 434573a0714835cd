"""
Global fixtures for the community grid test suite.
"""
import os

# Settings are read at import time; tests never need a Redis server.
os.environ.setdefault("SHARED_LOG_BACKEND", "memory")

import asyncio
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from community_grid.application.interfaces.collaborators import RenderingSink, StatusSink
from community_grid.core.config import DEFAULT_COLOR_PALETTE, Settings
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.grid.services.grid_indexer import GridIndexer
from community_grid.infrastructure.position.client_position_source import ClientPositionSource
from community_grid.infrastructure.shared_log.memory_log import InMemorySharedLog
from community_grid.services.color_picker import FixedColorPicker
from community_grid.services.sync_engine import SyncEngine
from community_grid.utils.background_tasks import BackgroundTaskTracker
from community_grid.utils.metrics_collector import ClaimMetricsCollector

GRID_SIZE = 0.0002
TEST_COLOR = "#00f2ff"


@pytest.fixture(scope="session")
def mock_settings_base_values() -> Dict[str, Any]:
    """
    Base values for a mocked Settings object.
    Tests can override these by providing their own dictionary to mock_settings.
    """
    return {
        "APP_NAME": "Community Grid Test",
        "API_V1_PREFIX": "/api/v1",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "GRID_SIZE": GRID_SIZE,
        "COLOR_PALETTE": list(DEFAULT_COLOR_PALETTE),
        "MAP_CENTER_LNG": 85.3072,
        "MAP_CENTER_LAT": 27.7042,
        "MAP_ZOOM": 17,
        "MAP_STYLE_URL": "https://tiles.openfreemap.org/styles/liberty",
        "REPLICA_ID": "test-replica",
        "SHARED_LOG_BACKEND": "memory",
        "REPLAY_HISTORY_ON_SUBSCRIBE": True,
        "SHARED_LOG_STREAM_KEY": "community_grid_test",
        "SHARED_LOG_READ_BLOCK_MS": 100,
        "SHARED_LOG_READ_BATCH": 10,
        "SHARED_LOG_RETRY_SECONDS": 0.01,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": None,
        "CORS_ALLOW_ORIGINS": ["*"],
        "SHUTDOWN_DRAIN_TIMEOUT_SECONDS": 1.0,
    }


@pytest.fixture
def mock_settings(mock_settings_base_values, request):
    """
    A MagicMock standing in for Settings.
    Override values with @pytest.mark.parametrize("mock_settings", [{...}], indirect=True).
    """
    overrides = getattr(request, "param", {}) or {}
    settings_mock = MagicMock(spec=Settings)
    for key, value in {**mock_settings_base_values, **overrides}.items():
        setattr(settings_mock, key, value)
    return settings_mock


@pytest.fixture
def indexer() -> GridIndexer:
    return GridIndexer(GRID_SIZE)


@pytest.fixture
def claim_set() -> ClaimSet:
    return ClaimSet()


@pytest.fixture
def memory_log() -> InMemorySharedLog:
    return InMemorySharedLog()


@pytest.fixture
def metrics() -> ClaimMetricsCollector:
    return ClaimMetricsCollector()


@pytest.fixture
def task_tracker() -> BackgroundTaskTracker:
    return BackgroundTaskTracker(name="test")


@pytest.fixture
def mock_render_sink() -> MagicMock:
    return MagicMock(spec=RenderingSink)


@pytest.fixture
def mock_status_sink() -> MagicMock:
    return MagicMock(spec=StatusSink)


@pytest.fixture
def sync_engine(claim_set, indexer, memory_log, mock_render_sink, metrics, task_tracker) -> SyncEngine:
    return SyncEngine(
        claim_set=claim_set,
        indexer=indexer,
        shared_log=memory_log,
        render_sink=mock_render_sink,
        color_picker=FixedColorPicker(TEST_COLOR),
        metrics=metrics,
        task_tracker=task_tracker,
        replica_id="replica-a",
        clock=lambda: 1_700_000_000_000,
    )


@pytest.fixture
def position_source() -> ClientPositionSource:
    return ClientPositionSource(name="test-device")


@pytest.fixture
def flush_loop():
    """Returns a coroutine function that lets call_soon callbacks and spawned tasks run."""
    async def _flush(iterations: int = 10) -> None:
        for _ in range(iterations):
            await asyncio.sleep(0)
    return _flush
