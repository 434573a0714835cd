import logging
from fastapi import FastAPI

from community_grid.api.websockets.connection_manager import GRID_CHANNEL, ConnectionManager
from community_grid.api.websockets.render_sink import BroadcastRenderSink
from community_grid.core.config import settings
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.grid.services.grid_indexer import GridIndexer
from community_grid.infrastructure.shared_log.factory import build_shared_log
from community_grid.services.color_picker import RandomPaletteColorPicker
from community_grid.services.sync_engine import SyncEngine
from community_grid.utils.background_tasks import BackgroundTaskTracker
from community_grid.utils.metrics_collector import ClaimMetricsCollector

logger = logging.getLogger(__name__)


async def on_startup(app: FastAPI):
    """
    Actions to perform when the application starts.
    - Build the replica's grid indexer, claim set and metrics.
    - Create the shared log for the configured backend.
    - Wire the SyncEngine to the broadcast rendering sink.
    - Subscribe to the shared log (with history replay if configured).
    """
    logger.info(f"--- {settings.APP_NAME}: Executing Application Startup Tasks ---")

    indexer = GridIndexer(settings.GRID_SIZE)
    claim_set = ClaimSet()
    metrics = ClaimMetricsCollector()
    task_tracker = BackgroundTaskTracker(name="replica")
    connection_manager = ConnectionManager()
    broadcast_sink = BroadcastRenderSink(connection_manager, task_tracker, channel=GRID_CHANNEL)

    app.state.indexer = indexer
    app.state.claim_set = claim_set
    app.state.metrics = metrics
    app.state.task_tracker = task_tracker
    app.state.connection_manager = connection_manager
    app.state.broadcast_sink = broadcast_sink

    # 1. Shared log
    logger.info(f"Creating shared log (backend={settings.SHARED_LOG_BACKEND})...")
    shared_log = build_shared_log(settings)
    app.state.shared_log = shared_log

    # 2. SyncEngine
    sync_engine = SyncEngine(
        claim_set=claim_set,
        indexer=indexer,
        shared_log=shared_log,
        render_sink=broadcast_sink,
        color_picker=RandomPaletteColorPicker(settings.COLOR_PALETTE),
        metrics=metrics,
        task_tracker=task_tracker,
        replica_id=settings.REPLICA_ID,
    )
    app.state.remove_count_listener = metrics.add_count_listener(broadcast_sink.publish_count)
    app.state.sync_engine = sync_engine

    # 3. Subscribe
    logger.info(f"Subscribing to shared log (replay={settings.REPLAY_HISTORY_ON_SUBSCRIBE})...")
    try:
        await sync_engine.start(replay=settings.REPLAY_HISTORY_ON_SUBSCRIBE)
        logger.info("SyncEngine subscribed to shared log.")
    except Exception as e:
        logger.error(f"WARNING: Failed to subscribe to shared log; continuing local-only: {e}", exc_info=True)

    logger.info(f"--- {settings.APP_NAME}: Application Startup Tasks Completed (replica={settings.REPLICA_ID}) ---")


async def on_shutdown(app: FastAPI):
    """
    Actions to perform when the application shuts down.
    - Unsubscribe from the shared log.
    - Give in-flight publishes a bounded time to finish, then cancel the rest.
    - Close the shared log.
    """
    logger.info(f"--- {settings.APP_NAME}: Executing Application Shutdown Tasks ---")

    sync_engine = getattr(app.state, "sync_engine", None)
    if sync_engine is not None:
        sync_engine.stop()

    remove_count_listener = getattr(app.state, "remove_count_listener", None)
    if remove_count_listener is not None:
        remove_count_listener()

    task_tracker = getattr(app.state, "task_tracker", None)
    if task_tracker is not None:
        drained = await task_tracker.drain(timeout=settings.SHUTDOWN_DRAIN_TIMEOUT_SECONDS)
        if not drained:
            task_tracker.cancel_all()

    broadcast_sink = getattr(app.state, "broadcast_sink", None)
    if broadcast_sink is not None:
        broadcast_sink.close()

    shared_log = getattr(app.state, "shared_log", None)
    if shared_log is not None:
        try:
            await shared_log.close()
            logger.info("Shared log closed.")
        except Exception as e:
            logger.error(f"Error closing shared log: {e}", exc_info=True)

    logger.info(f"--- {settings.APP_NAME}: Application Shutdown Tasks Completed ---")
