"""
Motion tracking: position fixes -> candidate claims and viewport updates.
"""
import logging
from typing import Any, Optional

from community_grid.application.interfaces.collaborators import (
    NullRenderSink,
    PositionSource,
    RenderingSink,
    StatusSink,
    Subscription,
)
from community_grid.core.exceptions import InvalidCoordinateError
from community_grid.domain.position.position_status import PositionStatus, status_for
from community_grid.services.sync_engine import ClaimResult, SyncEngine

logger = logging.getLogger(__name__)


class MotionTracker:
    """
    Consumes one position source on behalf of one participant.

    Each valid fix goes through `SyncEngine.try_claim_local`; the viewport is
    recentered and the marker moved regardless of the claim outcome. Source
    errors become a classified status on the status sink and never end the
    subscription; the next valid fix clears the status.
    """

    def __init__(
        self,
        sync_engine: SyncEngine,
        position_source: PositionSource,
        render_sink: Optional[RenderingSink] = None,
        status_sink: Optional[StatusSink] = None,
        name: str = "participant",
    ):
        self.sync_engine = sync_engine
        self.position_source = position_source
        self.render_sink = render_sink or NullRenderSink()
        self.status_sink = status_sink or NullRenderSink()
        self.name = name
        self._subscription: Optional[Subscription] = None
        self._active = False
        self.current_status: Optional[PositionStatus] = None
        self.last_result: Optional[ClaimResult] = None

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._subscription = self.position_source.subscribe(self._on_fix, self._on_error)
        logger.info(f"MotionTracker[{self.name}] subscribed to position source")

    def stop(self) -> None:
        """Stop receiving fixes; safe to call repeatedly or before start()."""
        self._active = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()
            logger.info(f"MotionTracker[{self.name}] unsubscribed from position source")

    @property
    def active(self) -> bool:
        return self._active

    def manual_override(self, lng: float, lat: float) -> ClaimResult:
        """Claim a user-selected point through the same path as a real fix."""
        logger.info(f"MotionTracker[{self.name}] manual position ({lng}, {lat})")
        return self._handle_position(lng, lat)

    def _on_fix(self, lng: float, lat: float) -> None:
        if not self._active:
            return
        self._handle_position(lng, lat)

    def _on_error(self, error: Any) -> None:
        if not self._active:
            return
        status = status_for(error)
        if self.current_status is not None and self.current_status.kind is status.kind:
            return
        self.current_status = status
        logger.warning(f"MotionTracker[{self.name}] position unavailable: {status.kind.name}")
        self.status_sink.show_status(status)

    def _handle_position(self, lng: float, lat: float) -> ClaimResult:
        try:
            result = self.sync_engine.try_claim_local(lng, lat)
        except InvalidCoordinateError as e:
            self.sync_engine.metrics.record_rejected_position()
            logger.warning(f"MotionTracker[{self.name}] dropping fix: {e}")
            result = ClaimResult.rejected(e.reason)
            self.last_result = result
            return result

        if self.current_status is not None:
            self.current_status = None
            self.status_sink.clear_status()

        self.render_sink.recenter(lng, lat)
        self.render_sink.place_marker(lng, lat)
        self.last_result = result
        return result
