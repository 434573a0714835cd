"""
Exception hierarchy for the community grid service.

None of these are fatal to a replica: callers log them and carry on
(local-only when the shared log is unreachable).
"""
from enum import Enum
from typing import Any, Optional


class CommunityGridError(Exception):
    """Base class for all community grid errors."""


class InvalidCoordinateError(CommunityGridError, ValueError):
    """Raised when a coordinate cannot be mapped onto the grid."""

    def __init__(self, lng: Any, lat: Any, reason: str):
        self.lng = lng
        self.lat = lat
        self.reason = reason
        super().__init__(f"Invalid coordinate ({lng}, {lat}): {reason}")


class PositionErrorKind(Enum):
    """Classified position-source failures (Geolocation API codes)."""
    PERMISSION_DENIED = 1
    SIGNAL_UNAVAILABLE = 2
    TIMEOUT = 3


class PositionUnavailableError(CommunityGridError):
    """A position source could not deliver a fix."""

    def __init__(self, kind: PositionErrorKind, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        message = kind.name if detail is None else f"{kind.name}: {detail}"
        super().__init__(message)


class PublishFailureError(CommunityGridError):
    """The shared log did not confirm an append."""

    def __init__(self, cell_key: str, cause: Optional[BaseException] = None):
        self.cell_key = cell_key
        self.cause = cause
        super().__init__(f"Failed to publish claim for cell {cell_key}: {cause}")


class MalformedRemoteEventError(CommunityGridError):
    """An incoming shared-log payload is missing or has invalid fields."""

    def __init__(self, payload: Any, reason: str):
        self.payload = payload
        self.reason = reason
        super().__init__(f"Malformed remote event: {reason}")
