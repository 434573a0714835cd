"""
Classified, human-readable status for position-source failures.
"""
from dataclasses import dataclass
from typing import Any, Dict

from community_grid.core.exceptions import PositionErrorKind, PositionUnavailableError

STATUS_MESSAGES: Dict[PositionErrorKind, str] = {
    PositionErrorKind.PERMISSION_DENIED: "Location permission denied. Allow location access to claim cells.",
    PositionErrorKind.SIGNAL_UNAVAILABLE: "Location signal unavailable. Waiting for a position fix...",
    PositionErrorKind.TIMEOUT: "Timed out waiting for a position fix. Retrying...",
}

_KIND_ALIASES: Dict[str, PositionErrorKind] = {
    "permission_denied": PositionErrorKind.PERMISSION_DENIED,
    "permissiondenied": PositionErrorKind.PERMISSION_DENIED,
    "signal_unavailable": PositionErrorKind.SIGNAL_UNAVAILABLE,
    "position_unavailable": PositionErrorKind.SIGNAL_UNAVAILABLE,
    "positionunavailable": PositionErrorKind.SIGNAL_UNAVAILABLE,
    "timeout": PositionErrorKind.TIMEOUT,
}


@dataclass(frozen=True)
class PositionStatus:
    kind: PositionErrorKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.name.lower(), "code": self.kind.value, "message": self.message}


def classify_position_error(error: Any) -> PositionErrorKind:
    """
    Map a raw position-source error onto a PositionErrorKind.

    Accepts the kind itself, a PositionUnavailableError, a Geolocation API
    code (1, 2, 3) or a kind name. Anything unrecognized counts as
    SIGNAL_UNAVAILABLE.
    """
    if isinstance(error, PositionErrorKind):
        return error
    if isinstance(error, PositionUnavailableError):
        return error.kind
    if isinstance(error, int) and not isinstance(error, bool):
        try:
            return PositionErrorKind(error)
        except ValueError:
            return PositionErrorKind.SIGNAL_UNAVAILABLE
    if isinstance(error, str):
        normalized = error.strip().lower().replace("-", "_").replace(" ", "_")
        if normalized.isdigit():
            return classify_position_error(int(normalized))
        return _KIND_ALIASES.get(normalized, PositionErrorKind.SIGNAL_UNAVAILABLE)
    return PositionErrorKind.SIGNAL_UNAVAILABLE


def status_for(error: Any) -> PositionStatus:
    kind = classify_position_error(error)
    return PositionStatus(kind=kind, message=STATUS_MESSAGES[kind])
