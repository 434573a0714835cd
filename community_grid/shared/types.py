# FILE: community_grid/shared/types.py
"""
Module for shared type aliases used across the application.
"""
from typing import Any, Callable, Dict, List, Tuple

# (lng, lat) pair in degrees
LngLat = Tuple[float, float]

# Five-point closed ring, first point repeated at the end
ClosedRing = Tuple[LngLat, LngLat, LngLat, LngLat, LngLat]

# GeoJSON structures as plain JSON-serializable dicts
Feature = Dict[str, Any]
FeatureCollection = Dict[str, Any]

# Raw wire payload as read from the shared log
WirePayload = Dict[str, Any]

FixCallback = Callable[[float, float], None]
ErrorCallback = Callable[[Any], None]
PayloadCallback = Callable[[WirePayload], Any]
CountListener = Callable[[int], None]


def ring_to_coordinates(ring: ClosedRing) -> List[List[List[float]]]:
    """Converts a closed ring into GeoJSON Polygon coordinates."""
    return [[[lng, lat] for lng, lat in ring]]
