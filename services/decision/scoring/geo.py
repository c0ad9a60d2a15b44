"""Great-circle distance for member-to-option location scoring."""

from __future__ import annotations

import math

from services.decision.constraints.types import GeoPoint

_EARTH_RADIUS_KM = 6371.0


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute haversine distance between two points in kilometers."""
    lat1_r = math.radians(a.latitude)
    lat2_r = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlng = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return _EARTH_RADIUS_KM * c
