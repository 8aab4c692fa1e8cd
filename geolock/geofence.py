"""
Geofence evaluation: displacement between the locked reference position and
a newly observed position, classified into a severity tier.

No I/O, no state.
"""
from __future__ import annotations

import dataclasses
from math import atan2, cos, radians, sin, sqrt

from .const import (
    DEFAULT_THRESHOLD_M,
    EARTH_RADIUS_M,
    HIGH_SEVERITY_M,
    MEDIUM_SEVERITY_M,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
)
from .models import Position


@dataclasses.dataclass(frozen=True)
class GeofenceResult:
    distance_m: float
    severity: str | None   # None unless exceeded
    exceeded: bool


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two GPS points in metres."""
    d_lat = radians(lat2 - lat1)
    d_lon = radians(lon2 - lon1)
    a = (
        sin(d_lat / 2) ** 2
        + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lon / 2) ** 2
    )
    # Rounding can push a a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * atan2(sqrt(a), sqrt(1 - a))


def classify_severity(distance_m: float) -> str:
    if distance_m > HIGH_SEVERITY_M:
        return SEVERITY_HIGH
    if distance_m > MEDIUM_SEVERITY_M:
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def evaluate(
    reference: Position,
    current: Position,
    threshold: float = DEFAULT_THRESHOLD_M,
) -> GeofenceResult:
    """
    Compare current against reference.

    exceeded is strict (distance > threshold); severity is only set when
    exceeded.
    """
    distance = haversine_m(reference.lat, reference.lon, current.lat, current.lon)
    exceeded = distance > threshold
    return GeofenceResult(
        distance_m=distance,
        severity=classify_severity(distance) if exceeded else None,
        exceeded=exceeded,
    )
