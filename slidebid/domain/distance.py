"""
Distance and travel-time calculation using the Haversine formula.

Assumption
----------
Great-circle (Haversine) distance stands in for road distance so pricing
and ETAs work without a routing service.  A distance of ``0`` returned by
:func:`distance` means *unknown* (a coordinate was missing), not
co-located; callers must not display it as a real distance.

Complexity: O(1) per call.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

EARTH_RADIUS_KM = 6_371.0
DEFAULT_AVG_SPEED_KMH = 30.0

logger = logging.getLogger(__name__)


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the unrounded great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _coerce(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def distance(lat1: Any, lon1: Any, lat2: Any, lon2: Any) -> float:
    """
    Distance in km rounded to 2 decimals.

    Accepts numbers or numeric strings.  Returns ``0`` when any coordinate
    is missing or non-numeric.
    """
    coords = [_coerce(v) for v in (lat1, lon1, lat2, lon2)]
    if any(c is None for c in coords):
        logger.warning("Missing coordinates for distance calculation")
        return 0
    return round(haversine_km(*coords), 2)


def travel_time(
    distance_km: float, avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH
) -> int:
    """Estimated travel time in whole minutes (half-up rounding)."""
    if not distance_km or distance_km <= 0 or avg_speed_kmh <= 0:
        return 0
    minutes = distance_km / avg_speed_kmh * 60
    return int(math.floor(minutes + 0.5))
