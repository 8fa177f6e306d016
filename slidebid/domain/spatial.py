"""
H3 spatial prefilter for radius searches
=========================================

Each request stores the H3 cell of its pickup point.  A radius search
first narrows candidates to the cells of a ``grid_disk`` around the
origin (a plain ``IN`` on an indexed string column), then applies the
exact haversine filter in Python.

Ring size
---------
Cells of ring ``k`` lie at least ``~1.5 x k x edge`` from the origin
centre, minus one edge for the cell's own extent, so every point within
``r`` km is covered once ``k >= (r + edge) / (1.5 x edge)``.  One extra
ring absorbs H3's edge-length distortion.

Complexity: O(k²) cells for ring ``k``.
"""

from __future__ import annotations

import math
from typing import Optional

import h3


def pickup_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def ring_size(radius_km: float, resolution: int = 7) -> int:
    edge = h3.average_hexagon_edge_length(resolution, unit="km")
    return math.ceil((radius_km + edge) / (1.5 * edge)) + 1


def cells_within(
    lat: float,
    lng: float,
    radius_km: float,
    resolution: int = 7,
    max_ring: int = 40,
) -> Optional[set[str]]:
    """
    Return the H3 cells that cover a circle of *radius_km* around a point,
    or ``None`` when the circle needs more than *max_ring* rings (the
    caller should then skip the prefilter).
    """
    k = ring_size(radius_km, resolution)
    if k > max_ring:
        return None
    return set(h3.grid_disk(pickup_cell(lat, lng, resolution), k))
