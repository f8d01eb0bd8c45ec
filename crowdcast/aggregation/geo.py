"""
Geometry helpers: grid binning and finite-difference velocity.

Distances use the flat-earth approximation of 111 km per degree of latitude,
with longitude scaled by cos(latitude).
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from crowdcast.aggregation.schemas import CrowdDataPoint, Velocity, ZERO_VELOCITY

METRES_PER_DEGREE = 111_000.0


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self):
        if self.north <= self.south:
            raise ValueError("north must be greater than south")
        if self.east <= self.west:
            raise ValueError("east must be greater than west")

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east


def cell_id(x: int, y: int) -> str:
    return f"{x}_{y}"


def cell_index(
    point: CrowdDataPoint,
    bounds: BoundingBox,
    resolution: int,
) -> Optional[tuple[int, int]]:
    """
    Map a point to its (x, y) cell, or None if it lies outside the box.

    x follows latitude, y follows longitude. Indices are clamped to
    [0, resolution - 1] so points on the north/east edge land in the last cell.
    """
    if not bounds.contains(point.lat, point.lng):
        return None
    norm_lat = (point.lat - bounds.south) / (bounds.north - bounds.south)
    norm_lng = (point.lng - bounds.west) / (bounds.east - bounds.west)
    x = min(max(math.floor(norm_lat * resolution), 0), resolution - 1)
    y = min(max(math.floor(norm_lng * resolution), 0), resolution - 1)
    return x, y


def velocity_between(
    previous: CrowdDataPoint,
    previous_at: datetime,
    current: CrowdDataPoint,
    current_at: datetime,
) -> Velocity:
    """
    Velocity in m/s between two observations; zero if no time has elapsed.

    x is the eastward component, y the northward one.
    """
    elapsed = (current_at - previous_at).total_seconds()
    if elapsed <= 0:
        return ZERO_VELOCITY
    d_north = (current.lat - previous.lat) * METRES_PER_DEGREE
    d_east = (
        (current.lng - previous.lng)
        * METRES_PER_DEGREE
        * math.cos(math.radians(current.lat))
    )
    return Velocity.from_components(d_east / elapsed, d_north / elapsed)
