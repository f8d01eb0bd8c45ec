"""
Spatial grid aggregation.

Bins crowd points into an R×R grid over a bounding box, tracks per-point
movement velocity, derives movement metrics and batches cycle results
for the durable store.
"""

from crowdcast.aggregation.aggregator import GridAggregator
from crowdcast.aggregation.geo import BoundingBox
from crowdcast.aggregation.schemas import (
    Batch,
    CellSnapshot,
    CrowdDataPoint,
    CycleResult,
    Hotspot,
    MovementMetrics,
    Velocity,
)

__all__ = [
    "Batch",
    "BoundingBox",
    "CellSnapshot",
    "CrowdDataPoint",
    "CycleResult",
    "GridAggregator",
    "Hotspot",
    "MovementMetrics",
    "Velocity",
]
