"""
Cycle buffering and batch assembly.

Cycles accumulate in a bounded buffer; a flush turns them into one Batch with
a time-series row per cycle and a spatial feature per non-empty cell.
"""

from collections import deque
from datetime import datetime
from typing import Iterable
from uuid import uuid4

import structlog

from crowdcast.aggregation.schemas import (
    Batch,
    BatchMetadata,
    CycleResult,
    SpatialFeature,
    TimeSeriesRow,
)

logger = structlog.get_logger(__name__)


class BatchBuffer:
    """
    Holds cycle results until a flush.

    ``batch_size`` is the size trigger; ``max_cycles`` caps how many cycles
    can pile up while the store is failing (oldest are dropped).
    """

    def __init__(self, batch_size: int = 50, max_cycles: int = 1000):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.max_cycles = max(max_cycles, batch_size)
        self._cycles: deque[CycleResult] = deque()

    def __len__(self) -> int:
        return len(self._cycles)

    def add(self, cycle: CycleResult) -> bool:
        """Buffer a cycle; returns True once the size trigger is reached."""
        self._cycles.append(cycle)
        self._enforce_cap()
        return len(self._cycles) >= self.batch_size

    def drain(self) -> list[CycleResult]:
        cycles = list(self._cycles)
        self._cycles.clear()
        return cycles

    def requeue(self, cycles: Iterable[CycleResult]) -> None:
        """Put cycles from a failed flush back in front of newer ones."""
        self._cycles.extendleft(reversed(list(cycles)))
        self._enforce_cap()

    def _enforce_cap(self) -> None:
        dropped = 0
        while len(self._cycles) > self.max_cycles:
            self._cycles.popleft()
            dropped += 1
        if dropped:
            logger.warning("buffer_cycles_dropped", dropped=dropped, cap=self.max_cycles)


def new_batch_id(now: datetime) -> str:
    return f"batch_{int(now.timestamp() * 1000)}_{uuid4().hex[:6]}"


def build_batch(
    cycles: list[CycleResult],
    *,
    event_id: str,
    grid_resolution: int,
    collection_interval: float,
    now: datetime,
) -> Batch:
    time_series = [
        TimeSeriesRow(
            timestamp=cycle.timestamp,
            total_people=cycle.metrics.total_people,
            avg_density=cycle.metrics.avg_density,
            avg_velocity=cycle.metrics.avg_velocity,
            congestion_score=cycle.metrics.congestion_score,
            hotspot_count=cycle.metrics.hotspot_count,
        )
        for cycle in cycles
    ]

    features = [
        SpatialFeature(
            timestamp=cycle.timestamp,
            cell_id=cell.cell_id,
            x=cell.x,
            y=cell.y,
            density=cell.density,
            person_count=cell.person_count,
            velocity_x=cell.velocity.x,
            velocity_y=cell.velocity.y,
            velocity_magnitude=cell.velocity.magnitude,
        )
        for cycle in cycles
        for cell in cycle.grid.values()
        if cell.person_count > 0
    ]

    return Batch(
        event_id=event_id,
        batch_id=new_batch_id(now),
        timestamp=now,
        time_series_data=time_series,
        spatial_features=features,
        metadata=BatchMetadata(
            grid_resolution=grid_resolution,
            data_point_count=sum(cycle.point_count for cycle in cycles),
            cycle_count=len(cycles),
            collection_interval=collection_interval,
        ),
    )
