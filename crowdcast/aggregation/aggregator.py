"""
Grid Aggregator — ingest cycles, metrics and batch flushing.

One ingest call is one cycle: points are validated, movement records are
updated, the grid is rebuilt and the cycle result is buffered. A full
buffer is flushed inside the triggering ingest; the scheduler flushes on
an interval as well.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

import structlog
from pydantic import ValidationError

from crowdcast.aggregation.batching import BatchBuffer, build_batch
from crowdcast.aggregation.geo import BoundingBox, cell_index
from crowdcast.aggregation.grid import SpatialGrid
from crowdcast.aggregation.movement import MovementTracker
from crowdcast.aggregation.schemas import (
    Batch,
    CellSnapshot,
    CrowdDataPoint,
    CycleResult,
    MovementMetrics,
)
from crowdcast.errors import IngestionError, PersistenceError
from crowdcast.services.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class BatchStore(Protocol):
    """Durable sink for flushed batches."""

    async def insert_batch(self, batch: Batch) -> str:
        ...

    async def get_historical_data(self, hours: float = 24) -> dict[str, list[dict]]:
        ...


class GridAggregator:
    """
    Aggregates crowd points into a fixed-resolution grid.

    Grid and movement state are guarded by one lock; the buffer has its own
    flush lock so a slow store never blocks ingestion.
    """

    def __init__(
        self,
        store: Optional[BatchStore] = None,
        *,
        bounds: BoundingBox,
        resolution: int = 20,
        batch_size: int = 50,
        max_buffered_cycles: int = 1000,
        collection_interval_seconds: float = 30.0,
        event_id: str = "current_event",
        clock: Optional[Clock] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.store = store
        self.bounds = bounds
        self.resolution = resolution
        self.collection_interval_seconds = collection_interval_seconds
        self.event_id = event_id
        self.clock = clock or SystemClock()
        self.on_error = on_error

        self.grid = SpatialGrid(resolution)
        self.movement = MovementTracker()
        self.buffer = BatchBuffer(batch_size, max_buffered_cycles)

        self._lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()
        self._last_metrics: Optional[MovementMetrics] = None
        self._batch_listeners: list[Callable[[Batch], Any]] = []

    # ── Ingestion ──────────────────────────────────────────────────────

    async def ingest(
        self, points: Iterable[CrowdDataPoint | Mapping[str, Any]]
    ) -> CycleResult:
        """Run one aggregation cycle over ``points`` and buffer the result."""
        async with self._lock:
            now = self.clock.now()
            binned = []
            valid = 0
            skipped = 0

            for raw in points:
                try:
                    point = self._coerce(raw)
                except IngestionError as exc:
                    skipped += 1
                    logger.debug("crowd_point_skipped", reason=exc.message)
                    continue

                valid += 1
                velocity = self.movement.record(point, point.timestamp or now)
                index = cell_index(point, self.bounds, self.resolution)
                if index is None:
                    logger.debug("crowd_point_out_of_bounds", lat=point.lat, lng=point.lng)
                    continue
                binned.append((index[0], index[1], point, velocity))

            self.grid.accumulate(binned, now)
            metrics = self.grid.movement_metrics(now)
            self._last_metrics = metrics

            cycle = CycleResult(
                timestamp=now,
                point_count=valid,
                skipped_count=skipped,
                grid=self.grid.snapshot(),
                metrics=metrics,
            )

        logger.info(
            "crowd_cycle_ingested",
            points=valid,
            binned=len(binned),
            skipped=skipped,
            total_people=metrics.total_people,
            hotspots=metrics.hotspot_count,
        )
        await self.add_to_buffer(cycle)
        return cycle

    @staticmethod
    def _coerce(raw: CrowdDataPoint | Mapping[str, Any]) -> CrowdDataPoint:
        if isinstance(raw, CrowdDataPoint):
            return raw
        try:
            return CrowdDataPoint.model_validate(raw)
        except ValidationError as exc:
            raise IngestionError(
                f"invalid crowd point: {exc.error_count()} validation error(s)",
                point=raw,
            ) from exc

    # ── Read views ─────────────────────────────────────────────────────

    def get_grid_snapshot(self) -> dict[str, CellSnapshot]:
        return self.grid.snapshot()

    def calculate_movement_metrics(self) -> MovementMetrics:
        """Metrics over the current grid contents."""
        if self._last_metrics is not None:
            return self._last_metrics
        return self.grid.movement_metrics(self.clock.now())

    def get_current_grid_state(self) -> dict[str, Any]:
        return {
            "grid": self.get_grid_snapshot(),
            "metrics": self.calculate_movement_metrics(),
            "buffered_cycles": len(self.buffer),
            "tracked_movements": len(self.movement),
        }

    # ── Buffering & flush ──────────────────────────────────────────────

    def add_batch_listener(self, listener: Callable[[Batch], Any]) -> None:
        self._batch_listeners.append(listener)

    async def add_to_buffer(self, cycle: CycleResult) -> Optional[Batch]:
        """Buffer a cycle, flushing when the size trigger is reached."""
        if not self.buffer.add(cycle):
            return None
        try:
            return await self.flush()
        except PersistenceError as exc:
            logger.error("batch_flush_failed", trigger="size", error=exc.message)
            self._report(exc)
            return None

    async def flush(self) -> Optional[Batch]:
        """
        Persist all buffered cycles as one batch.

        Returns None when the buffer is empty. On a store failure the cycles
        go back into the buffer and PersistenceError is raised.
        """
        async with self._flush_lock:
            cycles = self.buffer.drain()
            if not cycles:
                return None

            batch = build_batch(
                cycles,
                event_id=self.event_id,
                grid_resolution=self.resolution,
                collection_interval=self.collection_interval_seconds,
                now=self.clock.now(),
            )

            if self.store is not None:
                try:
                    await self.store.insert_batch(batch)
                except PersistenceError:
                    self.buffer.requeue(cycles)
                    raise

        logger.info(
            "batch_flushed",
            batch_id=batch.batch_id,
            cycles=len(batch.time_series_data),
            features=len(batch.spatial_features),
        )
        for listener in self._batch_listeners:
            listener(batch)
        return batch

    async def get_historical_data(self, hours: float = 24) -> dict[str, list[dict]]:
        """Stored time-series and spatial batches from the last ``hours``."""
        if self.store is None:
            return {"timeSeriesData": [], "spatialData": []}
        return await self.store.get_historical_data(hours)

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)
