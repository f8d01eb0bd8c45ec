"""
Spatial Grid — per-cycle density and velocity aggregation.

Every cycle resets all cells, accumulates the binned points, averages
velocities per cell and appends one entry to each cell's bounded history.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from crowdcast.aggregation.geo import cell_id
from crowdcast.aggregation.schemas import (
    CellSnapshot,
    CrowdDataPoint,
    Hotspot,
    MovementMetrics,
    Velocity,
)

# Hotspot rule: dense and slow
HOTSPOT_MIN_DENSITY = 5.0
HOTSPOT_MAX_VELOCITY = 0.5
# Keeps congestion finite when nobody moves
CONGESTION_EPSILON = 0.1


@dataclass
class CellHistoryEntry:
    timestamp: datetime
    density: float
    person_count: int
    velocity: Velocity


@dataclass
class GridCell:
    x: int
    y: int
    history_size: int = 20
    density: float = 0.0
    person_count: int = 0
    velocity: Velocity = field(default_factory=Velocity)
    timestamp: Optional[datetime] = None
    history: deque = field(init=False)

    def __post_init__(self):
        self.history = deque(maxlen=self.history_size)

    @property
    def cell_id(self) -> str:
        return cell_id(self.x, self.y)

    @property
    def is_active(self) -> bool:
        return self.person_count > 0

    def reset(self, timestamp: datetime) -> None:
        self.density = 0.0
        self.person_count = 0
        self.velocity = Velocity()
        self.timestamp = timestamp

    def snapshot(self) -> CellSnapshot:
        return CellSnapshot(
            cell_id=self.cell_id,
            x=self.x,
            y=self.y,
            density=self.density,
            person_count=self.person_count,
            velocity=self.velocity,
            timestamp=self.timestamp,
            history_length=len(self.history),
        )


class SpatialGrid:
    """An R×R grid of cells, recomputed from scratch each cycle."""

    def __init__(self, resolution: int = 20, history_size: int = 20):
        if resolution < 1:
            raise ValueError("resolution must be at least 1")
        self.resolution = resolution
        self.cells: dict[str, GridCell] = {}
        for x in range(resolution):
            for y in range(resolution):
                cell = GridCell(x=x, y=y, history_size=history_size)
                self.cells[cell.cell_id] = cell

    def accumulate(
        self,
        binned: Iterable[tuple[int, int, CrowdDataPoint, Velocity]],
        timestamp: datetime,
    ) -> None:
        """Replace the grid contents with one cycle of binned points."""
        for cell in self.cells.values():
            cell.reset(timestamp)

        velocity_sums: dict[str, list[float]] = {}
        for x, y, point, velocity in binned:
            cell = self.cells[cell_id(x, y)]
            cell.density += point.density
            cell.person_count += point.person_count
            sums = velocity_sums.setdefault(cell.cell_id, [0.0, 0.0, 0])
            sums[0] += velocity.x
            sums[1] += velocity.y
            sums[2] += 1

        for key, (vx, vy, n) in velocity_sums.items():
            self.cells[key].velocity = Velocity.from_components(vx / n, vy / n)

        for cell in self.cells.values():
            cell.history.append(
                CellHistoryEntry(timestamp, cell.density, cell.person_count, cell.velocity)
            )

    def snapshot(self) -> dict[str, CellSnapshot]:
        return {key: cell.snapshot() for key, cell in self.cells.items()}

    def active_cells(self) -> list[GridCell]:
        return [cell for cell in self.cells.values() if cell.is_active]

    def movement_metrics(self, timestamp: datetime) -> MovementMetrics:
        return compute_movement_metrics(self.active_cells(), timestamp)


def compute_movement_metrics(
    active: list[GridCell],
    timestamp: datetime,
) -> MovementMetrics:
    """Aggregate metrics over the active (non-empty) cells."""
    if not active:
        return MovementMetrics(timestamp=timestamp)

    total_people = sum(cell.person_count for cell in active)
    avg_density = sum(cell.density for cell in active) / len(active)
    avg_velocity = sum(cell.velocity.magnitude for cell in active) / len(active)

    hotspots = [
        Hotspot(
            cell_id=cell.cell_id,
            x=cell.x,
            y=cell.y,
            density=cell.density,
            person_count=cell.person_count,
            velocity=cell.velocity.magnitude,
        )
        for cell in active
        if cell.density > HOTSPOT_MIN_DENSITY
        and cell.velocity.magnitude < HOTSPOT_MAX_VELOCITY
    ]

    return MovementMetrics(
        timestamp=timestamp,
        total_people=total_people,
        avg_density=avg_density,
        avg_velocity=avg_velocity,
        congestion_score=avg_density / (avg_velocity + CONGESTION_EPSILON),
        hotspots=hotspots,
    )
