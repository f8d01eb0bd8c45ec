"""
Aggregation Schemas.

Crowd points in, grid snapshots / movement metrics / store batches out.
Batch models serialise with camelCase keys for the durable store.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ── Input ──────────────────────────────────────────────────────────────


class CrowdDataPoint(BaseModel):
    """A single located crowd observation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lat: float = Field(ge=-90.0, le=90.0, allow_inf_nan=False)
    lng: float = Field(ge=-180.0, le=180.0, allow_inf_nan=False)
    density: float = Field(default=1.0, ge=0.0, allow_inf_nan=False)
    person_count: int = Field(default=1, ge=0, alias="personCount")
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are taken as UTC
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


# ── Grid state ─────────────────────────────────────────────────────────


class Velocity(BaseModel):
    """Planar velocity in metres per second."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    magnitude: float = 0.0

    @classmethod
    def from_components(cls, x: float, y: float) -> "Velocity":
        return cls(x=x, y=y, magnitude=math.hypot(x, y))


ZERO_VELOCITY = Velocity()


class CellSnapshot(BaseModel):
    """Read-only view of one grid cell."""

    cell_id: str
    x: int
    y: int
    density: float
    person_count: int
    velocity: Velocity
    timestamp: Optional[datetime] = None
    history_length: int = 0


class Hotspot(BaseModel):
    cell_id: str
    x: int
    y: int
    density: float
    person_count: int
    velocity: float


class MovementMetrics(BaseModel):
    """Summary of movement over the active cells of one cycle."""

    timestamp: datetime
    total_people: int = 0
    avg_density: float = 0.0
    avg_velocity: float = 0.0
    congestion_score: float = 0.0
    hotspots: list[Hotspot] = Field(default_factory=list)

    @property
    def hotspot_count(self) -> int:
        return len(self.hotspots)


class CycleResult(BaseModel):
    """Outcome of one ingest cycle, buffered until the next flush."""

    timestamp: datetime
    point_count: int
    skipped_count: int = 0
    grid: dict[str, CellSnapshot]
    metrics: MovementMetrics


# ── Store batches ──────────────────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeSeriesRow(_CamelModel):
    timestamp: datetime
    total_people: int
    avg_density: float
    avg_velocity: float
    congestion_score: float
    hotspot_count: int


class SpatialFeature(_CamelModel):
    timestamp: datetime
    cell_id: str
    x: int
    y: int
    density: float
    person_count: int
    velocity_x: float
    velocity_y: float
    velocity_magnitude: float


class BatchMetadata(_CamelModel):
    grid_resolution: int
    data_point_count: int
    cycle_count: int
    collection_interval: float


class Batch(_CamelModel):
    """A flushed group of cycle results."""

    event_id: str
    batch_id: str
    timestamp: datetime
    time_series_data: list[TimeSeriesRow]
    spatial_features: list[SpatialFeature]
    metadata: BatchMetadata
