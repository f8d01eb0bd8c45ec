"""
Movement tracking.

Each observation is keyed by its coordinates quantised to six decimals;
a bounded history of samples per key yields the latest velocity.
"""

from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from crowdcast.aggregation.geo import velocity_between
from crowdcast.aggregation.schemas import CrowdDataPoint, Velocity, ZERO_VELOCITY

logger = structlog.get_logger(__name__)


def movement_key(point: CrowdDataPoint) -> str:
    return f"{point.lat:.6f}_{point.lng:.6f}"


@dataclass
class MovementSample:
    point: CrowdDataPoint
    timestamp: datetime
    velocity: Velocity


@dataclass
class MovementRecord:
    key: str
    samples: deque = field(default_factory=deque)

    @property
    def latest(self) -> MovementSample | None:
        return self.samples[-1] if self.samples else None


class MovementTracker:
    """Bounded per-key movement history."""

    def __init__(self, history_size: int = 10, max_tracks: int = 10_000):
        self.history_size = history_size
        self.max_tracks = max_tracks
        self._records: OrderedDict[str, MovementRecord] = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, key: str) -> MovementRecord | None:
        return self._records.get(key)

    def record(self, point: CrowdDataPoint, observed_at: datetime) -> Velocity:
        """Append an observation and return its velocity against the previous sample."""
        key = movement_key(point)
        record = self._records.get(key)
        if record is None:
            record = MovementRecord(key=key, samples=deque(maxlen=self.history_size))
            self._records[key] = record
            if len(self._records) > self.max_tracks:
                evicted, _ = self._records.popitem(last=False)
                logger.debug("movement_track_evicted", key=evicted)
        else:
            self._records.move_to_end(key)

        previous = record.latest
        if previous is None:
            velocity = ZERO_VELOCITY
        else:
            velocity = velocity_between(
                previous.point, previous.timestamp, point, observed_at
            )

        record.samples.append(MovementSample(point, observed_at, velocity))
        return velocity
