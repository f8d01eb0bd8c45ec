"""
Test fixtures for CrowdCast.

Provides:
- FakeClock: manually advanced UTC clock
- FakeTimers: virtual-time escalation timers driven by the fake clock
- RecordingStore: in-memory durable store with switchable write failures
- RecordingChannel: notification channel with scripted outcomes
- Component factories wired to the fakes (aggregator, dispatcher, alert manager, pipeline)
"""

import random
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import pytest

from crowdcast.aggregation.aggregator import GridAggregator
from crowdcast.aggregation.geo import BoundingBox
from crowdcast.aggregation.schemas import Batch
from crowdcast.alerting.dedup import AlertCooldown
from crowdcast.alerting.manager import AlertManager
from crowdcast.alerting.notifications import NotificationDispatcher
from crowdcast.alerting.schemas import (
    Alert,
    AlertEventKind,
    AlertingConfig,
    AlertSeverity,
    ChannelConfig,
)
from crowdcast.errors import PersistenceError
from crowdcast.forecasting.adapter import ForecastingAdapter
from crowdcast.forecasting.strategies import SyntheticForecaster
from crowdcast.pipeline import CrowdPipeline

START = datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc)

DEFAULT_BOUNDS = BoundingBox(north=37.7800, south=37.7700, east=-122.4100, west=-122.4300)


# ── Time ───────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeTimers:
    """Timers that fire only when ``advance`` moves the fake clock past them."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.pending: dict[str, tuple[datetime, Callable[[], Awaitable[Any]]]] = {}
        self.fired: list[str] = []

    def schedule(self, key, delay_seconds, callback) -> None:
        self.pending[key] = (self.clock.now() + timedelta(seconds=delay_seconds), callback)

    def cancel(self, key) -> bool:
        return self.pending.pop(key, None) is not None

    def due_at(self, key) -> Optional[datetime]:
        entry = self.pending.get(key)
        return entry[0] if entry else None

    async def advance(self, seconds: float) -> None:
        target = self.clock.now() + timedelta(seconds=seconds)
        while True:
            due = [(when, key) for key, (when, _) in self.pending.items() if when <= target]
            if not due:
                break
            when, key = min(due)
            _, callback = self.pending.pop(key)
            self.clock.current = when
            self.fired.append(key)
            await callback()
        self.clock.current = target


# ── Store ──────────────────────────────────────────────────────────────


class RecordingStore:
    def __init__(self):
        self.batches: list[Batch] = []
        self.alerts: list[Alert] = []
        self.events: list[tuple[str, AlertEventKind, Optional[str]]] = []
        self.fail_writes = False

    def _check(self) -> None:
        if self.fail_writes:
            raise PersistenceError("store unavailable")

    async def insert_batch(self, batch: Batch) -> str:
        self._check()
        self.batches.append(batch)
        return batch.batch_id

    async def insert_alert(self, alert: Alert) -> str:
        self._check()
        self.alerts.append(alert)
        return alert.id

    async def insert_alert_event(self, alert, event, actor=None) -> str:
        self._check()
        self.events.append((alert.id, event, actor))
        return f"{alert.id}:{event.value}"

    async def get_historical_data(self, hours: float = 24) -> dict[str, list[dict]]:
        dumped = [b.model_dump(mode="json", by_alias=True) for b in self.batches]
        return {
            "timeSeriesData": [
                {k: d[k] for k in ("eventId", "batchId", "timestamp", "timeSeriesData", "metadata")}
                for d in dumped
            ],
            "spatialData": [
                {
                    **{k: d[k] for k in ("eventId", "batchId", "timestamp", "spatialFeatures")},
                    "gridResolution": d["metadata"]["gridResolution"],
                }
                for d in dumped
            ],
        }

    async def get_alert_events(self, alert_id: str) -> list[dict]:
        return [
            {"alert_id": aid, "event": kind.value, "actor": actor}
            for aid, kind, actor in self.events
            if aid == alert_id
        ]


# ── Channels ───────────────────────────────────────────────────────────


class RecordingChannel:
    """Returns scripted outcomes (True/False/Exception), then ``default``."""

    def __init__(self, outcomes=(), default: bool = True):
        self.outcomes = deque(outcomes)
        self.default = default
        self.calls: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.calls.append(alert)
        outcome = self.outcomes.popleft() if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers(clock):
    return FakeTimers(clock)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def bounds():
    return DEFAULT_BOUNDS


@pytest.fixture
def point_at(bounds):
    """Build a point dict at the centre of cell (x, y) of an R×R grid."""

    def _point(x: int, y: int, resolution: int = 20, **extra) -> dict:
        lat_step = (bounds.north - bounds.south) / resolution
        lng_step = (bounds.east - bounds.west) / resolution
        return {
            "lat": bounds.south + (x + 0.5) * lat_step,
            "lng": bounds.west + (y + 0.5) * lng_step,
            **extra,
        }

    return _point


@pytest.fixture
def make_aggregator(store, clock, bounds):
    def _make(**kwargs) -> GridAggregator:
        kwargs.setdefault("bounds", bounds)
        kwargs.setdefault("clock", clock)
        return GridAggregator(kwargs.pop("store", store), **kwargs)

    return _make


@pytest.fixture
def channels():
    return {"PUSH": RecordingChannel(), "DASHBOARD": RecordingChannel()}


@pytest.fixture
def channel_configs():
    return {
        "PUSH": ChannelConfig(
            priority=[AlertSeverity.CRITICAL, AlertSeverity.HIGH, AlertSeverity.MEDIUM],
            retry_attempts=3,
        ),
        "EMAIL": ChannelConfig(
            priority=[AlertSeverity.CRITICAL, AlertSeverity.HIGH],
            retry_attempts=2,
        ),
        "DASHBOARD": ChannelConfig(retry_attempts=1),
    }


@pytest.fixture
def dispatcher(channels, channel_configs, clock):
    return NotificationDispatcher(channels, channel_configs, batch_size=10, clock=clock)


@pytest.fixture
def manager(dispatcher, timers, store, clock):
    return AlertManager(dispatcher, timers, store=store, config=AlertingConfig(), clock=clock)


@pytest.fixture
def pipeline(make_aggregator, manager, clock):
    forecaster = ForecastingAdapter(
        None,
        SyntheticForecaster(random.Random(7)),
        clock=clock,
    )
    return CrowdPipeline(
        make_aggregator(batch_size=50),
        forecaster,
        manager,
        scheduler=None,
        cooldown=AlertCooldown(cooldown_minutes=5, clock=clock),
    )


@pytest.fixture
def make_channel():
    return RecordingChannel
