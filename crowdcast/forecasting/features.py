"""Feature construction for live forecasts and training exports."""

from datetime import datetime
from typing import Any, Iterable

from crowdcast.aggregation.schemas import MovementMetrics
from crowdcast.forecasting.schemas import ForecastFeatures


def build_features(
    metrics: MovementMetrics,
    *,
    event_id: str,
    now: datetime,
) -> ForecastFeatures:
    return ForecastFeatures(
        event_id=event_id,
        timestamp=now,
        total_people=metrics.total_people,
        avg_density=metrics.avg_density,
        avg_velocity=metrics.avg_velocity,
        congestion_score=metrics.congestion_score,
        hotspot_count=metrics.hotspot_count,
        time_of_day=now.hour,
        day_of_week=now.weekday(),
    )


def prepare_training_rows(batches: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Flatten stored time-series batches into training rows.

    Each row gains ``timeOfDay`` / ``dayOfWeek``; rows are ordered by time.
    """
    rows: list[dict[str, Any]] = []
    for batch in batches:
        event_id = batch.get("eventId")
        for item in batch.get("timeSeriesData", []):
            ts = item["timestamp"]
            if isinstance(ts, str):
                ts = datetime.fromisoformat(ts)
            rows.append({
                **item,
                "eventId": event_id,
                "timestamp": ts,
                "timeOfDay": ts.hour,
                "dayOfWeek": ts.weekday(),
            })
    rows.sort(key=lambda row: row["timestamp"])
    return rows
