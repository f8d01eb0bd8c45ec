"""
Forecasting Schemas.

A RawForecast is what a strategy produces; a Prediction adds the derived
alert level, surge risk and recommended actions.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AlertLevel(StrEnum):
    NORMAL = "normal"
    CAUTION = "caution"
    WARNING = "warning"
    CRITICAL = "critical"


class ActionPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ForecastFeatures(_CamelModel):
    """Model input: cycle metrics plus calendar features."""

    event_id: str
    timestamp: datetime
    total_people: int
    avg_density: float
    avg_velocity: float
    congestion_score: float
    hotspot_count: int
    time_of_day: int
    day_of_week: int


class RawForecast(BaseModel):
    """Per-minute series from one forecast strategy."""

    predictions: list[float]
    confidence: list[float]
    upper_bound: list[float]
    lower_bound: list[float]
    is_mock_data: bool = False


class SurgeRisk(_CamelModel):
    percentage: int = 0
    time_to_surge: Optional[int] = None
    peak_density: float = 0.0
    peak_time: Optional[int] = None


class RecommendedAction(_CamelModel):
    priority: ActionPriority
    action: str
    timeframe: str


class Prediction(_CamelModel):
    timestamp: datetime
    forecast_horizon: int
    predictions: list[float]
    confidence: list[float]
    upper_bound: list[float]
    lower_bound: list[float]
    alert_level: AlertLevel
    surge_risk: SurgeRisk
    recommended_actions: list[RecommendedAction] = Field(default_factory=list)
    is_mock_data: bool = False


class ModelStatus(_CamelModel):
    remote_enabled: bool
    circuit_state: Optional[str] = None
    last_prediction_at: Optional[datetime] = None
    cache_size: int = 0
    history_size: int = 0
    horizon: int
    surge_threshold: float
