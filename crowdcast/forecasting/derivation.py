"""
Forecast derivation: alert level, surge risk and recommended actions.

Pure functions of a forecast series and the surge threshold, applied the
same way to remote and synthetic forecasts.
"""

import math
from datetime import datetime

from crowdcast.forecasting.schemas import (
    ActionPriority,
    AlertLevel,
    Prediction,
    RawForecast,
    RecommendedAction,
    SurgeRisk,
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def derive_alert_level(predictions: list[float], threshold: float) -> AlertLevel:
    if not predictions:
        return AlertLevel.NORMAL
    peak = max(predictions)
    if peak > threshold * 1.2:
        return AlertLevel.CRITICAL
    if peak > threshold:
        return AlertLevel.WARNING
    if peak > threshold * 0.8:
        return AlertLevel.CAUTION
    return AlertLevel.NORMAL


def derive_surge_risk(predictions: list[float], threshold: float) -> SurgeRisk:
    """
    Share of forecast minutes above threshold, plus peak and first crossing.

    Times are 1-based minutes from now.
    """
    if not predictions:
        return SurgeRisk()

    above = [i for i, value in enumerate(predictions) if value > threshold]
    peak = max(predictions)
    return SurgeRisk(
        percentage=_round_half_up(len(above) / len(predictions) * 100),
        time_to_surge=above[0] + 1 if above else None,
        peak_density=peak,
        peak_time=predictions.index(peak) + 1,
    )


def derive_recommendations(
    predictions: list[float],
    surge_risk: SurgeRisk,
    threshold: float,
) -> list[RecommendedAction]:
    if not predictions:
        return []

    peak = max(predictions)
    actions: list[RecommendedAction] = []

    if peak > threshold:
        actions.append(RecommendedAction(
            priority=ActionPriority.HIGH,
            action="Deploy additional security personnel to high-density areas",
            timeframe="immediate",
        ))
        actions.append(RecommendedAction(
            priority=ActionPriority.HIGH,
            action="Activate crowd control barriers and alternative routes",
            timeframe=f"{surge_risk.time_to_surge} minutes",
        ))

    if surge_risk.percentage > 60:
        actions.append(RecommendedAction(
            priority=ActionPriority.MEDIUM,
            action="Notify event organizers and emergency services",
            timeframe="immediate",
        ))
        actions.append(RecommendedAction(
            priority=ActionPriority.MEDIUM,
            action="Consider temporary event modifications or announcements",
            timeframe="2-3 minutes",
        ))

    if peak > threshold * 0.8:
        actions.append(RecommendedAction(
            priority=ActionPriority.LOW,
            action="Monitor crowd movement patterns closely",
            timeframe="ongoing",
        ))

    return actions


def build_prediction(
    raw: RawForecast,
    *,
    threshold: float,
    timestamp: datetime,
) -> Prediction:
    surge_risk = derive_surge_risk(raw.predictions, threshold)
    return Prediction(
        timestamp=timestamp,
        forecast_horizon=len(raw.predictions),
        predictions=raw.predictions,
        confidence=raw.confidence,
        upper_bound=raw.upper_bound,
        lower_bound=raw.lower_bound,
        alert_level=derive_alert_level(raw.predictions, threshold),
        surge_risk=surge_risk,
        recommended_actions=derive_recommendations(raw.predictions, surge_risk, threshold),
        is_mock_data=raw.is_mock_data,
    )
