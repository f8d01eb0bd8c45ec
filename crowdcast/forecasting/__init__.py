"""
Density forecasting.

Remote model with token auth, a synthetic fallback, and the derived
surge-risk view consumed by alerting.
"""

from crowdcast.forecasting.adapter import ForecastingAdapter
from crowdcast.forecasting.schemas import AlertLevel, Prediction, SurgeRisk
from crowdcast.forecasting.strategies import RemoteForecaster, SyntheticForecaster

__all__ = [
    "AlertLevel",
    "ForecastingAdapter",
    "Prediction",
    "RemoteForecaster",
    "SurgeRisk",
    "SyntheticForecaster",
]
