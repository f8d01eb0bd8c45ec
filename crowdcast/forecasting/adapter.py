"""
Forecasting Adapter — resilient wrapper around the forecast strategies.

Per cycle:
1. Serve the cached prediction for the current minute if there is one
2. Otherwise try the remote strategy once, under a deadline and breaker
3. On any remote failure fall back to the synthetic strategy
4. Derive alert level, surge risk and actions; cache and record history

Backend failures never reach the caller; they are logged and reported
through ``on_error``.
"""

import asyncio
from collections import deque
from typing import Callable, Optional

import structlog

from crowdcast.aggregation.schemas import MovementMetrics
from crowdcast.errors import ForecastBackendError, ForecastFailureReason
from crowdcast.forecasting.cache import PredictionCache, minute_bucket
from crowdcast.forecasting.derivation import build_prediction
from crowdcast.forecasting.features import build_features
from crowdcast.forecasting.schemas import ModelStatus, Prediction, RawForecast
from crowdcast.forecasting.strategies import ForecastStrategy, SyntheticForecaster
from crowdcast.services.clock import Clock, SystemClock
from crowdcast.services.resilience import CircuitBreaker, CircuitOpenError

logger = structlog.get_logger(__name__)


class ForecastingAdapter:
    def __init__(
        self,
        remote: Optional[ForecastStrategy] = None,
        fallback: Optional[ForecastStrategy] = None,
        *,
        horizon: int = 10,
        surge_threshold: float = 8.0,
        timeout_seconds: float = 15.0,
        cache_size: int = 50,
        history_size: int = 100,
        event_id: str = "current_event",
        breaker: Optional[CircuitBreaker] = None,
        clock: Optional[Clock] = None,
        on_error: Optional[Callable[[ForecastBackendError], None]] = None,
    ):
        if horizon < 1:
            raise ValueError("horizon must be at least 1")
        self.remote = remote
        self.fallback = fallback or SyntheticForecaster()
        self.horizon = horizon
        self.surge_threshold = surge_threshold
        self.timeout_seconds = timeout_seconds
        self.event_id = event_id
        self.breaker = breaker
        self.clock = clock or SystemClock()
        self.on_error = on_error

        self.cache = PredictionCache(cache_size)
        self.history: deque[Prediction] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    async def generate_forecast(
        self,
        metrics: MovementMetrics,
        horizon: Optional[int] = None,
    ) -> Prediction:
        """Forecast the next ``horizon`` minutes of density from cycle metrics."""
        horizon = horizon or self.horizon
        async with self._lock:
            now = self.clock.now()
            key = minute_bucket(now)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("forecast_cache_hit", bucket=key)
                return cached

            features = build_features(metrics, event_id=self.event_id, now=now)
            raw = await self._remote_forecast(features, horizon)
            if raw is None:
                raw = await self.fallback.forecast(features, horizon)

            prediction = build_prediction(
                raw, threshold=self.surge_threshold, timestamp=now
            )
            self.cache.put(key, prediction)
            self.history.append(prediction)

        logger.info(
            "forecast_generated",
            alert_level=prediction.alert_level.value,
            surge_risk=prediction.surge_risk.percentage,
            peak_density=round(prediction.surge_risk.peak_density, 2),
            mock=prediction.is_mock_data,
        )
        return prediction

    async def _remote_forecast(self, features, horizon: int) -> Optional[RawForecast]:
        if self.remote is None:
            return None
        try:
            return await self._call_remote(features, horizon)
        except ForecastBackendError as exc:
            logger.warning(
                "forecast_backend_failed",
                reason=exc.reason.value,
                error=exc.message,
            )
            if self.on_error is not None:
                self.on_error(exc)
            return None

    async def _call_remote(self, features, horizon: int) -> RawForecast:
        async def attempt() -> RawForecast:
            try:
                return await asyncio.wait_for(
                    self.remote.forecast(features, horizon),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                raise ForecastBackendError(
                    ForecastFailureReason.TIMEOUT,
                    f"forecast exceeded {self.timeout_seconds}s deadline",
                ) from exc

        if self.breaker is None:
            return await attempt()
        try:
            return await self.breaker.call(attempt)
        except CircuitOpenError as exc:
            raise ForecastBackendError(ForecastFailureReason.UNAVAILABLE, str(exc)) from exc

    def get_prediction_history(self) -> list[Prediction]:
        return list(self.history)

    def get_model_status(self) -> ModelStatus:
        last = self.history[-1] if self.history else None
        return ModelStatus(
            remote_enabled=self.remote is not None,
            circuit_state=self.breaker.state.value if self.breaker else None,
            last_prediction_at=last.timestamp if last else None,
            cache_size=len(self.cache),
            history_size=len(self.history),
            horizon=self.horizon,
            surge_threshold=self.surge_threshold,
        )
