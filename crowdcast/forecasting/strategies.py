"""
Forecast strategies.

RemoteForecaster calls the hosted model endpoint; SyntheticForecaster
produces a plausible oscillating series around the current density and is
used whenever the remote path is unavailable.
"""

import math
import random
from typing import Optional, Protocol

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from crowdcast.errors import ForecastBackendError, ForecastFailureReason
from crowdcast.forecasting.credentials import TokenManager
from crowdcast.forecasting.schemas import ForecastFeatures, RawForecast

logger = structlog.get_logger(__name__)


class ForecastStrategy(Protocol):
    async def forecast(self, features: ForecastFeatures, horizon: int) -> RawForecast:
        ...


# ── Remote ─────────────────────────────────────────────────────────────


class _RemoteSeries(BaseModel):
    value: list[float]
    upper_bound: Optional[list[float]] = None
    lower_bound: Optional[list[float]] = None
    prediction_interval: Optional[list[float]] = None


class _RemoteResponse(BaseModel):
    predictions: list[_RemoteSeries]


class RemoteForecaster:
    """
    Calls ``POST {endpoint_url}:predict`` with a bearer token.

    A 401/403 invalidates the token and the call is retried once with a
    fresh one before an authentication error is raised.
    """

    def __init__(
        self,
        endpoint_url: str,
        tokens: TokenManager,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint_url = endpoint_url.rstrip("/")
        self.tokens = tokens
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def forecast(self, features: ForecastFeatures, horizon: int) -> RawForecast:
        body = {"instances": [features.model_dump(mode="json", by_alias=True)]}

        resp = await self._post(body)
        if resp.status_code in (401, 403):
            logger.info("forecast_token_rejected", status=resp.status_code)
            self.tokens.invalidate()
            resp = await self._post(body)
            if resp.status_code in (401, 403):
                raise ForecastBackendError(
                    ForecastFailureReason.AUTHENTICATION,
                    f"forecast endpoint rejected credentials (HTTP {resp.status_code})",
                )

        if resp.status_code >= 400:
            raise ForecastBackendError(
                ForecastFailureReason.UNAVAILABLE,
                f"forecast endpoint returned HTTP {resp.status_code}",
            )

        return self._parse(resp, horizon)

    async def _post(self, body: dict) -> httpx.Response:
        token = await self.tokens.get_token()
        try:
            async with self._client() as client:
                return await client.post(
                    f"{self.endpoint_url}:predict",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException as exc:
            raise ForecastBackendError(
                ForecastFailureReason.TIMEOUT, "forecast request timed out"
            ) from exc
        except httpx.HTTPError as exc:
            raise ForecastBackendError(
                ForecastFailureReason.NETWORK, f"forecast endpoint unreachable: {exc}"
            ) from exc

    @staticmethod
    def _parse(resp: httpx.Response, horizon: int) -> RawForecast:
        try:
            parsed = _RemoteResponse.model_validate(resp.json())
            series = parsed.predictions[0]
        except (ValueError, ValidationError, IndexError) as exc:
            raise ForecastBackendError(
                ForecastFailureReason.MALFORMED_RESPONSE,
                "forecast response has no usable predictions",
            ) from exc

        values = series.value[:horizon]
        if not values:
            raise ForecastBackendError(
                ForecastFailureReason.MALFORMED_RESPONSE, "forecast response is empty"
            )

        n = len(values)
        upper = (series.upper_bound or [v * 1.2 for v in values])[:n]
        lower = (series.lower_bound or [v * 0.8 for v in values])[:n]
        confidence = (series.prediction_interval or [0.85] * n)[:n]
        if len(upper) != n or len(lower) != n or len(confidence) != n:
            raise ForecastBackendError(
                ForecastFailureReason.MALFORMED_RESPONSE,
                "forecast bounds do not match prediction length",
            )

        return RawForecast(
            predictions=values,
            confidence=confidence,
            upper_bound=upper,
            lower_bound=lower,
        )


# ── Synthetic ──────────────────────────────────────────────────────────


class SyntheticForecaster:
    """
    Fallback forecast around the current average density.

    prediction_i = max(0, baseline + 0.5·sin(0.3·i) + noise), noise ∈ [-0.5, 0.5)
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        default_baseline: float = 5.0,
    ):
        self.rng = rng or random.Random()
        self.default_baseline = default_baseline

    async def forecast(self, features: ForecastFeatures, horizon: int) -> RawForecast:
        baseline = features.avg_density if features.avg_density > 0 else self.default_baseline

        predictions, confidence, upper, lower = [], [], [], []
        for i in range(1, horizon + 1):
            trend = math.sin(i * 0.3) * 0.5
            noise = (self.rng.random() - 0.5) * 1.0
            value = max(0.0, baseline + trend + noise)
            predictions.append(value)
            confidence.append(0.8 + self.rng.random() * 0.15)
            upper.append(value + 1.5 + self.rng.random())
            lower.append(max(0.0, value - 1.5 - self.rng.random()))

        return RawForecast(
            predictions=predictions,
            confidence=confidence,
            upper_bound=upper,
            lower_bound=lower,
            is_mock_data=True,
        )
