"""
Forecasting backend credentials.

The credential service exchanges a project id for a short-lived bearer token.
TokenManager caches the token and refreshes it shortly before it expires.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import httpx
import structlog

from crowdcast.errors import ForecastBackendError, ForecastFailureReason
from crowdcast.services.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: datetime


class CredentialService(Protocol):
    async def fetch_token(self) -> AccessToken:
        ...


class BackendCredentialService:
    """
    Obtains forecasting tokens from the backend credential endpoint.

    POST {credential_url} → {"access_token": str, "expires_in": seconds}
    """

    def __init__(
        self,
        credential_url: str,
        project_id: str = "",
        timeout: float = 10.0,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credential_url = credential_url
        self.project_id = project_id
        self.timeout = timeout
        self.clock = clock or SystemClock()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch_token(self) -> AccessToken:
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.credential_url, json={"projectId": self.project_id}
                )
        except httpx.HTTPError as exc:
            raise ForecastBackendError(
                ForecastFailureReason.NETWORK, f"credential service unreachable: {exc}"
            ) from exc

        if resp.status_code >= 400:
            raise ForecastBackendError(
                ForecastFailureReason.AUTHENTICATION,
                f"credential service returned HTTP {resp.status_code}",
            )

        try:
            body = resp.json()
            token = body["access_token"]
            expires_in = float(body.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as exc:
            raise ForecastBackendError(
                ForecastFailureReason.AUTHENTICATION,
                "credential service response missing access_token",
            ) from exc

        logger.info("forecast_token_obtained", expires_in=expires_in)
        return AccessToken(
            value=token,
            expires_at=self.clock.now() + timedelta(seconds=expires_in),
        )


class TokenManager:
    """Caches a bearer token and refreshes it ``refresh_margin`` before expiry."""

    def __init__(
        self,
        service: CredentialService,
        refresh_margin_seconds: float = 300.0,
        clock: Optional[Clock] = None,
    ):
        self.service = service
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)
        self.clock = clock or SystemClock()
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self.clock.now() + self.refresh_margin < self._token.expires_at
        )

    async def get_token(self) -> str:
        async with self._lock:
            if not self._is_fresh():
                self._token = await self.service.fetch_token()
            return self._token.value

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-authenticates."""
        self._token = None
