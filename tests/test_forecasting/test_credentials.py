"""
Tests for forecasting credentials.

Covers:
- Token exchange against the credential endpoint
- Failures map to authentication / network reasons
- TokenManager caching and refresh margin
- Invalidation forces a new token
"""

import json
from datetime import timedelta

import httpx
import pytest

from crowdcast.errors import ForecastBackendError, ForecastFailureReason
from crowdcast.forecasting.credentials import (
    AccessToken,
    BackendCredentialService,
    TokenManager,
)

CRED_URL = "http://auth.local/token"


class CountingService:
    def __init__(self, clock, lifetime_seconds: float = 3600):
        self.clock = clock
        self.lifetime = timedelta(seconds=lifetime_seconds)
        self.calls = 0

    async def fetch_token(self) -> AccessToken:
        self.calls += 1
        return AccessToken(value=f"tok-{self.calls}", expires_at=self.clock.now() + self.lifetime)


# ── Credential service ────────────────────────────────────────────────


class TestBackendCredentialService:
    @pytest.mark.asyncio
    async def test_fetch_token(self, clock):
        seen = {}

        def handler(request: httpx.Request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"access_token": "abc", "expires_in": 600})

        service = BackendCredentialService(
            CRED_URL, project_id="proj-1", clock=clock, transport=httpx.MockTransport(handler)
        )
        token = await service.fetch_token()
        assert token.value == "abc"
        assert token.expires_at == clock.now() + timedelta(seconds=600)
        assert seen["body"] == {"projectId": "proj-1"}

    @pytest.mark.asyncio
    async def test_http_error_is_authentication_failure(self, clock):
        service = BackendCredentialService(
            CRED_URL, clock=clock, transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        with pytest.raises(ForecastBackendError) as exc_info:
            await service.fetch_token()
        assert exc_info.value.reason == ForecastFailureReason.AUTHENTICATION

    @pytest.mark.asyncio
    async def test_missing_token_is_authentication_failure(self, clock):
        service = BackendCredentialService(
            CRED_URL,
            clock=clock,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"nope": 1})),
        )
        with pytest.raises(ForecastBackendError) as exc_info:
            await service.fetch_token()
        assert exc_info.value.reason == ForecastFailureReason.AUTHENTICATION

    @pytest.mark.asyncio
    async def test_unreachable_is_network_failure(self, clock):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = BackendCredentialService(
            CRED_URL, clock=clock, transport=httpx.MockTransport(handler)
        )
        with pytest.raises(ForecastBackendError) as exc_info:
            await service.fetch_token()
        assert exc_info.value.reason == ForecastFailureReason.NETWORK


# ── Token manager ─────────────────────────────────────────────────────


class TestTokenManager:
    @pytest.mark.asyncio
    async def test_token_cached(self, clock):
        service = CountingService(clock)
        tokens = TokenManager(service, refresh_margin_seconds=300, clock=clock)
        assert await tokens.get_token() == "tok-1"
        assert await tokens.get_token() == "tok-1"
        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_refreshed_inside_margin(self, clock):
        service = CountingService(clock, lifetime_seconds=3600)
        tokens = TokenManager(service, refresh_margin_seconds=300, clock=clock)
        await tokens.get_token()

        clock.advance(3600 - 301)
        assert await tokens.get_token() == "tok-1"

        clock.advance(2)
        assert await tokens.get_token() == "tok-2"
        assert service.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, clock):
        service = CountingService(clock)
        tokens = TokenManager(service, clock=clock)
        await tokens.get_token()
        tokens.invalidate()
        assert await tokens.get_token() == "tok-2"
