"""
Tests for the HTTP point source.

Covers:
- Bare list and wrapped payloads
- Unreachable or broken sources yield no points
"""

import httpx
import pytest

from crowdcast.aggregation.sources import HttpPointSource

URL = "http://points.local/latest"


def _source(handler) -> HttpPointSource:
    return HttpPointSource(URL, transport=httpx.MockTransport(handler))


class TestHttpPointSource:
    @pytest.mark.asyncio
    async def test_bare_list(self):
        source = _source(lambda req: httpx.Response(200, json=[{"lat": 1, "lng": 2}]))
        assert await source.fetch() == [{"lat": 1, "lng": 2}]

    @pytest.mark.asyncio
    async def test_wrapped_payload(self):
        source = _source(lambda req: httpx.Response(200, json={"points": [{"lat": 1, "lng": 2}]}))
        assert await source.fetch() == [{"lat": 1, "lng": 2}]

    @pytest.mark.asyncio
    async def test_server_error_yields_empty(self):
        source = _source(lambda req: httpx.Response(500))
        assert await source.fetch() == []

    @pytest.mark.asyncio
    async def test_connection_error_yields_empty(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await _source(handler).fetch() == []

    @pytest.mark.asyncio
    async def test_non_list_points_yields_empty(self):
        source = _source(lambda req: httpx.Response(200, json={"points": "none"}))
        assert await source.fetch() == []
