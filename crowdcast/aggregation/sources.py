"""
Crowd point sources.

The pipeline pulls from a PointSource each collection interval; points can
also be pushed directly through the API.
"""

from typing import Any, Optional, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


class PointSource(Protocol):
    async def fetch(self) -> list[dict[str, Any]]:
        ...


class HttpPointSource:
    """
    Polls a JSON endpoint for the latest crowd points.

    Accepts either a bare list or ``{"points": [...]}``. An unreachable
    source yields an empty cycle rather than an error.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> list[dict[str, Any]]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(self.url)
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("point_source_unavailable", url=self.url, error=str(e))
            return []

        points = body.get("points", []) if isinstance(body, dict) else body
        if not isinstance(points, list):
            logger.warning("point_source_bad_payload", url=self.url)
            return []
        return points
