"""
Notification Channels — deliver alerts to operators.

Each channel implements ``send(alert) -> bool``:
- Webhook: POST JSON to a configured URL (push relays, chat hooks, paging)
- Dashboard: fan out to in-process subscribers (live operator views)

A False return or a raised exception both count as a failed attempt;
retry policy lives in the notification dispatcher, not here.
"""

from typing import Callable, Optional, Protocol

import httpx
import structlog

from crowdcast.alerting.schemas import Alert

logger = structlog.get_logger(__name__)


class NotificationChannel(Protocol):
    """Protocol for notification channels."""

    async def send(self, alert: Alert) -> bool:
        ...


class WebhookChannel:
    """
    Dispatch alerts via HTTP webhook.

    Any status below 400 counts as delivered.
    """

    def __init__(
        self,
        url: str,
        name: str = "WEBHOOK",
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.name = name
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport

    async def send(self, alert: Alert) -> bool:
        payload = self.build_payload(alert)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error(
                "webhook_dispatch_error",
                channel=self.name,
                alert_id=alert.id,
                error=str(e),
            )
            return False

        if response.status_code < 400:
            logger.info(
                "webhook_alert_sent",
                channel=self.name,
                alert_id=alert.id,
                status=response.status_code,
            )
            return True

        logger.warning(
            "webhook_alert_failed",
            channel=self.name,
            alert_id=alert.id,
            status=response.status_code,
        )
        return False

    @staticmethod
    def build_payload(alert: Alert) -> dict:
        return {
            "alert_id": alert.id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "zone": alert.zone,
            "message": alert.message,
            "escalation_level": alert.escalation_level,
            "timestamp": alert.timestamp.isoformat(),
            "recommendations": [r.action for r in alert.recommendations],
        }


class DashboardChannel:
    """In-process fan-out to dashboard subscribers."""

    name = "DASHBOARD"

    def __init__(self):
        self._subscribers: list[Callable[[Alert], None]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[Alert], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def send(self, alert: Alert) -> bool:
        for callback in list(self._subscribers):
            callback(alert)
        logger.debug(
            "dashboard_alert_published",
            alert_id=alert.id,
            subscribers=len(self._subscribers),
        )
        return True
