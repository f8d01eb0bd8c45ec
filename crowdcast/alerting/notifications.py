"""
Notification queue and dispatcher.

Alerts fan out into one task per eligible channel. A periodic drain sends
up to ``batch_size`` tasks per tick; a failed task is re-enqueued until its
attempt budget (the channel's ``retry_attempts``) is spent, then dropped.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog

from crowdcast.alerting.channels import NotificationChannel
from crowdcast.alerting.schemas import Alert, ChannelConfig
from crowdcast.errors import NotificationDeliveryError
from crowdcast.services.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


@dataclass
class NotificationTask:
    alert_id: str
    channel: str
    alert: Alert
    max_attempts: int
    scheduled_at: datetime
    attempts: int = 0


@dataclass
class DrainReport:
    processed: int = 0
    delivered: int = 0
    retried: int = 0
    dropped: int = 0


class NotificationDispatcher:
    def __init__(
        self,
        channels: dict[str, NotificationChannel],
        channel_configs: dict[str, ChannelConfig],
        batch_size: int = 10,
        clock: Optional[Clock] = None,
    ):
        self.channels = channels
        self.channel_configs = channel_configs
        self.batch_size = batch_size
        self.clock = clock or SystemClock()
        self._queue: deque[NotificationTask] = deque()
        self._drain_lock = asyncio.Lock()

        for name, config in channel_configs.items():
            if config.enabled and name not in channels:
                logger.warning("notification_channel_not_configured", channel=name)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def pending_tasks(self) -> list[NotificationTask]:
        return list(self._queue)

    def eligible_channels(self, alert: Alert) -> list[str]:
        return [
            name
            for name, config in self.channel_configs.items()
            if config.enabled
            and alert.severity in config.priority
            and name in self.channels
        ]

    def enqueue(self, alert: Alert) -> int:
        """Queue one task per eligible channel; the alert is snapshotted."""
        snapshot = alert.model_copy(deep=True)
        now = self.clock.now()
        names = self.eligible_channels(alert)
        for name in names:
            self._queue.append(NotificationTask(
                alert_id=alert.id,
                channel=name,
                alert=snapshot,
                max_attempts=self.channel_configs[name].retry_attempts,
                scheduled_at=now,
            ))
        logger.debug("notifications_enqueued", alert_id=alert.id, channels=names)
        return len(names)

    async def drain(self) -> DrainReport:
        """Send up to ``batch_size`` queued tasks."""
        report = DrainReport()
        async with self._drain_lock:
            batch = []
            while self._queue and len(batch) < self.batch_size:
                batch.append(self._queue.popleft())

            for task in batch:
                report.processed += 1
                try:
                    await self._deliver(task)
                except NotificationDeliveryError as exc:
                    task.attempts += 1
                    if task.attempts < task.max_attempts:
                        self._queue.append(task)
                        report.retried += 1
                        logger.info(
                            "notification_retry_scheduled",
                            alert_id=task.alert_id,
                            channel=task.channel,
                            attempts=task.attempts,
                        )
                    else:
                        report.dropped += 1
                        logger.error(
                            "notification_dropped",
                            alert_id=task.alert_id,
                            channel=task.channel,
                            attempts=task.attempts,
                            error=exc.message,
                        )
                else:
                    report.delivered += 1

        if report.processed:
            logger.debug(
                "notification_drain_completed",
                processed=report.processed,
                delivered=report.delivered,
                retried=report.retried,
                dropped=report.dropped,
            )
        return report

    async def _deliver(self, task: NotificationTask) -> None:
        channel = self.channels[task.channel]
        try:
            ok = await channel.send(task.alert)
        except Exception as exc:
            raise NotificationDeliveryError(task.channel, task.alert_id, str(exc)) from exc
        if not ok:
            raise NotificationDeliveryError(task.channel, task.alert_id)
