"""
Alert Cooldown — prevent alert storms from repeated cycles.

Pipeline-generated alerts are keyed by (type, zone):
1. Cooldown: don't raise the same key again within N minutes
2. Daily limit: at most N alerts per key per day
"""

from datetime import datetime
from typing import Optional

import structlog

from crowdcast.alerting.schemas import AlertType
from crowdcast.services.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class AlertCooldown:
    def __init__(
        self,
        cooldown_minutes: float = 5,
        max_per_day: int = 200,
        clock: Optional[Clock] = None,
    ):
        self.cooldown_minutes = cooldown_minutes
        self.max_per_day = max_per_day
        self.clock = clock or SystemClock()
        # key → last fire time
        self._last_fired: dict[str, datetime] = {}
        # key → count today
        self._daily_counts: dict[str, int] = {}
        self._count_date = None

    @staticmethod
    def key(alert_type: AlertType, zone: str) -> str:
        return f"{alert_type.value}|{zone}"

    def should_suppress(self, alert_type: AlertType, zone: str) -> tuple[bool, str]:
        """Returns (should_suppress, reason)."""
        now = self.clock.now()
        self._maybe_reset_daily(now)
        key = self.key(alert_type, zone)

        last_time = self._last_fired.get(key)
        if last_time:
            elapsed = (now - last_time).total_seconds() / 60.0
            if elapsed < self.cooldown_minutes:
                logger.debug(
                    "alert_suppressed_cooldown",
                    key=key,
                    elapsed_minutes=round(elapsed, 1),
                )
                return True, (
                    f"Cooldown active: {self.cooldown_minutes - elapsed:.0f}m remaining"
                )

        daily_count = self._daily_counts.get(key, 0)
        if daily_count >= self.max_per_day:
            logger.debug("alert_suppressed_daily_limit", key=key, daily_count=daily_count)
            return True, f"Daily limit reached: {daily_count}/{self.max_per_day}"

        return False, ""

    def record_fired(self, alert_type: AlertType, zone: str) -> None:
        now = self.clock.now()
        self._maybe_reset_daily(now)
        key = self.key(alert_type, zone)
        self._last_fired[key] = now
        self._daily_counts[key] = self._daily_counts.get(key, 0) + 1

    def reset(self) -> None:
        self._last_fired.clear()
        self._daily_counts.clear()
        self._count_date = None

    def _maybe_reset_daily(self, now: datetime) -> None:
        today = now.date()
        if self._count_date != today:
            self._daily_counts.clear()
            self._count_date = today
