"""
Tests for Alert Cooldown.

Covers:
- No suppression for the first alert
- Cooldown suppression per (type, zone)
- Daily limit and its reset at midnight
"""

import pytest

from crowdcast.alerting.dedup import AlertCooldown
from crowdcast.alerting.schemas import AlertType


@pytest.fixture
def cooldown(clock):
    return AlertCooldown(cooldown_minutes=5, max_per_day=3, clock=clock)


class TestNoSuppression:
    def test_first_alert_not_suppressed(self, cooldown):
        suppressed, reason = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is False
        assert reason == ""

    def test_zones_independent(self, cooldown):
        cooldown.record_fired(AlertType.BOTTLENECK_DETECTED, "Grid cell 1_1")
        suppressed, _ = cooldown.should_suppress(AlertType.BOTTLENECK_DETECTED, "Grid cell 2_2")
        assert suppressed is False

    def test_types_independent(self, cooldown):
        cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
        suppressed, _ = cooldown.should_suppress(AlertType.CAPACITY_WARNING, "Event Area")
        assert suppressed is False


class TestCooldown:
    def test_within_cooldown_suppressed(self, cooldown, clock):
        cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
        clock.advance(4 * 60)
        suppressed, reason = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is True
        assert "Cooldown" in reason

    def test_after_cooldown_allowed(self, cooldown, clock):
        cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
        clock.advance(5 * 60)
        suppressed, _ = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is False


class TestDailyLimit:
    def test_limit_reached(self, cooldown, clock):
        for _ in range(3):
            cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
            clock.advance(10 * 60)
        suppressed, reason = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is True
        assert "Daily limit" in reason

    def test_counts_reset_next_day(self, cooldown, clock):
        for _ in range(3):
            cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
            clock.advance(10 * 60)
        clock.advance(24 * 3600)
        suppressed, _ = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is False

    def test_reset_clears_everything(self, cooldown):
        cooldown.record_fired(AlertType.SURGE_PREDICTED, "Event Area")
        cooldown.reset()
        suppressed, _ = cooldown.should_suppress(AlertType.SURGE_PREDICTED, "Event Area")
        assert suppressed is False
