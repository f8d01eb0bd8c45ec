"""
Tests for building the pipeline from settings.

Covers:
- Channel wiring: dashboard always, webhooks only with a URL
- Remote forecasting only with both endpoint and credentials
- Alerting config and scheduler timers are wired through
"""

import pytest

from crowdcast.alerting.channels import DashboardChannel, WebhookChannel
from crowdcast.alerting.schemas import AlertSeverity
from crowdcast.bootstrap import build_channels, build_forecaster, build_pipeline
from crowdcast.config import ChannelSettings, Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestChannels:
    def test_defaults_only_dashboard_available(self):
        dashboard = DashboardChannel()
        channels, configs = build_channels(_settings(), dashboard)
        assert channels == {"DASHBOARD": dashboard}
        assert set(configs) == {"PUSH", "EMAIL", "SMS", "DASHBOARD"}
        assert configs["SMS"].enabled is False
        assert configs["PUSH"].priority == [
            AlertSeverity.CRITICAL,
            AlertSeverity.HIGH,
            AlertSeverity.MEDIUM,
        ]
        assert configs["EMAIL"].retry_attempts == 2

    def test_webhook_channel_with_url(self):
        settings = _settings(
            notification_channels={
                "PUSH": ChannelSettings(priority=["Critical"], webhook_url="http://hooks.local/p"),
            }
        )
        channels, _ = build_channels(settings)
        assert isinstance(channels["PUSH"], WebhookChannel)
        assert channels["PUSH"].name == "PUSH"

    def test_lowercase_priority_buckets(self, clock):
        settings = _settings(
            notification_channels={
                "DASHBOARD": {"priority": ["critical", "high", "medium"], "retry_attempts": 1},
            },
            escalation_minutes={"critical": 0.5, "HIGH": 3},
        )
        _, configs = build_channels(settings)
        assert configs["DASHBOARD"].priority == [
            AlertSeverity.CRITICAL,
            AlertSeverity.HIGH,
            AlertSeverity.MEDIUM,
        ]

        pipeline = build_pipeline(settings, clock=clock)
        minutes = pipeline.alerts.config.escalation_minutes
        assert minutes[AlertSeverity.CRITICAL] == 0.5
        assert minutes[AlertSeverity.HIGH] == 3

    def test_unknown_bucket_rejected(self):
        settings = _settings(notification_channels={"PUSH": {"priority": ["urgent"]}})
        with pytest.raises(ValueError):
            build_channels(settings)


class TestForecaster:
    def test_synthetic_only_by_default(self, clock):
        adapter = build_forecaster(_settings(), clock)
        assert adapter.remote is None
        assert adapter.breaker is None

    def test_endpoint_without_credentials_stays_synthetic(self, clock):
        adapter = build_forecaster(_settings(forecast_endpoint_url="http://model.local/x"), clock)
        assert adapter.remote is None

    def test_remote_enabled_with_both(self, clock):
        adapter = build_forecaster(
            _settings(
                forecast_endpoint_url="http://model.local/x",
                credential_url="http://auth.local/token",
            ),
            clock,
        )
        assert adapter.remote is not None
        assert adapter.breaker is not None


class TestPipeline:
    def test_settings_flow_through(self, clock):
        settings = _settings(grid_resolution=10, batch_size=5, surge_threshold=7.0)
        pipeline = build_pipeline(settings, clock=clock)

        assert pipeline.aggregator.resolution == 10
        assert pipeline.aggregator.buffer.batch_size == 5
        assert pipeline.forecaster.surge_threshold == 7.0
        assert pipeline.alerts.timers is pipeline.scheduler.timers
        assert pipeline.alerts.config.escalation_minutes[AlertSeverity.LOW] == 10
        assert pipeline.point_source is None

    def test_point_source_from_url(self, clock):
        pipeline = build_pipeline(_settings(point_source_url="http://points.local"), clock=clock)
        assert pipeline.point_source is not None

    def test_inverted_bounds_rejected(self, clock):
        with pytest.raises(ValueError):
            build_pipeline(_settings(bounds_north=37.0, bounds_south=38.0), clock=clock)
