"""
Build a CrowdPipeline from Settings.

Remote forecasting is enabled only when both the endpoint and the credential
URL are configured; otherwise every forecast is synthetic.
"""

from typing import Optional

import structlog

from crowdcast.aggregation.aggregator import BatchStore, GridAggregator
from crowdcast.aggregation.geo import BoundingBox
from crowdcast.aggregation.sources import HttpPointSource
from crowdcast.alerting.channels import DashboardChannel, NotificationChannel, WebhookChannel
from crowdcast.alerting.dedup import AlertCooldown
from crowdcast.alerting.manager import AlertManager, AlertStore
from crowdcast.alerting.notifications import NotificationDispatcher
from crowdcast.alerting.schemas import AlertingConfig, AlertSeverity, ChannelConfig
from crowdcast.config import Settings
from crowdcast.forecasting.adapter import ForecastingAdapter
from crowdcast.forecasting.credentials import BackendCredentialService, TokenManager
from crowdcast.forecasting.strategies import RemoteForecaster, SyntheticForecaster
from crowdcast.pipeline import CrowdPipeline
from crowdcast.services.clock import Clock, SystemClock
from crowdcast.services.resilience import CircuitBreaker
from crowdcast.services.scheduler import PipelineScheduler

logger = structlog.get_logger(__name__)


def build_channels(
    settings: Settings,
    dashboard: Optional[DashboardChannel] = None,
) -> tuple[dict[str, NotificationChannel], dict[str, ChannelConfig]]:
    """Channel implementations and dispatch configs from settings."""
    channels: dict[str, NotificationChannel] = {}
    configs: dict[str, ChannelConfig] = {}
    for name, cfg in settings.notification_channels.items():
        configs[name] = ChannelConfig(
            enabled=cfg.enabled,
            priority=[AlertSeverity(p) for p in cfg.priority],
            retry_attempts=cfg.retry_attempts,
        )
        if name == "DASHBOARD":
            channels[name] = dashboard or DashboardChannel()
        elif cfg.webhook_url:
            channels[name] = WebhookChannel(
                cfg.webhook_url, name=name, timeout=settings.notification_timeout_seconds
            )
    return channels, configs


def build_forecaster(settings: Settings, clock: Clock) -> ForecastingAdapter:
    remote = None
    breaker = None
    if settings.forecast_endpoint_url and settings.credential_url:
        tokens = TokenManager(
            BackendCredentialService(
                settings.credential_url,
                project_id=settings.forecast_project_id,
                clock=clock,
            ),
            refresh_margin_seconds=settings.token_refresh_margin_seconds,
            clock=clock,
        )
        remote = RemoteForecaster(
            settings.forecast_endpoint_url,
            tokens,
            timeout=settings.forecast_timeout_seconds,
        )
        breaker = CircuitBreaker(
            "forecast_backend",
            failure_threshold=settings.forecast_breaker_failures,
            recovery_timeout=settings.forecast_breaker_recovery_seconds,
        )
    else:
        logger.info("remote_forecasting_disabled", reason="endpoint or credentials not configured")

    return ForecastingAdapter(
        remote,
        SyntheticForecaster(),
        horizon=settings.forecast_horizon,
        surge_threshold=settings.surge_threshold,
        timeout_seconds=settings.forecast_timeout_seconds,
        cache_size=settings.forecast_cache_size,
        event_id=settings.event_id,
        breaker=breaker,
        clock=clock,
    )


def alerting_config(settings: Settings) -> AlertingConfig:
    return AlertingConfig(
        escalation_minutes={
            AlertSeverity(k): v for k, v in settings.escalation_minutes.items()
        },
        max_escalation_level=settings.max_escalation_level,
        critical_density=settings.critical_density,
        bottleneck_velocity=settings.bottleneck_velocity,
        alert_ttl_minutes=settings.alert_ttl_minutes,
        default_zone=settings.default_zone,
    )


def build_pipeline(
    settings: Settings,
    store: Optional[BatchStore | AlertStore] = None,
    *,
    scheduler: Optional[PipelineScheduler] = None,
    dashboard: Optional[DashboardChannel] = None,
    clock: Optional[Clock] = None,
) -> CrowdPipeline:
    clock = clock or SystemClock()
    scheduler = scheduler or PipelineScheduler()

    aggregator = GridAggregator(
        store,
        bounds=BoundingBox(
            north=settings.bounds_north,
            south=settings.bounds_south,
            east=settings.bounds_east,
            west=settings.bounds_west,
        ),
        resolution=settings.grid_resolution,
        batch_size=settings.batch_size,
        max_buffered_cycles=settings.max_buffered_cycles,
        collection_interval_seconds=settings.collection_interval_seconds,
        event_id=settings.event_id,
        clock=clock,
    )

    channels, channel_configs = build_channels(settings, dashboard)
    dispatcher = NotificationDispatcher(
        channels,
        channel_configs,
        batch_size=settings.notification_batch_size,
        clock=clock,
    )
    alerts = AlertManager(
        dispatcher,
        scheduler.timers,
        store=store,
        config=alerting_config(settings),
        clock=clock,
    )

    point_source = None
    if settings.point_source_url:
        point_source = HttpPointSource(
            settings.point_source_url, timeout=settings.point_source_timeout_seconds
        )

    return CrowdPipeline(
        aggregator,
        build_forecaster(settings, clock),
        alerts,
        scheduler=scheduler,
        cooldown=AlertCooldown(
            settings.alert_cooldown_minutes, settings.max_alerts_per_day, clock=clock
        ),
        point_source=point_source,
        collection_interval_seconds=settings.collection_interval_seconds,
        flush_interval_seconds=settings.flush_interval_seconds,
        notification_interval_seconds=settings.notification_interval_seconds,
        expiry_check_minutes=settings.alert_expiry_check_minutes,
    )
