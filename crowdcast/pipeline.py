"""
Crowd Pipeline — wires aggregation, forecasting and alerting together.

One cycle:
1. Aggregate points into the grid (GridAggregator.ingest)
2. Forecast density from the cycle metrics (ForecastingAdapter)
3. Raise a surge alert on a warning/critical forecast
4. Raise bottleneck alerts for slow hotspots
Alerts raised by cycles pass through a per-(type, zone) cooldown.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import structlog

from crowdcast.aggregation.aggregator import GridAggregator
from crowdcast.aggregation.schemas import CrowdDataPoint, CycleResult
from crowdcast.aggregation.sources import PointSource
from crowdcast.alerting.dedup import AlertCooldown
from crowdcast.alerting.manager import AlertManager
from crowdcast.alerting.schemas import Alert, AlertType, LocationMetrics
from crowdcast.errors import PersistenceError
from crowdcast.forecasting.adapter import ForecastingAdapter
from crowdcast.forecasting.features import prepare_training_rows
from crowdcast.forecasting.schemas import AlertLevel, Prediction
from crowdcast.services.scheduler import PipelineScheduler

logger = structlog.get_logger(__name__)

SURGE_LEVELS = (AlertLevel.WARNING, AlertLevel.CRITICAL)


@dataclass
class CycleReport:
    cycle: CycleResult
    prediction: Prediction
    alerts: list[Alert] = field(default_factory=list)


class CrowdPipeline:
    def __init__(
        self,
        aggregator: GridAggregator,
        forecaster: ForecastingAdapter,
        alerts: AlertManager,
        scheduler: Optional[PipelineScheduler] = None,
        cooldown: Optional[AlertCooldown] = None,
        point_source: Optional[PointSource] = None,
        *,
        collection_interval_seconds: float = 30.0,
        flush_interval_seconds: float = 60.0,
        notification_interval_seconds: float = 5.0,
        expiry_check_minutes: float = 15.0,
    ):
        self.aggregator = aggregator
        self.forecaster = forecaster
        self.alerts = alerts
        self.scheduler = scheduler
        self.cooldown = cooldown or AlertCooldown(clock=alerts.clock)
        self.point_source = point_source
        self.collection_interval_seconds = collection_interval_seconds
        self.flush_interval_seconds = flush_interval_seconds
        self.notification_interval_seconds = notification_interval_seconds
        self.expiry_check_minutes = expiry_check_minutes
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    # ── Cycle ──────────────────────────────────────────────────────────

    async def run_cycle(
        self, points: Iterable[CrowdDataPoint | Mapping[str, Any]]
    ) -> CycleReport:
        cycle = await self.aggregator.ingest(points)
        prediction = await self.forecaster.generate_forecast(cycle.metrics)
        report = CycleReport(cycle=cycle, prediction=prediction)

        if prediction.alert_level in SURGE_LEVELS:
            zone = self.alerts.config.default_zone
            alert = await self._raise(
                AlertType.SURGE_PREDICTED,
                zone,
                lambda: self.alerts.create_surge_alert(prediction, zone),
            )
            if alert is not None:
                report.alerts.append(alert)

        for hotspot in cycle.metrics.hotspots:
            if hotspot.velocity >= self.alerts.config.bottleneck_velocity:
                continue
            location = LocationMetrics(
                zone=f"Grid cell {hotspot.cell_id}",
                cell_id=hotspot.cell_id,
                avg_velocity=hotspot.velocity,
                density=hotspot.density,
                person_count=hotspot.person_count,
            )
            alert = await self._raise(
                AlertType.BOTTLENECK_DETECTED,
                location.zone,
                lambda loc=location: self.alerts.create_bottleneck_alert(loc),
            )
            if alert is not None:
                report.alerts.append(alert)

        return report

    async def _raise(self, alert_type: AlertType, zone: str, create) -> Optional[Alert]:
        suppressed, reason = self.cooldown.should_suppress(alert_type, zone)
        if suppressed:
            logger.debug("cycle_alert_suppressed", type=alert_type.value, zone=zone, reason=reason)
            return None
        self.cooldown.record_fired(alert_type, zone)
        try:
            return await create()
        except PersistenceError as exc:
            logger.error("cycle_alert_not_persisted", type=alert_type.value, error=exc.message)
            return exc.alert

    # ── Scheduled jobs ─────────────────────────────────────────────────

    async def collect(self) -> Optional[CycleReport]:
        if self.point_source is None:
            return None
        points = await self.point_source.fetch()
        return await self.run_cycle(points)

    async def flush_buffer(self) -> None:
        try:
            await self.aggregator.flush()
        except PersistenceError as exc:
            logger.error("batch_flush_failed", trigger="timer", error=exc.message)

    async def drain_notifications(self) -> None:
        await self.alerts.dispatcher.drain()

    async def expire_alerts(self) -> None:
        await self.alerts.expire_alerts()

    # ── Queries ────────────────────────────────────────────────────────

    async def training_data(self, hours: float = 24) -> list[dict[str, Any]]:
        """Stored time-series rows from the last ``hours`` as forecaster training rows."""
        history = await self.aggregator.get_historical_data(hours)
        return prepare_training_rows(history["timeSeriesData"])

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        rearmed = await self.alerts.start()
        if self.scheduler is not None:
            if self.point_source is not None:
                self.scheduler.add_interval_job(
                    self.collect, self.collection_interval_seconds, "collection_cycle"
                )
            self.scheduler.add_interval_job(
                self.flush_buffer, self.flush_interval_seconds, "batch_flush"
            )
            self.scheduler.add_interval_job(
                self.drain_notifications, self.notification_interval_seconds, "notification_drain"
            )
            self.scheduler.add_interval_job(
                self.expire_alerts, self.expiry_check_minutes * 60, "alert_expiry"
            )
            self.scheduler.start()
        self._started = True
        logger.info("pipeline_started", escalations_rearmed=rearmed)

    async def stop(self) -> None:
        """
        Flush buffered cycles, cancel escalation timers, stop periodic jobs.

        Active alerts stay in memory for a later start().
        """
        if not self._started:
            return
        await self.flush_buffer()
        await self.alerts.stop()
        if self.scheduler is not None:
            for job_id in ("collection_cycle", "batch_flush", "notification_drain", "alert_expiry"):
                self.scheduler.remove_job(job_id)
            await self.scheduler.stop()
        self._started = False
        logger.info("pipeline_stopped", active_alerts=len(self.alerts.get_active_alerts()))
