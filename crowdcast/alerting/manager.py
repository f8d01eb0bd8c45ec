"""
Alert Manager — alert lifecycle, escalation and notification fan-out.

Lifecycle:
    create → Active
    Active --acknowledge--> Active (escalation timer cancelled)
    Active --timer, unacknowledged--> Active (level+1, Critical from level 2)
    Active --resolve/abort/expire--> Resolved/Aborted/Expired (moved to history)

Every mutation runs under one asyncio.Lock and re-checks state first, so an
acknowledgment racing an escalation timer has exactly one outcome. Alerts
leave the active set exactly once and are never re-added.
"""

import asyncio
from collections import Counter
from datetime import timedelta
from functools import partial
from typing import Any, Optional, Protocol
from uuid import uuid4

import structlog

from crowdcast.alerting import rules
from crowdcast.alerting.notifications import NotificationDispatcher
from crowdcast.alerting.schemas import (
    Alert,
    AlertEventKind,
    AlertingConfig,
    AlertSeverity,
    AlertStatistics,
    AlertStatus,
    AlertType,
    LocationMetrics,
    ZoneOccupancy,
)
from crowdcast.errors import (
    AlertNotFoundError,
    InvalidAlertTransitionError,
    PersistenceError,
)
from crowdcast.forecasting.schemas import Prediction, RecommendedAction
from crowdcast.services.clock import Clock, SystemClock
from crowdcast.services.timers import TimerService

logger = structlog.get_logger(__name__)


class AlertStore(Protocol):
    async def insert_alert(self, alert: Alert) -> str:
        ...

    async def insert_alert_event(
        self, alert: Alert, event: AlertEventKind, actor: Optional[str] = None
    ) -> str:
        ...

    async def get_alert_events(self, alert_id: str) -> list[dict]:
        ...


def new_alert_id() -> str:
    return f"alert_{uuid4().hex[:16]}"


def _escalation_key(alert_id: str) -> str:
    return f"escalation:{alert_id}"


class AlertManager:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        timers: TimerService,
        store: Optional[AlertStore] = None,
        config: Optional[AlertingConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.dispatcher = dispatcher
        self.timers = timers
        self.store = store
        self.config = config or AlertingConfig()
        self.clock = clock or SystemClock()

        self._active: dict[str, Alert] = {}
        self._history: list[Alert] = []
        self._closed: dict[str, Alert] = {}
        self._lock = asyncio.Lock()
        self._escalation_enabled = True

    # ── Creation ───────────────────────────────────────────────────────

    async def create_surge_alert(
        self, prediction: Prediction, zone: Optional[str] = None
    ) -> Alert:
        risk = prediction.surge_risk
        alert = self._new_alert(
            AlertType.SURGE_PREDICTED,
            severity=rules.surge_severity(risk.percentage),
            zone=zone or self.config.default_zone,
            message=rules.surge_message(prediction),
            details={
                "surge_risk": risk.model_dump(by_alias=True),
                "alert_level": prediction.alert_level.value,
                "is_mock_data": prediction.is_mock_data,
                "forecast_timestamp": prediction.timestamp.isoformat(),
            },
            recommendations=prediction.recommended_actions,
        )
        return await self._register(alert)

    async def create_bottleneck_alert(self, location: LocationMetrics) -> Alert:
        alert = self._new_alert(
            AlertType.BOTTLENECK_DETECTED,
            severity=rules.bottleneck_severity(location, self.config.critical_density),
            zone=location.zone,
            message=rules.bottleneck_message(location),
            details=location.model_dump(),
            recommendations=rules.bottleneck_recommendations(),
        )
        return await self._register(alert)

    async def create_capacity_alert(self, zone: ZoneOccupancy) -> Alert:
        alert = self._new_alert(
            AlertType.CAPACITY_WARNING,
            severity=rules.capacity_severity(zone),
            zone=zone.zone,
            message=rules.capacity_message(zone),
            details={
                "capacity": zone.capacity,
                "current_count": zone.current_count,
                "occupancy_percentage": round(zone.occupancy_percentage, 1),
            },
            recommendations=rules.capacity_recommendations(zone),
        )
        return await self._register(alert)

    def _new_alert(
        self,
        alert_type: AlertType,
        *,
        severity: AlertSeverity,
        zone: str,
        message: str,
        details: dict[str, Any],
        recommendations: list[RecommendedAction],
    ) -> Alert:
        type_config = self.config.alert_types[alert_type]
        return Alert(
            id=new_alert_id(),
            type=alert_type,
            severity=severity,
            zone=zone,
            message=message,
            timestamp=self.clock.now(),
            requires_acknowledgment=type_config.requires_acknowledgment,
            details=details,
            recommendations=list(recommendations),
        )

    async def _register(self, alert: Alert) -> Alert:
        """
        Activate, schedule and notify, then persist.

        A store failure leaves the alert active and raises PersistenceError
        with the alert attached.
        """
        async with self._lock:
            self._active[alert.id] = alert
            if alert.requires_acknowledgment:
                self._schedule_escalation(alert)
            channels = self.dispatcher.enqueue(alert)
            snapshot = alert.model_copy(deep=True)

        logger.info(
            "alert_created",
            alert_id=alert.id,
            type=alert.type.value,
            severity=alert.severity.value,
            zone=alert.zone,
            channels=channels,
        )

        if self.store is not None:
            try:
                await self.store.insert_alert(snapshot)
            except PersistenceError as exc:
                logger.error("alert_persist_failed", alert_id=alert.id, error=exc.message)
                raise PersistenceError(exc.message, record=snapshot) from exc
        return snapshot

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def acknowledge_alert(self, alert_id: str, actor: str) -> Alert:
        async with self._lock:
            alert = self._require_active(alert_id, "acknowledge")
            if alert.is_acknowledged:
                raise InvalidAlertTransitionError(
                    alert_id, "acknowledge", f"already acknowledged by {alert.acknowledged_by}"
                )
            alert.acknowledged_by = actor
            alert.acknowledged_at = self.clock.now()
            self.timers.cancel(_escalation_key(alert_id))
            snapshot = alert.model_copy(deep=True)

        logger.info("alert_acknowledged", alert_id=alert_id, actor=actor)
        await self._record_event(snapshot, AlertEventKind.ACKNOWLEDGED, actor)
        return snapshot

    async def resolve_alert(self, alert_id: str, actor: str, resolution: str = "") -> Alert:
        return await self._close(
            "resolve", alert_id, AlertStatus.RESOLVED, AlertEventKind.RESOLVED, actor, resolution
        )

    async def abort_alert(self, alert_id: str, actor: str, reason: str = "") -> Alert:
        return await self._close(
            "abort", alert_id, AlertStatus.ABORTED, AlertEventKind.ABORTED, actor, reason
        )

    async def escalate_alert(self, alert_id: str) -> Optional[Alert]:
        """
        Escalation timer callback.

        No-op when the alert was acknowledged or has left the active set.
        """
        async with self._lock:
            alert = self._active.get(alert_id)
            if alert is None or alert.is_acknowledged:
                logger.debug("escalation_skipped", alert_id=alert_id)
                return None
            if alert.escalation_level >= self.config.max_escalation_level:
                return None

            alert.escalation_level += 1
            if alert.escalation_level >= 2:
                alert.severity = AlertSeverity.CRITICAL
            self.dispatcher.enqueue(alert)
            if alert.escalation_level < self.config.max_escalation_level:
                self._schedule_escalation(alert)
            snapshot = alert.model_copy(deep=True)

        logger.warning(
            "alert_escalated",
            alert_id=alert_id,
            level=snapshot.escalation_level,
            severity=snapshot.severity.value,
        )
        await self._record_event(snapshot, AlertEventKind.ESCALATED)
        return snapshot

    async def expire_alerts(self, max_age_minutes: Optional[float] = None) -> list[Alert]:
        """Move active alerts older than ``max_age_minutes`` to history as Expired."""
        ttl = timedelta(minutes=max_age_minutes or self.config.alert_ttl_minutes)
        cutoff = self.clock.now() - ttl
        async with self._lock:
            stale = [a for a in self._active.values() if a.timestamp <= cutoff]
            expired = [
                self._close_locked(alert, AlertStatus.EXPIRED, None, "expired")
                for alert in stale
            ]

        for alert in expired:
            logger.info("alert_expired", alert_id=alert.id)
            await self._record_event(alert, AlertEventKind.EXPIRED)
        return expired

    async def _close(
        self,
        action: str,
        alert_id: str,
        status: AlertStatus,
        event: AlertEventKind,
        actor: str,
        resolution: str,
    ) -> Alert:
        async with self._lock:
            alert = self._require_active(alert_id, action)
            snapshot = self._close_locked(alert, status, actor, resolution)

        logger.info("alert_closed", alert_id=alert_id, status=status.value, actor=actor)
        await self._record_event(snapshot, event, actor)
        return snapshot

    def _close_locked(
        self,
        alert: Alert,
        status: AlertStatus,
        actor: Optional[str],
        resolution: str,
    ) -> Alert:
        del self._active[alert.id]
        self.timers.cancel(_escalation_key(alert.id))
        alert.status = status
        alert.resolved_by = actor
        alert.resolved_at = self.clock.now()
        alert.resolution = resolution or None
        self._history.append(alert)
        self._closed[alert.id] = alert
        return alert.model_copy(deep=True)

    def _require_active(self, alert_id: str, action: str) -> Alert:
        alert = self._active.get(alert_id)
        if alert is not None:
            return alert
        closed = self._closed.get(alert_id)
        if closed is not None:
            raise InvalidAlertTransitionError(
                alert_id, action, f"alert is {closed.status.value}"
            )
        raise AlertNotFoundError(alert_id)

    # ── Escalation timers ──────────────────────────────────────────────

    def _schedule_escalation(self, alert: Alert) -> None:
        if not self._escalation_enabled:
            return
        minutes = self.config.escalation_minutes.get(alert.severity, 5.0)
        self.timers.schedule(
            _escalation_key(alert.id),
            minutes * 60,
            partial(self.escalate_alert, alert.id),
        )

    async def start(self) -> int:
        """Enable escalation and re-arm timers for pending alerts."""
        async with self._lock:
            self._escalation_enabled = True
            pending = [
                a for a in self._active.values()
                if a.requires_acknowledgment
                and not a.is_acknowledged
                and a.escalation_level < self.config.max_escalation_level
            ]
            for alert in pending:
                self._schedule_escalation(alert)
        return len(pending)

    async def stop(self) -> None:
        """Cancel all escalation timers; active alerts are kept."""
        async with self._lock:
            self._escalation_enabled = False
            for alert_id in self._active:
                self.timers.cancel(_escalation_key(alert_id))
        logger.info("alert_escalation_stopped", active=len(self._active))

    # ── Queries ────────────────────────────────────────────────────────

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        alert = self._active.get(alert_id) or self._closed.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    def get_active_alerts(self) -> list[Alert]:
        alerts = sorted(self._active.values(), key=lambda a: a.timestamp)
        return [a.model_copy(deep=True) for a in alerts]

    def get_alert_history(self, limit: Optional[int] = None) -> list[Alert]:
        history = self._history if limit is None else self._history[-limit:]
        return [a.model_copy(deep=True) for a in history]

    async def get_alert_events(self, alert_id: str) -> list[dict]:
        """Persisted lifecycle events of a known alert; empty without a store."""
        if alert_id not in self._active and alert_id not in self._closed:
            raise AlertNotFoundError(alert_id)
        if self.store is None:
            return []
        return await self.store.get_alert_events(alert_id)

    def get_alert_statistics(self) -> AlertStatistics:
        alerts = list(self._active.values()) + self._history
        durations = [
            (a.resolved_at - a.timestamp).total_seconds() / 60.0
            for a in self._history
            if a.status == AlertStatus.RESOLVED and a.resolved_at is not None
        ]
        return AlertStatistics(
            total=len(alerts),
            active=len(self._active),
            by_severity=dict(Counter(a.severity.value for a in alerts)),
            by_type=dict(Counter(a.type.value for a in alerts)),
            by_status=dict(Counter(a.status.value for a in alerts)),
            average_resolution_minutes=(
                sum(durations) / len(durations) if durations else None
            ),
        )

    async def _record_event(
        self, alert: Alert, event: AlertEventKind, actor: Optional[str] = None
    ) -> None:
        if self.store is None:
            return
        try:
            await self.store.insert_alert_event(alert, event, actor)
        except PersistenceError as exc:
            logger.warning(
                "alert_event_persist_failed",
                alert_id=alert.id,
                event_kind=event.value,
                error=exc.message,
            )
