"""
SQL durable store.

Implements the batch and alert store contracts on async SQLAlchemy.
Every write is a single insert in its own transaction; driver errors
surface as PersistenceError.
"""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crowdcast.aggregation.schemas import Batch
from crowdcast.alerting.schemas import Alert, AlertEventKind
from crowdcast.db.models import (
    AlertEvent,
    CrowdSpatialFeatureBatch,
    CrowdTimeSeriesBatch,
    SecurityAlert,
)
from crowdcast.errors import PersistenceError
from crowdcast.services.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class SQLDurableStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    async def _insert(self, *rows) -> None:
        try:
            async with self.session_factory() as session:
                session.add_all(rows)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"store write failed: {exc.__class__.__name__}") from exc

    async def insert_batch(self, batch: Batch) -> str:
        """Write the time-series and spatial halves of a batch together."""
        data = batch.model_dump(mode="json", by_alias=True)
        time_series = CrowdTimeSeriesBatch(
            event_id=batch.event_id,
            batch_id=batch.batch_id,
            batch_timestamp=batch.timestamp,
            rows=data["timeSeriesData"],
            metadata_=data["metadata"],
        )
        spatial = CrowdSpatialFeatureBatch(
            event_id=batch.event_id,
            batch_id=batch.batch_id,
            batch_timestamp=batch.timestamp,
            features=data["spatialFeatures"],
            grid_resolution=batch.metadata.grid_resolution,
        )
        await self._insert(time_series, spatial)
        logger.debug("batch_persisted", batch_id=batch.batch_id)
        return str(time_series.id)

    async def insert_alert(self, alert: Alert) -> str:
        row = SecurityAlert(
            alert_id=alert.id,
            alert_type=alert.type.value,
            severity=alert.severity.value,
            zone=alert.zone,
            message=alert.message,
            payload=alert.model_dump(mode="json"),
            raised_at=alert.timestamp,
        )
        await self._insert(row)
        return str(row.id)

    async def insert_alert_event(
        self, alert: Alert, event: AlertEventKind, actor: Optional[str] = None
    ) -> str:
        row = AlertEvent(
            alert_id=alert.id,
            event=event.value,
            actor=actor,
            status=alert.status.value,
            severity=alert.severity.value,
            escalation_level=alert.escalation_level,
            occurred_at=self.clock.now(),
        )
        await self._insert(row)
        return str(row.id)

    async def get_historical_data(self, hours: float = 24) -> dict[str, list[dict]]:
        """
        Time-series and spatial batches from the last ``hours``, oldest first.

        Returns ``{"timeSeriesData": [...], "spatialData": [...]}``.
        """
        cutoff = self.clock.now() - timedelta(hours=hours)
        try:
            async with self.session_factory() as session:
                time_series = (
                    await session.execute(
                        select(CrowdTimeSeriesBatch)
                        .where(CrowdTimeSeriesBatch.batch_timestamp >= cutoff)
                        .order_by(CrowdTimeSeriesBatch.batch_timestamp)
                    )
                ).scalars().all()
                spatial = (
                    await session.execute(
                        select(CrowdSpatialFeatureBatch)
                        .where(CrowdSpatialFeatureBatch.batch_timestamp >= cutoff)
                        .order_by(CrowdSpatialFeatureBatch.batch_timestamp)
                    )
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"store read failed: {exc.__class__.__name__}") from exc

        return {
            "timeSeriesData": [
                {
                    "eventId": row.event_id,
                    "batchId": row.batch_id,
                    "timestamp": row.batch_timestamp,
                    "timeSeriesData": row.rows,
                    "metadata": row.metadata_,
                }
                for row in time_series
            ],
            "spatialData": [
                {
                    "eventId": row.event_id,
                    "batchId": row.batch_id,
                    "timestamp": row.batch_timestamp,
                    "spatialFeatures": row.features,
                    "gridResolution": row.grid_resolution,
                }
                for row in spatial
            ],
        }

    async def get_alert_events(self, alert_id: str) -> list[dict]:
        """Lifecycle events recorded for one alert, oldest first."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(AlertEvent)
                    .where(AlertEvent.alert_id == alert_id)
                    .order_by(AlertEvent.occurred_at)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"store read failed: {exc.__class__.__name__}") from exc

        return [
            {
                "alert_id": row.alert_id,
                "event": row.event,
                "actor": row.actor,
                "status": row.status,
                "severity": row.severity,
                "escalation_level": row.escalation_level,
                "occurred_at": row.occurred_at,
            }
            for row in rows
        ]
