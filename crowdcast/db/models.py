"""
CrowdCast SQLAlchemy Models.

Append-only records: flushed aggregation batches, alerts as raised, and
alert lifecycle events.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from crowdcast.db.engine import Base

# Documents are JSONB on PostgreSQL, plain JSON on SQLite
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def _genuuid():
    return uuid.uuid4()


# ──────────────────────────────────────────────────────────────────────────────
# Aggregation batches
# ──────────────────────────────────────────────────────────────────────────────


class CrowdTimeSeriesBatch(Base):
    """Per-cycle movement metrics from one flushed batch."""

    __tablename__ = "crowd_time_series"
    __table_args__ = (
        Index("ix_crowd_time_series_event_ts", "event_id", "batch_timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_genuuid)
    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    batch_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rows: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONDocument, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class CrowdSpatialFeatureBatch(Base):
    """Non-empty cell features from one flushed batch."""

    __tablename__ = "crowd_spatial_features"
    __table_args__ = (
        Index("ix_crowd_spatial_features_event_ts", "event_id", "batch_timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_genuuid)
    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    batch_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    features: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    grid_resolution: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ──────────────────────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────────────────────


class SecurityAlert(Base):
    """Alert as raised — immutable log."""

    __tablename__ = "security_alerts"
    __table_args__ = (
        Index("ix_security_alerts_raised_at", "raised_at"),
        Index("ix_security_alerts_type", "alert_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_genuuid)
    alert_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    alert_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    zone: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    raised_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AlertEvent(Base):
    """Lifecycle transition of an alert (acknowledged, escalated, resolved...)."""

    __tablename__ = "alert_events"
    __table_args__ = (
        Index("ix_alert_events_alert_id", "alert_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_genuuid)
    alert_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    escalation_level: Mapped[int] = mapped_column(Integer, default=0)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
