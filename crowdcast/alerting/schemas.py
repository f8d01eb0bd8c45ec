"""
Alert Schemas.

Alerts, their lifecycle states, per-type and per-channel configuration,
and the inputs for metric-derived alerts.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from crowdcast.forecasting.schemas import RecommendedAction


# ── Enums ──────────────────────────────────────────────────────────────


class AlertSeverity(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def _missing_(cls, value):
        # Config tables use lowercase buckets ("critical", "high", ...)
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class AlertStatus(StrEnum):
    ACTIVE = "Active"
    RESOLVED = "Resolved"
    ABORTED = "Aborted"
    EXPIRED = "Expired"


class AlertType(StrEnum):
    SURGE_PREDICTED = "SURGE_PREDICTED"
    BOTTLENECK_DETECTED = "BOTTLENECK_DETECTED"
    CAPACITY_WARNING = "CAPACITY_WARNING"


class AlertEventKind(StrEnum):
    ACKNOWLEDGED = "acknowledged"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    ABORTED = "aborted"
    EXPIRED = "expired"


# ── Alert ──────────────────────────────────────────────────────────────


class Alert(BaseModel):
    """A tracked alert. Mutated only by the AlertManager under its lock."""

    id: str
    type: AlertType
    severity: AlertSeverity
    zone: str
    message: str
    timestamp: datetime
    status: AlertStatus = AlertStatus.ACTIVE
    escalation_level: int = 0
    requires_acknowledgment: bool = True

    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None

    details: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[RecommendedAction] = Field(default_factory=list)

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_by is not None


# ── Configuration ──────────────────────────────────────────────────────


class AlertTypeConfig(BaseModel):
    default_severity: AlertSeverity
    requires_acknowledgment: bool


DEFAULT_ALERT_TYPES: dict[AlertType, AlertTypeConfig] = {
    AlertType.SURGE_PREDICTED: AlertTypeConfig(
        default_severity=AlertSeverity.HIGH,
        requires_acknowledgment=True,
    ),
    AlertType.BOTTLENECK_DETECTED: AlertTypeConfig(
        default_severity=AlertSeverity.MEDIUM,
        requires_acknowledgment=True,
    ),
    AlertType.CAPACITY_WARNING: AlertTypeConfig(
        default_severity=AlertSeverity.MEDIUM,
        requires_acknowledgment=False,
    ),
}


class ChannelConfig(BaseModel):
    enabled: bool = True
    priority: list[AlertSeverity] = Field(default_factory=lambda: list(AlertSeverity))
    retry_attempts: int = Field(default=1, ge=1)


class AlertingConfig(BaseModel):
    """Alert manager tuning; defaults mirror the shipped settings."""

    escalation_minutes: dict[AlertSeverity, float] = Field(
        default_factory=lambda: {
            AlertSeverity.CRITICAL: 1.0,
            AlertSeverity.HIGH: 2.0,
            AlertSeverity.MEDIUM: 5.0,
            AlertSeverity.LOW: 10.0,
        }
    )
    max_escalation_level: int = 3
    critical_density: float = 9.0
    bottleneck_velocity: float = 0.3
    alert_ttl_minutes: float = 240.0
    default_zone: str = "Event Area"
    alert_types: dict[AlertType, AlertTypeConfig] = Field(
        default_factory=lambda: dict(DEFAULT_ALERT_TYPES)
    )


# ── Metric-derived alert inputs ────────────────────────────────────────


class LocationMetrics(BaseModel):
    """Observed conditions at a potential bottleneck."""

    zone: str
    avg_velocity: float = Field(ge=0.0)
    density: float = Field(default=0.0, ge=0.0)
    person_count: int = Field(default=0, ge=0)
    cell_id: Optional[str] = None


class ZoneOccupancy(BaseModel):
    zone: str
    capacity: int = Field(gt=0)
    current_count: int = Field(ge=0)

    @property
    def occupancy_percentage(self) -> float:
        return self.current_count / self.capacity * 100


# ── Statistics ─────────────────────────────────────────────────────────


class AlertStatistics(BaseModel):
    total: int
    active: int
    by_severity: dict[str, int]
    by_type: dict[str, int]
    by_status: dict[str, int]
    average_resolution_minutes: Optional[float] = None
