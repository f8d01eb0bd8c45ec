"""
Crowd safety alerting.

Surge, bottleneck and capacity alerts with acknowledgment, timed
escalation and queued multi-channel notification.
"""

from crowdcast.alerting.channels import DashboardChannel, NotificationChannel, WebhookChannel
from crowdcast.alerting.manager import AlertManager
from crowdcast.alerting.notifications import NotificationDispatcher
from crowdcast.alerting.schemas import (
    Alert,
    AlertingConfig,
    AlertSeverity,
    AlertStatus,
    AlertType,
    LocationMetrics,
    ZoneOccupancy,
)

__all__ = [
    "Alert",
    "AlertManager",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "AlertingConfig",
    "DashboardChannel",
    "LocationMetrics",
    "NotificationChannel",
    "NotificationDispatcher",
    "WebhookChannel",
    "ZoneOccupancy",
]
