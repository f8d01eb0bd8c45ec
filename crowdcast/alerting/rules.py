"""
Alert rules: severity, message and recommendations per alert type.

Kept free of state so the manager only decides lifecycle, not content.
"""

from crowdcast.alerting.schemas import AlertSeverity, LocationMetrics, ZoneOccupancy
from crowdcast.forecasting.schemas import ActionPriority, Prediction, RecommendedAction


# ── Surge ──────────────────────────────────────────────────────────────


def surge_severity(percentage: float) -> AlertSeverity:
    if percentage >= 90:
        return AlertSeverity.CRITICAL
    if percentage >= 70:
        return AlertSeverity.HIGH
    if percentage >= 50:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def surge_message(prediction: Prediction) -> str:
    risk = prediction.surge_risk
    time_to_surge = risk.time_to_surge if risk.time_to_surge is not None else "Unknown"
    return (
        f"Crowd surge predicted with {risk.percentage}% probability. "
        f"Peak density: {risk.peak_density:.1f}. "
        f"Time to surge: {time_to_surge} minutes."
    )


# ── Bottleneck ─────────────────────────────────────────────────────────


def bottleneck_severity(location: LocationMetrics, critical_density: float) -> AlertSeverity:
    if location.density >= critical_density:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def bottleneck_message(location: LocationMetrics) -> str:
    return (
        f"Bottleneck detected at {location.zone}. "
        f"Average velocity: {location.avg_velocity:.2f} m/s"
    )


def bottleneck_recommendations() -> list[RecommendedAction]:
    return [
        RecommendedAction(
            priority=ActionPriority.HIGH,
            action="Deploy crowd control personnel to bottleneck area",
            timeframe="immediate",
        ),
        RecommendedAction(
            priority=ActionPriority.MEDIUM,
            action="Open alternative routes and guide crowd flow",
            timeframe="2-3 minutes",
        ),
    ]


# ── Capacity ───────────────────────────────────────────────────────────

CAPACITY_HIGH_PERCENTAGE = 90.0


def capacity_severity(zone: ZoneOccupancy) -> AlertSeverity:
    if zone.occupancy_percentage > CAPACITY_HIGH_PERCENTAGE:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def capacity_message(zone: ZoneOccupancy) -> str:
    return (
        f"Zone capacity at {zone.occupancy_percentage:.1f}% "
        f"({zone.current_count}/{zone.capacity})"
    )


def capacity_recommendations(zone: ZoneOccupancy) -> list[RecommendedAction]:
    if zone.occupancy_percentage > CAPACITY_HIGH_PERCENTAGE:
        return [
            RecommendedAction(
                priority=ActionPriority.HIGH,
                action="Restrict entry to zone immediately",
                timeframe="immediate",
            ),
            RecommendedAction(
                priority=ActionPriority.HIGH,
                action="Guide crowds to alternative areas",
                timeframe="immediate",
            ),
        ]
    return [
        RecommendedAction(
            priority=ActionPriority.MEDIUM,
            action="Monitor zone capacity closely",
            timeframe="ongoing",
        )
    ]
