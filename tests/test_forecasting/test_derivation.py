"""
Tests for forecast derivation.

Covers:
- Alert level thresholds (strictly greater than 1.2T / T / 0.8T)
- Surge risk percentage, first crossing and peak (1-based minutes)
- Recommended actions per rule
- Training row preparation
"""

from datetime import datetime, timezone

import pytest

from crowdcast.forecasting.derivation import (
    build_prediction,
    derive_alert_level,
    derive_recommendations,
    derive_surge_risk,
)
from crowdcast.forecasting.features import prepare_training_rows
from crowdcast.forecasting.schemas import ActionPriority, AlertLevel, RawForecast

T = 8.0
NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


# ── Alert level ───────────────────────────────────────────────────────


class TestAlertLevel:
    @pytest.mark.parametrize(
        "peak,level",
        [
            (9.7, AlertLevel.CRITICAL),
            (9.6, AlertLevel.WARNING),
            (8.1, AlertLevel.WARNING),
            (8.0, AlertLevel.CAUTION),
            (6.5, AlertLevel.CAUTION),
            (6.4, AlertLevel.NORMAL),
            (0.0, AlertLevel.NORMAL),
        ],
    )
    def test_thresholds(self, peak, level):
        assert derive_alert_level([1.0, peak, 2.0], T) == level

    def test_empty_is_normal(self):
        assert derive_alert_level([], T) == AlertLevel.NORMAL


# ── Surge risk ────────────────────────────────────────────────────────


class TestSurgeRisk:
    def test_crossing_and_peak(self):
        risk = derive_surge_risk([7.0, 9.0, 10.0, 7.0], T)
        assert risk.percentage == 50
        assert risk.time_to_surge == 2
        assert risk.peak_density == 10.0
        assert risk.peak_time == 3

    def test_no_crossing(self):
        risk = derive_surge_risk([5.0, 8.0, 6.0], T)
        assert risk.percentage == 0
        assert risk.time_to_surge is None
        assert risk.peak_time == 2

    def test_percentage_rounds_half_up(self):
        risk = derive_surge_risk([9.0] + [1.0] * 7, T)
        assert risk.percentage == 13

    def test_percentage_rounds_thirds(self):
        assert derive_surge_risk([9.0, 9.0, 1.0], T).percentage == 67
        assert derive_surge_risk([9.0, 1.0, 1.0], T).percentage == 33

    def test_first_peak_wins(self):
        assert derive_surge_risk([9.0, 10.0, 10.0], T).peak_time == 2


# ── Recommendations ───────────────────────────────────────────────────


class TestRecommendations:
    def test_sustained_surge_gets_all_actions(self):
        values = [9.0] * 5
        actions = derive_recommendations(values, derive_surge_risk(values, T), T)
        priorities = [a.priority for a in actions]
        assert priorities == [
            ActionPriority.HIGH,
            ActionPriority.HIGH,
            ActionPriority.MEDIUM,
            ActionPriority.MEDIUM,
            ActionPriority.LOW,
        ]
        assert actions[1].timeframe == "1 minutes"
        assert actions[0].action == "Deploy additional security personnel to high-density areas"

    def test_brief_surge_skips_medium(self):
        values = [5.0, 9.0, 5.0]
        actions = derive_recommendations(values, derive_surge_risk(values, T), T)
        assert [a.priority for a in actions] == [
            ActionPriority.HIGH,
            ActionPriority.HIGH,
            ActionPriority.LOW,
        ]
        assert actions[1].timeframe == "2 minutes"

    def test_caution_only_monitors(self):
        values = [7.0]
        actions = derive_recommendations(values, derive_surge_risk(values, T), T)
        assert [a.action for a in actions] == ["Monitor crowd movement patterns closely"]

    def test_normal_has_no_actions(self):
        values = [5.0, 4.0]
        assert derive_recommendations(values, derive_surge_risk(values, T), T) == []


# ── Prediction assembly ───────────────────────────────────────────────


def test_build_prediction_derives_everything():
    raw = RawForecast(
        predictions=[7.0, 9.0, 10.0],
        confidence=[0.9] * 3,
        upper_bound=[8.0, 10.0, 11.0],
        lower_bound=[6.0, 8.0, 9.0],
        is_mock_data=True,
    )
    prediction = build_prediction(raw, threshold=T, timestamp=NOW)
    assert prediction.forecast_horizon == 3
    assert prediction.alert_level == AlertLevel.CRITICAL
    assert prediction.surge_risk.percentage == 67
    assert prediction.is_mock_data is True

    data = prediction.model_dump(mode="json", by_alias=True)
    assert data["alertLevel"] == "critical"
    assert data["surgeRisk"]["timeToSurge"] == 2
    assert data["isMockData"] is True


def test_prepare_training_rows_sorted_with_calendar_features():
    batches = [
        {
            "eventId": "evt",
            "timeSeriesData": [
                {"timestamp": "2026-03-14T12:01:00+00:00", "totalPeople": 4},
                {"timestamp": "2026-03-14T12:00:00+00:00", "totalPeople": 3},
            ],
        },
        {
            "eventId": "evt",
            "timeSeriesData": [{"timestamp": "2026-03-16T08:00:00+00:00", "totalPeople": 1}],
        },
    ]
    rows = prepare_training_rows(batches)
    assert [r["totalPeople"] for r in rows] == [3, 4, 1]
    assert rows[0]["timeOfDay"] == 12
    assert rows[0]["dayOfWeek"] == 5  # Saturday
    assert rows[2]["dayOfWeek"] == 0
    assert rows[0]["eventId"] == "evt"
