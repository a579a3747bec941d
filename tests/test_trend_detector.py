"""Tests for the statistical trend detector."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import numpy as np
import pytest

from src.core.analysis.models import Significance, TrendDirection
from src.core.analysis.trend_detector import TrendDetector
from src.core.errors import InsufficientData, NoteKind
from src.core.guidelines.models import EvidenceLevel, GuidelineRef
from src.core.risk.models import SignalKind
from src.core.timeline.models import DataPoint
from src.utils.preprocessing import to_day_offsets


@pytest.fixture
def detector(cfg):
    return TrendDetector(cfg.trend_config)


def _series(parameter, values, start=date(2022, 1, 1), step_days=60, unit=""):
    return [
        DataPoint("u1", parameter, start + timedelta(days=i * step_days), v, unit, f"lab-{i}")
        for i, v in enumerate(values)
    ]


def _half_yearly(parameter, values):
    days = [date(2022, 1, 1), date(2022, 7, 1), date(2023, 1, 1), date(2023, 7, 1), date(2024, 1, 1)]
    return [DataPoint("u1", parameter, d, v, "", f"lab-{i}") for i, (d, v) in enumerate(zip(days, values))]


# ------------------------------------------------------------------
# Reference scenario
# ------------------------------------------------------------------

class TestHbA1cScenario:
    def test_monthly_rise_is_high_increasing(self, detector, hba1c_points):
        trend = detector.detect(hba1c_points)

        assert trend.parameter == "hba1c"
        assert trend.direction is TrendDirection.INCREASING
        assert trend.significance is Significance.HIGH
        assert trend.confidence > 0.7
        assert trend.p_value < 0.05
        assert trend.point_count == 5
        assert trend.start_date == date(2024, 1, 15)
        assert trend.end_date == date(2024, 5, 15)

    def test_annual_rate_exceeds_clinical_threshold(self, detector, hba1c_points):
        trend = detector.detect(hba1c_points)
        assert trend.annual_rate > 0.5
        assert trend.rate_of_change == pytest.approx(trend.annual_rate / 365.25)

    def test_is_concerning_and_signalled(self, detector, hba1c_points, created_at):
        trend = detector.detect(hba1c_points)
        ref = GuidelineRef("ada_x", "HbA1c", "ADA 2024", EvidenceLevel.B)

        [signal] = detector.to_signals([trend], {"hba1c": [ref]}, created_at)

        assert signal.kind is SignalKind.TREND
        assert signal.subject == "hba1c"
        assert 60.0 <= signal.severity <= 100.0
        assert signal.evidence.guideline_refs == (ref,)
        assert signal.evidence.data_points == tuple(hba1c_points)
        assert signal.evidence.trends == (trend,)


# ------------------------------------------------------------------
# Direction
# ------------------------------------------------------------------

class TestDirection:
    def test_monotonic_increase_with_bounded_noise(self, detector):
        noise = [1.0, -1.0] * 4
        values = [90 + 0.05 * (i * 60) + n for i, n in enumerate(noise)]
        trend = detector.detect(_series("fasting_glucose", values))
        assert trend.direction is TrendDirection.INCREASING

    def test_monotonic_decrease_with_bounded_noise(self, detector):
        noise = [0.5, -0.5] * 4
        values = [90 - 0.02 * (i * 60) + n for i, n in enumerate(noise)]
        trend = detector.detect(_series("egfr", values))
        assert trend.direction is TrendDirection.DECREASING

    def test_identical_values_are_stable(self, detector):
        trend = detector.detect(_series("ldl_cholesterol", [120.0] * 4))
        assert trend.direction is TrendDirection.STABLE
        assert trend.rate_of_change == 0.0
        assert trend.significance is Significance.LOW
        assert trend.confidence == pytest.approx(1 - np.exp(-2.0))

    def test_input_order_does_not_matter(self, detector, hba1c_points):
        shuffled = list(reversed(hba1c_points))
        assert detector.detect(shuffled) == detector.detect(hba1c_points)


# ------------------------------------------------------------------
# Outliers and sparse data
# ------------------------------------------------------------------

class TestRobustness:
    def test_single_outlier_does_not_make_a_trend(self, detector):
        points = _series("ldl_cholesterol", [100.0] * 10 + [115.0], step_days=30)
        trend = detector.detect(points)
        assert trend.direction is TrendDirection.STABLE
        assert not detector.is_concerning(trend)

    def test_leverage_check_flags_spike(self, detector):
        points = _series("ldl_cholesterol", [100.0] * 10 + [115.0], step_days=30)
        x = to_day_offsets([p.date for p in points])
        y = np.array([p.value for p in points])
        slope = detector._fit(x, y)[0]
        assert slope > 0
        assert detector._single_point_driven(x, y, slope) is True

    def test_leverage_check_accepts_steady_rise(self, detector, hba1c_points):
        x = to_day_offsets([p.date for p in hba1c_points])
        y = np.array([p.value for p in hba1c_points])
        slope = detector._fit(x, y)[0]
        assert detector._single_point_driven(x, y, slope) is False

    def test_two_points_is_insufficient(self, detector):
        result = detector.detect(_series("hba1c", [5.5, 6.5]))
        assert isinstance(result, InsufficientData)
        assert result.point_count == 2
        assert result.required == 3
        assert "Not enough history" in result.note.message

    def test_same_day_values_count_once(self, detector):
        points = _series("hba1c", [5.5, 6.0])
        points.append(DataPoint("u1", "hba1c", points[-1].date, 6.1, "%", "other-lab"))
        result = detector.detect(points)
        assert isinstance(result, InsufficientData)
        assert result.point_count == 2


# ------------------------------------------------------------------
# Significance
# ------------------------------------------------------------------

class TestSignificance:
    def test_rapid_change_is_high(self, detector):
        points = [
            DataPoint("u1", "hba1c", date(2024, 1, 1), 5.5, "%", "a"),
            DataPoint("u1", "hba1c", date(2024, 2, 1), 6.2, "%", "b"),
            DataPoint("u1", "hba1c", date(2024, 3, 1), 7.0, "%", "c"),
        ]
        trend = detector.detect(points)
        assert trend.rapid_change is True
        assert trend.significance is Significance.HIGH
        assert detector.is_concerning(trend)

    def test_slow_rise_is_not_rapid(self, detector, hba1c_points):
        assert detector.detect(hba1c_points).rapid_change is False

    def test_hdl_rise_is_not_adverse(self, detector):
        trend = detector.detect(_half_yearly("hdl_cholesterol", [40, 45, 50, 55, 60]))
        assert trend.direction is TrendDirection.INCREASING
        assert not detector.is_concerning(trend)

    def test_hdl_fall_is_adverse(self, detector):
        trend = detector.detect(_half_yearly("hdl_cholesterol", [60, 55, 50, 45, 40]))
        assert trend.direction is TrendDirection.DECREASING
        assert detector.is_concerning(trend)

    def test_unlisted_parameter_concerning_either_way(self, detector):
        trend = detector.detect(_half_yearly("vitamin_d", [20, 24, 28, 32, 36]))
        assert trend.direction is TrendDirection.INCREASING
        assert detector.adverse_direction("vitamin_d") is None
        assert detector.is_concerning(trend)
        # 8/yr on a mean of 28 exceeds the relative high threshold
        assert trend.significance is Significance.HIGH

    def test_stable_trends_produce_no_signals(self, detector, created_at):
        trend = detector.detect(_series("ldl_cholesterol", [120.0] * 4))
        assert detector.to_signals([trend], {}, created_at) == []

    def test_severity_scales_with_confidence(self, detector, hba1c_points):
        trend = detector.detect(hba1c_points)
        expected = 85.0 * (0.6 + 0.4 * trend.confidence)
        assert detector.severity(trend) == pytest.approx(expected)


# ------------------------------------------------------------------
# Whole snapshot
# ------------------------------------------------------------------

class TestAnalyze:
    def _store(self, timeline_store, points):
        for p in points:
            timeline_store.add_data_point(p)
        return timeline_store.snapshot("u1")

    def test_parallel_matches_sequential(self, detector, timeline_store, hba1c_points):
        points = hba1c_points + _series("egfr", [90, 88, 86, 84, 82]) + _series("psa", [1.0])
        snapshot = self._store(timeline_store, points)
        as_of = date(2024, 6, 1)

        sequential = detector.analyze(snapshot, as_of)
        with ThreadPoolExecutor(max_workers=3) as pool:
            parallel = detector.analyze(snapshot, as_of, executor=pool)

        assert sequential.trends == parallel.trends
        assert [t.parameter for t in sequential.trends] == ["egfr", "hba1c"]
        assert [i.parameter for i in sequential.insufficient] == ["psa"]
        assert any(n.kind is NoteKind.INSUFFICIENT_DATA for n in sequential.notes)

    def test_conflicts_noted_not_dropped(self, detector, timeline_store, hba1c_points):
        extra = DataPoint("u1", "hba1c", date(2024, 5, 15), 6.1, "%", "second-lab")
        snapshot = self._store(timeline_store, hba1c_points + [extra])

        analysis = detector.analyze(snapshot, date(2024, 6, 1))

        assert len(analysis.conflicts) == 1
        assert analysis.conflicts[0].preferred_value == 6.1
        assert any(n.kind is NoteKind.CONFLICTING_DATA for n in analysis.notes)
        [trend] = analysis.trends
        assert trend.data_points[-1].value == 6.1

    def test_points_after_as_of_ignored(self, detector, timeline_store, hba1c_points):
        snapshot = self._store(timeline_store, hba1c_points)
        analysis = detector.analyze(snapshot, date(2024, 3, 1))
        assert analysis.trends == []
        assert analysis.insufficient[0].point_count == 2
