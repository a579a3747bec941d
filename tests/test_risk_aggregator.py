"""Tests for weighted multi-factor risk aggregation."""

import itertools
from datetime import date

import pytest

from src.core.errors import NoteKind
from src.core.guidelines.models import EvidenceLevel, GuidelineRef
from src.core.risk.aggregator import RiskAggregator
from src.core.risk.models import Evidence, RiskSignal, SeverityTier, SignalKind
from src.core.timeline.models import DataPoint


@pytest.fixture
def aggregator(cfg):
    return RiskAggregator(cfg.risk_config)


def _ref(name):
    return GuidelineRef(name, name, f"{name} citation", EvidenceLevel.B)


def _signal(kind, severity, subject="x", created_at=None, evidence=None, signal_id=None):
    kwargs = {}
    if signal_id is not None:
        kwargs["signal_id"] = signal_id
    return RiskSignal(
        kind=kind,
        severity=severity,
        subject=subject,
        title=f"{kind.value} {subject}",
        evidence=evidence or Evidence(guideline_refs=(_ref(f"ref-{subject}"),)),
        created_at=created_at,
        **kwargs,
    )


# ------------------------------------------------------------------
# Weighted score
# ------------------------------------------------------------------

class TestWeightedScore:
    def test_absence_and_trend_only_is_moderate(self, aggregator, created_at):
        signals = [
            _signal(SignalKind.TREND, 40.0, "hba1c", created_at),
            _signal(SignalKind.ABSENCE, 80.0, "colonoscopy", created_at),
        ]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)

        assert overall.risk_score == pytest.approx(44.0)
        assert overall.severity is SeverityTier.MODERATE
        assert overall.factor_scores == {
            "absence": 80.0, "trend": 40.0, "followup": 0.0, "demographic": 0.0,
        }

    def test_factor_is_highest_severity_of_its_kind(self, aggregator, created_at):
        signals = [
            _signal(SignalKind.ABSENCE, 20.0, "a", created_at),
            _signal(SignalKind.ABSENCE, 90.0, "b", created_at),
            _signal(SignalKind.ABSENCE, 50.0, "c", created_at),
        ]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)
        assert overall.factor_scores["absence"] == 90.0
        assert overall.risk_score == pytest.approx(36.0)

    def test_all_factors_at_maximum(self, aggregator, created_at):
        signals = [_signal(kind, 100.0, kind.value, created_at) for kind in SignalKind]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)
        assert overall.risk_score == pytest.approx(100.0)
        assert overall.severity is SeverityTier.HIGH

    def test_no_signals_scores_zero(self, aggregator, created_at):
        overall = aggregator.aggregate("u1", [], assessed_at=created_at)
        assert overall.risk_score == 0.0
        assert overall.severity is SeverityTier.LOW
        assert overall.signals == ()


# ------------------------------------------------------------------
# Tier boundaries
# ------------------------------------------------------------------

class TestTiers:
    @pytest.mark.parametrize("score, tier", [
        (0.0, SeverityTier.LOW),
        (29.999, SeverityTier.LOW),
        (30.0, SeverityTier.MODERATE),
        (59.999, SeverityTier.MODERATE),
        (60.0, SeverityTier.HIGH),
        (100.0, SeverityTier.HIGH),
    ])
    def test_lower_bounds_inclusive(self, aggregator, score, tier):
        assert aggregator.classify(score) is tier

    def test_exact_boundary_from_signals(self, aggregator, created_at):
        # 0.4 * 75 = 30
        overall = aggregator.aggregate(
            "u1", [_signal(SignalKind.ABSENCE, 75.0, "a", created_at)], assessed_at=created_at
        )
        assert overall.risk_score == 30.0
        assert overall.severity is SeverityTier.MODERATE


# ------------------------------------------------------------------
# Order independence and evidence
# ------------------------------------------------------------------

class TestOrderIndependence:
    def _signals(self, created_at):
        point = DataPoint("u1", "hba1c", date(2024, 1, 15), 5.5, "%", "lab-1")
        return [
            _signal(SignalKind.ABSENCE, 62.5, "colonoscopy", created_at, signal_id="s1"),
            _signal(SignalKind.ABSENCE, 33.0, "lipid_panel", created_at, signal_id="s2"),
            _signal(
                SignalKind.TREND, 71.0, "hba1c", created_at, signal_id="s3",
                evidence=Evidence(data_points=(point,), guideline_refs=(_ref("ada"),)),
            ),
            _signal(SignalKind.FOLLOWUP, 48.0, "kidney_function", created_at, signal_id="s4"),
        ]

    def test_score_invariant_under_permutation(self, aggregator, created_at):
        signals = self._signals(created_at)
        baseline = aggregator.aggregate("u1", signals, assessed_at=created_at)
        for order in itertools.permutations(signals):
            assert aggregator.aggregate("u1", list(order), assessed_at=created_at) == baseline

    def test_evidence_is_union_of_inputs(self, aggregator, created_at):
        signals = self._signals(created_at)
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)

        assert set(overall.signal_ids) == {"s1", "s2", "s3", "s4"}
        ref_ids = {r.guideline_id for r in overall.evidence.guideline_refs}
        assert ref_ids == {"ref-colonoscopy", "ref-lipid_panel", "ada", "ref-kidney_function"}
        assert len(overall.evidence.data_points) == 1

    def test_duplicate_evidence_collapses(self, aggregator, created_at):
        shared = Evidence(guideline_refs=(_ref("shared"),))
        signals = [
            _signal(SignalKind.ABSENCE, 10.0, "a", created_at, evidence=shared),
            _signal(SignalKind.TREND, 10.0, "b", created_at, evidence=shared),
        ]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)
        assert len(overall.evidence.guideline_refs) == 1
        assert len(overall.signals) == 2


# ------------------------------------------------------------------
# Missing factors and invalid severities
# ------------------------------------------------------------------

class TestDegradedInput:
    def test_missing_factors_noted(self, aggregator, created_at):
        overall = aggregator.aggregate(
            "u1", [_signal(SignalKind.ABSENCE, 50.0, "a", created_at)], assessed_at=created_at
        )
        missing = {n.subject for n in overall.notes if n.kind is NoteKind.MISSING_FACTOR}
        assert missing == {"trend", "followup", "demographic"}
        assert overall.review_required is False

    def test_nan_severity_uses_conservative_estimate(self, aggregator, created_at):
        signals = [_signal(SignalKind.TREND, float("nan"), "hba1c", created_at)]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)

        assert overall.factor_scores["trend"] == 75.0
        assert overall.review_required is True
        assert any(n.kind is NoteKind.CALCULATION_FAILURE for n in overall.notes)
        assert overall.signals == tuple(signals)

    @pytest.mark.parametrize("bad", ["bad", None])
    def test_non_numeric_severity_uses_conservative_estimate(self, aggregator, created_at, bad):
        signals = [
            _signal(SignalKind.TREND, 40.0, "ldl", created_at),
            _signal(SignalKind.TREND, bad, "hba1c", created_at),
            _signal(SignalKind.ABSENCE, 20.0, "a", created_at),
        ]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)

        assert overall.factor_scores["trend"] == 75.0
        assert overall.review_required is True
        # ranked by the substituted estimate, ahead of the valid 40.0
        assert [s.subject for s in overall.signals] == ["a", "hba1c", "ldl"]

    def test_out_of_range_severity_clamped_high(self, aggregator, created_at):
        signals = [_signal(SignalKind.ABSENCE, 150.0, "a", created_at)]
        overall = aggregator.aggregate("u1", signals, assessed_at=created_at)
        assert overall.factor_scores["absence"] == 100.0
        assert overall.review_required is True

    def test_negative_severity_never_lowers_estimate(self, aggregator, created_at):
        signals = [_signal(SignalKind.ABSENCE, -5.0, "a", created_at)]
        factors, review, notes = aggregator.factor_scores(signals)
        assert factors["absence"] == 75.0
        assert review is True
        assert len(notes) == 1


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------

class TestConfiguration:
    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            RiskAggregator({'weights': {
                'absence': 0.5, 'trend': 0.3, 'followup': 0.2, 'demographic': 0.1,
            }})

    def test_weights_must_cover_every_kind(self):
        with pytest.raises(ValueError):
            RiskAggregator({'weights': {'absence': 0.6, 'trend': 0.4}})

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            RiskAggregator({'weights': {
                'absence': 1.2, 'trend': -0.2, 'followup': 0.0, 'demographic': 0.0,
            }})

    def test_custom_weights(self, created_at):
        aggregator = RiskAggregator({'weights': {
            'absence': 0.25, 'trend': 0.25, 'followup': 0.25, 'demographic': 0.25,
        }})
        overall = aggregator.aggregate(
            "u1", [_signal(SignalKind.FOLLOWUP, 80.0, "f", created_at)], assessed_at=created_at
        )
        assert overall.risk_score == pytest.approx(20.0)
