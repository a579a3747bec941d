"""Tests for the end-to-end assessment engine."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from src.core.assessment_engine import AssessmentEngine, FollowUpNotice
from src.core.errors import NoteKind, NotFoundError
from src.core.explanations.builder import DISCLAIMER
from src.core.risk.models import SignalKind
from src.core.timeline.models import DataPoint, Event, EventType


@pytest.fixture
def engine(cfg, timeline_store):
    """Initialized engine sharing the test timeline store"""
    engine = AssessmentEngine(config=cfg, timeline_store=timeline_store)
    engine.initialize()
    return engine


def _kidney_follow_up(user_id):
    return Event(
        user_id, EventType.FOLLOW_UP_DUE, date(2024, 3, 1), "visit-1",
        test_type="kidney_function", description="Repeat kidney test",
        issued_on=date(2024, 2, 1),
    )


# ------------------------------------------------------------------
# Lifecycle and errors
# ------------------------------------------------------------------

class TestEngineLifecycle:
    def test_initialization(self, engine):
        assert engine.is_initialized is True
        assert engine.guideline_store.is_loaded is True

    def test_assess_before_initialize(self, cfg, male_45, as_of):
        engine = AssessmentEngine(config=cfg)
        with pytest.raises(RuntimeError):
            engine.assess(male_45, as_of)

    def test_unknown_user_not_found(self, engine, male_45, as_of):
        with pytest.raises(NotFoundError):
            engine.assess(male_45, as_of)
        assert engine.repository.latest(male_45.user_id) is None


# ------------------------------------------------------------------
# Empty timeline baseline
# ------------------------------------------------------------------

class TestEmptyTimeline:
    @pytest.fixture
    def report(self, engine, timeline_store, male_45, as_of):
        timeline_store.create_timeline(male_45.user_id)
        return engine.assess(male_45, as_of)

    def test_baseline_gaps_and_recommendations(self, report):
        assert report.version == 1
        assert report.overall_risk.version == 1
        assert {g.test_type for g in report.gaps} >= {"colonoscopy", "fasting_glucose"}
        assert len(report.recommendations) == len(report.gaps)
        assert report.trends == ()

    def test_missing_factors_reported(self, report):
        missing = {n.subject for n in report.notes if n.kind is NoteKind.MISSING_FACTOR}
        assert missing == {"trend", "followup"}
        assert report.overall_risk.factor_scores["trend"] == 0.0

    def test_demographic_signal_included(self, report):
        kinds = {s.kind for s in report.overall_risk.signals}
        assert kinds == {SignalKind.ABSENCE, SignalKind.DEMOGRAPHIC}
        # 45 years old: 15 points above the age floor
        assert report.overall_risk.factor_scores["demographic"] == 15.0

    def test_every_output_explained_and_cited(self, report):
        signals = report.overall_risk.signals
        assert len(report.explanations) == len(signals) + len(report.recommendations)
        for explanation in report.explanations:
            assert explanation.citations
            assert DISCLAIMER in explanation.text

    def test_metadata(self, report):
        assert report.metadata['timeline_version'] == 0
        assert "uspstf_colorectal_colonoscopy" in report.metadata['guidelines_applied']
        assert report.metadata['guidelines_approximated'] is False
        assert report.metadata['signal_count'] == len(report.overall_risk.signals)


# ------------------------------------------------------------------
# Versioning
# ------------------------------------------------------------------

class TestVersioning:
    def test_each_run_publishes_a_new_version(self, engine, timeline_store, male_45, as_of):
        timeline_store.create_timeline(male_45.user_id)
        first = engine.assess(male_45, as_of)
        second = engine.assess(male_45, as_of)

        assert (first.version, second.version) == (1, 2)
        assert engine.repository.get(male_45.user_id, 1) == first
        assert engine.repository.latest(male_45.user_id) == second

    def test_external_executor(self, engine, timeline_store, male_45, as_of):
        timeline_store.create_timeline(male_45.user_id)
        with ThreadPoolExecutor(max_workers=2) as pool:
            report = engine.assess(male_45, as_of, executor=pool)
        assert report.version == 1


# ------------------------------------------------------------------
# Trends inside a full run
# ------------------------------------------------------------------

class TestTrendRun:
    def test_rising_hba1c_becomes_cited_signal(self, engine, timeline_store, male_45, as_of):
        values = [5.5, 5.6, 5.8, 6.0, 6.3]
        for month, value in zip(range(1, 6), values):
            timeline_store.add_data_point(
                DataPoint(male_45.user_id, "HbA1c", date(2024, month, 15), value, "%",
                          f"lab-{month}")
            )

        report = engine.assess(male_45, as_of)

        [trend_signal] = [
            s for s in report.overall_risk.signals if s.kind is SignalKind.TREND
        ]
        assert trend_signal.subject == "hba1c"
        assert trend_signal.severity >= 60.0
        assert [r.guideline_id for r in trend_signal.evidence.guideline_refs] == [
            "ada_glucose_screening_35_plus"
        ]
        # the recent HbA1c result also satisfies glucose screening
        assert "fasting_glucose" not in {g.test_type for g in report.gaps}
        assert "fasting_glucose" not in {r.test_type for r in report.recommendations}

    def test_future_records_noted(self, engine, timeline_store, male_45, as_of):
        timeline_store.add_data_point(
            DataPoint(male_45.user_id, "LDL", date(2025, 1, 1), 130.0, "mg/dL", "lab")
        )
        report = engine.assess(male_45, as_of)
        assert any(n.kind is NoteKind.FUTURE_DATED for n in report.notes)
        assert "lipid_panel" in {g.test_type for g in report.gaps}


# ------------------------------------------------------------------
# Follow-up notifications
# ------------------------------------------------------------------

class TestNotifications:
    def test_notice_sent_after_publish(self, cfg, timeline_store, male_45, as_of):
        received = []

        def notifier(notice):
            # the report is already stored when notices go out
            assert engine.repository.latest(male_45.user_id) is not None
            received.append(notice)

        engine = AssessmentEngine(config=cfg, timeline_store=timeline_store, notifier=notifier)
        engine.initialize()
        timeline_store.add_event(_kidney_follow_up(male_45.user_id))

        report = engine.assess(male_45, as_of)

        assert received == [
            FollowUpNotice(
                user_id=male_45.user_id,
                test_type="kidney_function",
                description="Repeat kidney test",
                due_date=date(2024, 3, 1),
                days_overdue=(as_of - date(2024, 3, 1)).days,
                assessment_version=report.version,
            )
        ]
        assert "kidney_function" in {r.test_type for r in report.recommendations}

    def test_notifier_failure_does_not_fail_run(self, cfg, timeline_store, male_45, as_of,
                                                caplog):
        def notifier(notice):
            raise ConnectionError("notification service down")

        engine = AssessmentEngine(config=cfg, timeline_store=timeline_store, notifier=notifier)
        engine.initialize()
        timeline_store.add_event(_kidney_follow_up(male_45.user_id))

        with caplog.at_level(logging.WARNING):
            report = engine.assess(male_45, as_of)

        assert report.version == 1
        assert "notification service down" in caplog.text

    def test_notifications_can_be_disabled(self, cfg, timeline_store, male_45, as_of):
        cfg.update_config('engine', {'notify_overdue_followups': False})
        received = []
        engine = AssessmentEngine(
            config=cfg, timeline_store=timeline_store, notifier=received.append
        )
        engine.initialize()
        timeline_store.add_event(_kidney_follow_up(male_45.user_id))

        engine.assess(male_45, as_of)

        assert received == []
