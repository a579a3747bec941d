"""
Assessment Engine - runs one preventive-health assessment for one user

Timeline snapshot -> trend, gap and follow-up detection -> risk signals
-> aggregation -> recommendations -> explanations -> atomic publish.

Nothing is written until the full report exists; the repository then
stamps and stores it in one step. Overdue follow-up notices go out only
after a successful publish.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.core.analysis.followup_detector import FollowUpDetector
from src.core.analysis.gap_detector import GapDetector
from src.core.analysis.models import Gap, OpenFollowUp, Trend
from src.core.analysis.trend_detector import TrendDetector
from src.core.config import Config, config as default_config
from src.core.errors import AnalysisNote
from src.core.explanations.builder import ExplanationBuilder
from src.core.explanations.models import Explanation
from src.core.guidelines.models import GuidelineRef, GuidelineResolution
from src.core.guidelines.store import GuidelineStore
from src.core.profile import UserProfile, demographic_risk
from src.core.recommendations.generator import RecommendationGenerator
from src.core.recommendations.models import Recommendation
from src.core.risk.aggregator import RiskAggregator
from src.core.risk.models import Evidence, OverallRisk, RiskSignal, SignalKind
from src.core.risk.repository import AssessmentRepository
from src.core.timeline.store import TimelineStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowUpNotice:
    """Overdue follow-up event handed to the notification service"""
    user_id: str
    test_type: str
    description: str
    due_date: date
    days_overdue: int
    assessment_version: int


@dataclass(frozen=True)
class AssessmentReport:
    """Everything one assessment run produced, published as a unit"""
    user_id: str
    version: int
    as_of: date
    assessed_at: datetime
    overall_risk: OverallRisk
    trends: Tuple[Trend, ...] = ()
    gaps: Tuple[Gap, ...] = ()
    followups: Tuple[OpenFollowUp, ...] = ()
    recommendations: Tuple[Recommendation, ...] = ()
    explanations: Tuple[Explanation, ...] = ()
    notes: Tuple[AnalysisNote, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Keep the embedded risk record on the report's version
        if self.overall_risk.version != self.version:
            object.__setattr__(
                self, 'overall_risk', replace(self.overall_risk, version=self.version)
            )


Notifier = Callable[[FollowUpNotice], None]


class AssessmentEngine:
    """
    Orchestrates the detectors, aggregator, generator and builder.

    Runs for different users share no mutable state besides the timeline
    store and the repository, both of which lock per user.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        timeline_store: Optional[TimelineStore] = None,
        guideline_store: Optional[GuidelineStore] = None,
        repository: Optional[AssessmentRepository] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config or default_config
        self.timeline_store = timeline_store or TimelineStore()
        self.guideline_store = guideline_store or GuidelineStore(
            relaxation_order=self.config.guidelines_config['relaxation_order']
        )
        self.repository = repository or AssessmentRepository()
        self.notifier = notifier
        self.is_initialized = False

        tiers = self.config.risk_config['tiers']
        self.trend_detector = TrendDetector(self.config.trend_config)
        self.gap_detector = GapDetector(self.guideline_store, self.config.gap_config)
        self.followup_detector = FollowUpDetector(
            self.config.followup_config, guideline_store=self.guideline_store
        )
        self.aggregator = RiskAggregator(self.config.risk_config)
        self.recommendation_generator = RecommendationGenerator(
            self.guideline_store,
            risk_weight=self.gap_detector.risk_weight,
            config=self.config.recommendation_config,
            tiers=tiers,
        )
        self.explanation_builder = ExplanationBuilder(
            self.config.explanation_config, tiers=tiers
        )

    def initialize(self):
        """Load guideline reference data"""
        if not self.guideline_store.is_loaded:
            self.guideline_store.initialize()
        self.is_initialized = True
        logger.info(
            "Assessment engine ready with %d guidelines", len(self.guideline_store.guidelines)
        )

    def assess(
        self,
        profile: UserProfile,
        as_of: Optional[date] = None,
        executor: Optional[Executor] = None,
    ) -> AssessmentReport:
        """
        Run a full assessment and publish it.

        Raises NotFoundError when the user has no timeline. Insufficient
        or conflicting data only adds notes to the report.
        """
        if not self.is_initialized:
            raise RuntimeError("Engine not initialized. Call initialize() first.")

        assessed_at = datetime.now()
        as_of = as_of or assessed_at.date()
        snapshot = self.timeline_store.snapshot(profile.user_id, taken_at=assessed_at)
        logger.info(
            "Assessing %s as of %s (timeline v%d, %d points, %d events)",
            profile.user_id, as_of, snapshot.version,
            len(snapshot.data_points), len(snapshot.events),
        )

        notes: List[AnalysisNote] = list(self.trend_detector.validate_input(snapshot, as_of))

        gap_analysis = self.gap_detector.analyze(snapshot, as_of, profile=profile)
        notes.extend(gap_analysis.notes)
        resolution = gap_analysis.resolution or GuidelineResolution(guidelines=())

        if executor is None:
            with ThreadPoolExecutor(
                max_workers=self.config.engine_config['max_workers']
            ) as own_executor:
                trend_analysis = self.trend_detector.analyze(snapshot, as_of, executor=own_executor)
        else:
            trend_analysis = self.trend_detector.analyze(snapshot, as_of, executor=executor)
        notes.extend(trend_analysis.notes)

        followups = self.followup_detector.analyze(snapshot, as_of)

        signals = self._collect_signals(
            profile, as_of, assessed_at, resolution,
            gap_analysis.gaps, trend_analysis.trends, followups,
        )
        overall = self.aggregator.aggregate(profile.user_id, signals, assessed_at)
        notes.extend(overall.notes)

        recommendations = self.recommendation_generator.generate(
            profile, snapshot, overall.signals, as_of, resolution
        )
        explanations = self.explanation_builder.build_all(overall.signals, recommendations)
        for explanation in explanations:
            notes.extend(explanation.notes)

        report = AssessmentReport(
            user_id=profile.user_id,
            version=0,
            as_of=as_of,
            assessed_at=assessed_at,
            overall_risk=overall,
            trends=tuple(trend_analysis.trends),
            gaps=tuple(gap_analysis.gaps),
            followups=tuple(followups),
            recommendations=tuple(recommendations),
            explanations=tuple(explanations),
            notes=tuple(notes),
            metadata={
                'timeline_version': snapshot.version,
                'guidelines_applied': [g.id for g in resolution.guidelines],
                'guidelines_approximated': resolution.approximated,
                'relaxed_constraints': list(resolution.relaxed),
                'insufficient_parameters': [i.parameter for i in trend_analysis.insufficient],
                'conflict_count': len(trend_analysis.conflicts),
                'signal_count': len(overall.signals),
            },
        )
        published = self.repository.publish(report)
        self._notify(published)
        return published

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _collect_signals(
        self,
        profile: UserProfile,
        as_of: date,
        created_at: datetime,
        resolution: GuidelineResolution,
        gaps: List[Gap],
        trends: List[Trend],
        followups: List[OpenFollowUp],
    ) -> List[RiskSignal]:
        applicable_refs = [g.ref for g in resolution.guidelines]
        within = resolution.guidelines or None

        trend_refs: Dict[str, List[GuidelineRef]] = {}
        for trend in trends:
            refs = [g.ref for g in self.guideline_store.for_parameter(trend.parameter, within)]
            trend_refs[trend.parameter] = refs or applicable_refs

        followup_refs: Dict[str, List[GuidelineRef]] = {
            f.test_type: [g.ref for g in self.guideline_store.for_parameter(f.test_type)]
            for f in followups
        }

        signals: List[RiskSignal] = []
        signals.extend(self.gap_detector.to_signals(gaps, created_at))
        signals.extend(self.trend_detector.to_signals(trends, trend_refs, created_at))
        signals.extend(
            self.followup_detector.to_signals(
                followups, followup_refs, created_at, default_refs=applicable_refs
            )
        )

        demographic = self._demographic_signal(profile, as_of, created_at, applicable_refs)
        if demographic is not None:
            signals.append(demographic)
        return signals

    def _demographic_signal(
        self,
        profile: UserProfile,
        as_of: date,
        created_at: datetime,
        refs: List[GuidelineRef],
    ) -> Optional[RiskSignal]:
        severity = demographic_risk(profile, as_of, self.config.risk_config.get('demographic'))
        if severity <= 0:
            return None
        if not refs:
            logger.info("No guideline to cite for demographic risk of %s", profile.user_id)
            return None
        return RiskSignal(
            kind=SignalKind.DEMOGRAPHIC,
            severity=severity,
            subject="demographics",
            title="Age and risk factors",
            evidence=Evidence(guideline_refs=tuple(refs)),
            created_at=created_at,
        )

    def _notify(self, report: AssessmentReport) -> None:
        if self.notifier is None or not self.config.engine_config['notify_overdue_followups']:
            return
        for followup in report.followups:
            notice = FollowUpNotice(
                user_id=report.user_id,
                test_type=followup.test_type,
                description=followup.description,
                due_date=followup.due_date,
                days_overdue=followup.days_overdue,
                assessment_version=report.version,
            )
            try:
                self.notifier(notice)
            except Exception as e:
                logger.warning(
                    "Follow-up notification for %s/%s failed: %s",
                    report.user_id, followup.test_type, e,
                )
