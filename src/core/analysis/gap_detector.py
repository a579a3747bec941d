"""
Gap Detector - finds guideline-recommended tests that are overdue

For each applicable guideline:
    days_overdue   = max(0, days_since_last_test - frequency_days)
    priority_score = days_overdue / frequency_days * risk_weight(test_type)

A test that was never done is measured from the date the user first
became eligible (the guideline's assumed start age), so a user with an
empty timeline still gets a demographic-only baseline.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from src.core.base_analyzer import BaseAnalyzer
from src.core.errors import AnalysisNote, GuidelineNotFound, NoteKind
from src.core.guidelines.models import Guideline, GuidelineResolution
from src.core.guidelines.store import GuidelineStore
from src.core.profile import UserProfile
from src.core.risk.models import Evidence, RiskSignal, SignalKind
from src.core.timeline.models import TimelineSnapshot
from src.utils.preprocessing import add_years, elapsed_days

from .models import Gap, GapAnalysis, GapPriority

logger = logging.getLogger(__name__)


class GapDetector(BaseAnalyzer):
    """Guideline-driven missing/overdue test detection"""

    name = "gap"

    def __init__(self, guideline_store: GuidelineStore, config: Dict[str, Any] = None):
        super().__init__(config)
        self.guideline_store = guideline_store
        self.risk_weights: Dict[str, float] = dict(self.config.get('risk_weights', {}))
        self.default_risk_weight = self.config.get('default_risk_weight', 1.0)
        self.priority_thresholds = self.config.get(
            'priority_thresholds', {'high': 2.0, 'moderate': 0.75}
        )
        self.score_at_max = self.config.get('score_at_max_severity', 3.0)

    def risk_weight(self, guideline: Guideline) -> float:
        """Weight by test type, then by category, then the default"""
        if guideline.test_type in self.risk_weights:
            return float(self.risk_weights[guideline.test_type])
        return float(self.risk_weights.get(guideline.category.value, self.default_risk_weight))

    def resolve(self, profile: UserProfile, as_of: date) -> GuidelineResolution:
        return self.guideline_store.resolve(
            profile.age_on(as_of), profile.gender, profile.risk_factors
        )

    def analyze(
        self,
        snapshot: TimelineSnapshot,
        as_of: date,
        profile: Optional[UserProfile] = None,
        resolution: Optional[GuidelineResolution] = None,
        **context,
    ) -> GapAnalysis:
        """Ordered gaps for one user"""
        if profile is None:
            raise ValueError("GapDetector.analyze requires a profile")

        analysis = GapAnalysis()
        if resolution is None:
            try:
                resolution = self.resolve(profile, as_of)
            except GuidelineNotFound as e:
                logger.warning("No guidelines for %s: %s", profile.user_id, e)
                analysis.notes.append(
                    AnalysisNote(
                        kind=NoteKind.GUIDELINE_NOT_FOUND,
                        message="We could not find a check-up guide for your age and sex.",
                    )
                )
                return analysis

        analysis.resolution = resolution
        if resolution.approximated:
            analysis.notes.append(
                AnalysisNote(
                    kind=NoteKind.GUIDELINE_APPROXIMATION,
                    message=resolution.note_text,
                )
            )

        visible = snapshot.until(as_of)
        gaps: Dict[str, Gap] = {}
        for guideline in resolution.guidelines:
            gap = self._evaluate(guideline, profile, visible, as_of, resolution.approximated)
            if gap is None:
                continue
            # Several guidelines can name the same test; keep the most pressing
            current = gaps.get(gap.test_type)
            if current is None or self._sort_key(gap) < self._sort_key(current):
                gaps[gap.test_type] = gap

        analysis.gaps = self.prioritize(gaps.values())
        logger.debug("Gap analysis for %s: %d gaps", profile.user_id, len(analysis.gaps))
        return analysis

    def detect(
        self, profile: UserProfile, snapshot: TimelineSnapshot, as_of: date
    ) -> List[Gap]:
        """Ordered sequence of gaps (see analyze for notes and resolution)"""
        return self.analyze(snapshot, as_of, profile=profile).gaps

    @classmethod
    def prioritize(cls, gaps: Iterable[Gap]) -> List[Gap]:
        """Descending priority score, then risk weight, then days overdue"""
        return sorted(gaps, key=cls._sort_key)

    @staticmethod
    def _sort_key(gap: Gap):
        return (-gap.priority_score, -gap.risk_weight, -gap.days_overdue, gap.test_type)

    # ------------------------------------------------------------------
    # Risk signals
    # ------------------------------------------------------------------

    def severity(self, gap: Gap) -> float:
        """Absence risk normalized to [0, 100]"""
        return float(min(100.0, gap.priority_score / self.score_at_max * 100.0))

    def to_signals(self, gaps: Iterable[Gap], created_at: datetime) -> List[RiskSignal]:
        """One ABSENCE signal per gap"""
        return [
            RiskSignal(
                kind=SignalKind.ABSENCE,
                severity=self.severity(gap),
                subject=gap.test_type,
                title=f"{gap.test_name} is overdue",
                evidence=Evidence(gaps=(gap,), guideline_refs=(gap.guideline_ref,)),
                created_at=created_at,
            )
            for gap in gaps
        ]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _evaluate(
        self,
        guideline: Guideline,
        profile: UserProfile,
        snapshot: TimelineSnapshot,
        as_of: date,
        approximated: bool,
    ) -> Optional[Gap]:
        frequency = guideline.recommended_frequency_days
        last = snapshot.last_occurrence(guideline.test_type, guideline.parameters)

        if last is not None:
            days_overdue = max(0, elapsed_days(last, as_of) - frequency)
            due_since = date.fromordinal(last.toordinal() + frequency)
        else:
            due_since = add_years(profile.birth_date, guideline.start_age)
            days_overdue = max(0, elapsed_days(due_since, as_of))

        if days_overdue <= 0:
            return None

        weight = self.risk_weight(guideline)
        score = days_overdue / frequency * weight
        return Gap(
            test_type=guideline.test_type,
            test_name=guideline.test_name,
            guideline_id=guideline.id,
            guideline_ref=guideline.ref,
            category=guideline.category.value,
            days_overdue=days_overdue,
            recommended_frequency_days=frequency,
            due_since=due_since,
            last_test_date=last,
            risk_weight=weight,
            priority_score=score,
            priority=self._priority(score),
            approximated=approximated,
        )

    def _priority(self, score: float) -> GapPriority:
        if score >= self.priority_thresholds['high']:
            return GapPriority.HIGH
        if score >= self.priority_thresholds['moderate']:
            return GapPriority.MODERATE
        return GapPriority.LOW
