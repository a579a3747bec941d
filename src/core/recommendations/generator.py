"""
Recommendation Generator - ranked preventive-test suggestions tied to risk signals

Steps:
  1. Resolve the guideline set for the user's demographics
  2. Drop tests whose last occurrence is inside the guideline frequency
     window (not yet due)
  3. Build one recommendation per remaining test type that has a gap,
     trend or follow-up signal, linking every related signal id
  4. Priority from the highest signal severity tier, escalated to URGENT
     for HIGH severity on tests with risk weight >= 2.5
  5. Sort by priority tier, then gap priority score, then test type
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from src.core.errors import GuidelineNotFound
from src.core.guidelines.models import Guideline, GuidelineResolution
from src.core.guidelines.store import GuidelineStore
from src.core.profile import UserProfile
from src.core.risk.models import (
    DEFAULT_TIERS,
    RiskSignal,
    SeverityTier,
    SignalKind,
    classify_severity,
)
from src.core.timeline.models import TimelineSnapshot
from src.utils.preprocessing import describe_interval, elapsed_days

from .models import Recommendation, RecommendationPriority

logger = logging.getLogger(__name__)


class RecommendationGenerator:

    def __init__(
        self,
        guideline_store: GuidelineStore,
        risk_weight: Callable[[Guideline], float],
        config: Dict[str, Any] = None,
        tiers: Optional[Mapping[str, float]] = None,
    ):
        self.guideline_store = guideline_store
        self.risk_weight = risk_weight
        self.config = config or {}
        self.urgent_min_risk_weight = self.config.get('urgent_min_risk_weight', 2.5)
        self.tiers = dict(tiers or DEFAULT_TIERS)

    def generate(
        self,
        profile: UserProfile,
        snapshot: TimelineSnapshot,
        signals: Sequence[RiskSignal],
        as_of: date,
        resolution: Optional[GuidelineResolution] = None,
    ) -> List[Recommendation]:
        """Ordered recommendations for one assessment run"""
        if resolution is None:
            try:
                resolution = self.guideline_store.resolve(
                    profile.age_on(as_of), profile.gender, profile.risk_factors
                )
            except GuidelineNotFound as e:
                logger.warning("No guidelines for %s: %s", profile.user_id, e)
                resolution = GuidelineResolution(guidelines=())

        visible = snapshot.until(as_of)
        due = self._due_guidelines(resolution.guidelines, visible, as_of)

        related: Dict[str, List[RiskSignal]] = {}
        for signal in signals:
            for test_type in self._test_types_for(signal, due):
                related.setdefault(test_type, []).append(signal)

        recommendations = []
        for test_type in sorted(related):
            guideline = due.get(test_type) or self._any_guideline(test_type)
            recommendations.append(
                self._build(test_type, guideline, related[test_type], resolution.approximated)
            )

        ordered = self.prioritize(recommendations)
        logger.info(
            "%d recommendation(s) for %s from %d due test(s)",
            len(ordered), profile.user_id, len(due),
        )
        return ordered

    @staticmethod
    def prioritize(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
        return sorted(
            recommendations,
            key=lambda r: (r.priority.rank, -r.priority_score, r.test_type),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _due_guidelines(
        self,
        guidelines: Sequence[Guideline],
        snapshot: TimelineSnapshot,
        as_of: date,
    ) -> Dict[str, Guideline]:
        """Test type -> guideline for tests outside their frequency window"""
        due: Dict[str, Guideline] = {}
        for guideline in guidelines:
            last = snapshot.last_occurrence(guideline.test_type, guideline.parameters)
            if last is not None and elapsed_days(last, as_of) < guideline.recommended_frequency_days:
                continue
            current = due.get(guideline.test_type)
            # Shortest interval wins when several guidelines name the same test
            if (
                current is None
                or guideline.recommended_frequency_days < current.recommended_frequency_days
            ):
                due[guideline.test_type] = guideline
        return due

    @staticmethod
    def _test_types_for(signal: RiskSignal, due: Dict[str, Guideline]) -> List[str]:
        if signal.kind is SignalKind.ABSENCE:
            return [signal.subject] if signal.subject in due else []
        if signal.kind is SignalKind.FOLLOWUP:
            # Requested by a clinician, so always due
            return [signal.subject]
        if signal.kind is SignalKind.TREND:
            return sorted(t for t, g in due.items() if g.covers(signal.subject))
        return []

    def _any_guideline(self, test_type: str) -> Optional[Guideline]:
        candidates = self.guideline_store.for_test_type(test_type)
        if not candidates:
            return None
        return min(candidates, key=lambda g: (g.recommended_frequency_days, g.id))

    def _build(
        self,
        test_type: str,
        guideline: Optional[Guideline],
        signals: List[RiskSignal],
        approximated: bool,
    ) -> Recommendation:
        top = max(s.severity for s in signals)
        tier = classify_severity(top, self.tiers)
        weight = self.risk_weight(guideline) if guideline is not None else 1.0

        if tier is SeverityTier.HIGH and weight >= self.urgent_min_risk_weight:
            priority = RecommendationPriority.URGENT
        else:
            priority = RecommendationPriority.from_tier(tier)

        scores = [
            gap.priority_score
            for s in signals if s.kind is SignalKind.ABSENCE
            for gap in s.evidence.gaps
        ]

        if guideline is not None:
            test_name = guideline.test_name
            frequency = describe_interval(guideline.recommended_frequency_days)
            frequency_days = guideline.recommended_frequency_days
            reason = guideline.purpose
            ref = guideline.ref
        else:
            test_name = test_type.replace("_", " ").capitalize()
            frequency = "once, as your care team asked"
            frequency_days = None
            reason = "Your care team asked for this follow-up test."
            refs = [r for s in signals for r in s.evidence.guideline_refs]
            ref = refs[0] if refs else None

        return Recommendation(
            recommendation_id=f"rec-{test_type}",
            test_type=test_type,
            test_name=test_name,
            reason=reason,
            frequency=frequency,
            priority=priority,
            severity=tier,
            priority_score=max(scores) if scores else 0.0,
            risk_weight=weight,
            frequency_days=frequency_days,
            related_risk_signal_ids=tuple(sorted(s.signal_id for s in signals)),
            guideline_ref=ref,
            approximated=approximated,
        )
