"""
Explanation Builder - plain-language, evidence-cited explanations

Every explanation is checked before it is returned. Construction fails
with ExplanationContractError when:
  - no guideline citation is available from the evidence
  - the text uses diagnostic or prescriptive vocabulary
  - the disclaimer is missing
  - a HIGH severity subject lacks the prompt-consultation guidance

Reading grade is measured and reported, not enforced. Templates use
short sentences and plain words so the grade stays low.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from src.core.analysis.models import TrendDirection
from src.core.errors import AnalysisNote, ExplanationContractError, NoteKind
from src.core.guidelines.models import GuidelineRef
from src.core.recommendations.models import Recommendation, RecommendationPriority
from src.core.risk.models import (
    DEFAULT_TIERS,
    RiskSignal,
    SeverityTier,
    SignalKind,
    classify_severity,
)
from src.utils.preprocessing import describe_interval

from .lexicon import DENYLIST, compile_denylist, find_denied_terms
from .models import Explanation
from .readability import flesch_kincaid_grade

logger = logging.getLogger(__name__)

DISCLAIMER = "This is not a substitute for professional medical advice."
CONSULT_GUIDANCE = "Please consult a healthcare professional promptly."

DISPLAY_NAMES = {
    'hba1c': "HbA1c",
    'fasting_glucose': "fasting blood sugar",
    'ldl_cholesterol': "LDL cholesterol",
    'hdl_cholesterol': "HDL cholesterol",
    'total_cholesterol': "total cholesterol",
    'systolic_bp': "top blood pressure number",
    'diastolic_bp': "bottom blood pressure number",
    'egfr': "eGFR kidney score",
    'psa': "PSA",
    'bmi': "BMI",
}

_GUIDANCE = {
    SeverityTier.HIGH: CONSULT_GUIDANCE,
    SeverityTier.MODERATE: "Plan this check at your next visit.",
    SeverityTier.LOW: "Keep this in mind for your next checkup.",
}

Subject = Union[RiskSignal, Recommendation]


def display_name(name: str) -> str:
    return DISPLAY_NAMES.get(name, name.replace("_", " "))


def _day(d) -> str:
    return f"{d:%B} {d.day}, {d.year}"


class ExplanationBuilder:
    """Deterministic mapping from a signal or recommendation to an Explanation"""

    def __init__(
        self,
        config: Dict[str, Any] = None,
        tiers: Optional[Mapping[str, float]] = None,
        denylist: Sequence[str] = DENYLIST,
    ):
        self.config = config or {}
        self.max_reading_grade = self.config.get('max_reading_grade', 8.0)
        self.tiers = dict(tiers or DEFAULT_TIERS)
        self._denylist = compile_denylist(denylist)

    def build(self, subject: Subject, related_signals: Iterable[RiskSignal] = ()) -> Explanation:
        if isinstance(subject, RiskSignal):
            return self._for_signal(subject)
        if isinstance(subject, Recommendation):
            return self._for_recommendation(subject, list(related_signals))
        raise TypeError(f"Cannot explain {type(subject).__name__}")

    def build_all(
        self,
        signals: Sequence[RiskSignal],
        recommendations: Sequence[Recommendation],
    ) -> List[Explanation]:
        """One explanation per signal, then one per recommendation"""
        by_id = {s.signal_id: s for s in signals}
        explanations = [self.build(s) for s in signals]
        for rec in recommendations:
            related = [by_id[i] for i in rec.related_risk_signal_ids if i in by_id]
            explanations.append(self.build(rec, related))
        return explanations

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _for_signal(self, signal: RiskSignal) -> Explanation:
        tier = self._tier(signal.severity)
        visualization_ref = None

        if signal.kind is SignalKind.ABSENCE:
            summary, reasoning = self._absence_text(signal)
        elif signal.kind is SignalKind.TREND:
            summary, reasoning = self._trend_text(signal)
            visualization_ref = f"timeline-chart/{signal.subject}"
        elif signal.kind is SignalKind.FOLLOWUP:
            summary = "A follow-up test is past due."
            reasoning = (
                f"Your care team asked for a {display_name(signal.subject)} test. "
                "We have not seen a result since then."
            )
        else:
            summary = "Your age and health history shape which checks you need."
            reasoning = (
                "Some checks matter more as we get older. "
                "The risk factors you told us about also count."
            )

        return self._finish(
            subject_id=signal.signal_id,
            subject_kind="signal",
            summary=summary,
            reasoning=reasoning,
            citations=signal.evidence.guideline_refs,
            tier=tier,
            visualization_ref=visualization_ref,
        )

    @staticmethod
    def _absence_text(signal: RiskSignal) -> Tuple[str, str]:
        gap = signal.evidence.gaps[0] if signal.evidence.gaps else None
        if gap is None:
            return (
                f"A {display_name(signal.subject)} check is overdue.",
                "Our records do not show this test in the time guides suggest.",
            )
        summary = f"It is time for this check: {gap.test_name}."
        interval = describe_interval(gap.recommended_frequency_days)
        if gap.last_test_date is not None:
            reasoning = (
                f"Your last one was on {_day(gap.last_test_date)}. "
                f"Guides say to do it {interval}. "
                f"It is {gap.days_overdue} days late."
            )
        else:
            reasoning = (
                "We have no record of this test. "
                f"Guides say to do it {interval} at your age. "
                f"It has been due since {_day(gap.due_since)}."
            )
        return summary, reasoning

    @staticmethod
    def _trend_text(signal: RiskSignal) -> Tuple[str, str]:
        name = display_name(signal.subject)
        trend = signal.evidence.trends[0] if signal.evidence.trends else None
        if trend is None:
            return f"Your {name} results are changing.", "We saw a change over time."

        if trend.direction is TrendDirection.INCREASING:
            summary = f"Your {name} results are going up."
        elif trend.direction is TrendDirection.DECREASING:
            summary = f"Your {name} results are going down."
        else:
            summary = f"Your {name} results changed quickly."

        unit = f" {trend.unit}" if trend.unit else ""
        sentences = [
            f"We looked at {trend.point_count} results "
            f"from {_day(trend.start_date)} to {_day(trend.end_date)}.",
            f"The change is about {abs(trend.annual_rate):.2f}{unit} each year.",
        ]
        if trend.rapid_change:
            sentences.append("Part of this change came in a short time.")
        if trend.confidence >= 0.7:
            sentences.append("The results fit this pattern well.")
        else:
            sentences.append("The pattern is not yet clear.")
        return summary, " ".join(sentences)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _for_recommendation(
        self, rec: Recommendation, related: List[RiskSignal]
    ) -> Explanation:
        if rec.priority in (RecommendationPriority.URGENT, RecommendationPriority.HIGH):
            tier = SeverityTier.HIGH
        else:
            tier = rec.severity

        summary = f"We suggest this check: {rec.test_name}."
        sentences = [f"It can help {rec.reason.rstrip('.')}."]
        if rec.frequency_days is not None:
            sentences.append(f"Guides say to do it {rec.frequency}.")
        else:
            sentences.append(f"Do it {rec.frequency}.")
        if related:
            count = len(related)
            sentences.append(
                f"It is linked to {count} finding{'s' if count != 1 else ''} in your records."
            )
        if rec.approximated:
            sentences.append("No guide fit you exactly, so we used the closest one.")

        citations: List[GuidelineRef] = []
        if rec.guideline_ref is not None:
            citations.append(rec.guideline_ref)
        for signal in related:
            citations.extend(signal.evidence.guideline_refs)

        return self._finish(
            subject_id=rec.recommendation_id,
            subject_kind="recommendation",
            summary=summary,
            reasoning=" ".join(sentences),
            citations=citations,
            tier=tier,
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def _tier(self, severity: float) -> SeverityTier:
        if not isinstance(severity, (int, float)) or not math.isfinite(severity):
            return SeverityTier.HIGH
        return classify_severity(severity, self.tiers)

    def _finish(
        self,
        subject_id: str,
        subject_kind: str,
        summary: str,
        reasoning: str,
        citations: Iterable[GuidelineRef],
        tier: SeverityTier,
        visualization_ref: Optional[str] = None,
    ) -> Explanation:
        unique: Dict[str, GuidelineRef] = {}
        for ref in citations:
            unique.setdefault(ref.guideline_id, ref)
        if not unique:
            raise ExplanationContractError(
                f"No guideline citation available for {subject_kind} {subject_id}"
            )

        guidance = _GUIDANCE[tier]
        body = " ".join([summary, reasoning, guidance])
        notes: Tuple[AnalysisNote, ...] = ()
        grade = flesch_kincaid_grade(body)
        if grade > self.max_reading_grade:
            logger.info(
                "Explanation for %s %s reads at grade %.1f", subject_kind, subject_id, grade
            )
            notes = (
                AnalysisNote(
                    kind=NoteKind.READABILITY,
                    message=f"This text reads at about grade {grade:.0f}.",
                    subject=subject_id,
                ),
            )

        explanation = Explanation(
            subject_id=subject_id,
            subject_kind=subject_kind,
            summary=summary,
            detailed_reasoning=reasoning,
            citations=tuple(unique[k] for k in sorted(unique)),
            action_guidance=guidance,
            disclaimer=DISCLAIMER,
            visualization_ref=visualization_ref,
            reading_grade=grade,
            notes=notes,
        )
        self._check(explanation, tier)
        return explanation

    def _check(self, explanation: Explanation, tier: SeverityTier) -> None:
        denied = find_denied_terms(explanation.text, self._denylist)
        if denied:
            raise ExplanationContractError(
                f"Explanation {explanation.subject_id} uses denied terms: {denied}"
            )
        if DISCLAIMER not in explanation.text:
            raise ExplanationContractError(
                f"Explanation {explanation.subject_id} is missing the disclaimer"
            )
        if tier is SeverityTier.HIGH and CONSULT_GUIDANCE not in explanation.action_guidance:
            raise ExplanationContractError(
                f"HIGH severity explanation {explanation.subject_id} lacks consult guidance"
            )
