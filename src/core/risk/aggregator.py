"""
Risk Aggregator - combines normalized risk signals into one overall score

    overall = 0.4*absence + 0.3*trend + 0.2*followup + 0.1*demographic

Each factor is the highest severity among signals of that kind, so the
result does not depend on the order of the signal list. A factor with no
signals contributes 0 and is reported as not assessed.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.core.errors import AnalysisNote, CalculationFailure, NoteKind

from .models import (
    DEFAULT_TIERS,
    Evidence,
    OverallRisk,
    RiskSignal,
    SeverityTier,
    SignalKind,
    classify_severity,
)

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    'absence': 0.4,
    'trend': 0.3,
    'followup': 0.2,
    'demographic': 0.1,
}

_MISSING_FACTOR_TEXT = {
    SignalKind.ABSENCE: "No missing tests were found, so this part adds nothing to the score.",
    SignalKind.TREND: "There was not enough trend data, so trends add nothing to the score.",
    SignalKind.FOLLOWUP: "No open follow-ups were found, so this part adds nothing to the score.",
    SignalKind.DEMOGRAPHIC: "Age and risk factors add nothing to the score.",
}


class RiskAggregator:
    """Multi-factor weighted scoring with severity tiers"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.weights = dict(self.config.get('weights', DEFAULT_WEIGHTS))
        self.tiers = dict(self.config.get('tiers', DEFAULT_TIERS))
        self.conservative_severity = float(self.config.get('conservative_severity', 75.0))
        self._validate_weights()

    def classify(self, score: float) -> SeverityTier:
        return classify_severity(score, self.tiers)

    def aggregate(
        self,
        user_id: str,
        signals: Sequence[RiskSignal],
        assessed_at: Optional[datetime] = None,
        version: int = 0,
    ) -> OverallRisk:
        """Overall risk for one run. Every input signal is kept in the evidence."""
        assessed_at = assessed_at or datetime.now()
        notes: List[AnalysisNote] = []

        effective = self._effective_severities(signals)
        factors, review_required, failure_notes = self._combine(effective)
        notes.extend(failure_notes)

        present = {s.kind for s in signals}
        for kind in SignalKind:
            if kind not in present:
                notes.append(
                    AnalysisNote(
                        kind=NoteKind.MISSING_FACTOR,
                        message=_MISSING_FACTOR_TEXT[kind],
                        subject=kind.value,
                    )
                )

        score = sum(self.weights[kind.value] * factors[kind.value] for kind in SignalKind)
        score = round(min(100.0, max(0.0, score)), 6)

        # ordered by the checked severity; raw values may be malformed
        ranked = sorted(
            effective,
            key=lambda item: (item[0].kind.value, -item[1], item[0].subject, item[0].signal_id),
        )
        ordered = tuple(signal for signal, _, _ in ranked)
        overall = OverallRisk(
            user_id=user_id,
            version=version,
            risk_score=score,
            severity=self.classify(score),
            factor_scores=factors,
            signals=ordered,
            evidence=Evidence.union(s.evidence for s in ordered),
            assessed_at=assessed_at,
            review_required=review_required,
            notes=tuple(notes),
        )
        logger.info(
            "Overall risk for %s: %.1f (%s) from %d signal(s)",
            user_id, overall.risk_score, overall.severity.value, len(ordered),
        )
        return overall

    def factor_scores(
        self, signals: Iterable[RiskSignal]
    ) -> Tuple[Dict[str, float], bool, List[AnalysisNote]]:
        """Highest valid severity per signal kind"""
        return self._combine(self._effective_severities(signals))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _effective_severities(
        self, signals: Iterable[RiskSignal]
    ) -> List[Tuple[RiskSignal, float, Optional[AnalysisNote]]]:
        """Each signal paired with the severity used for scoring"""
        effective = []
        for signal in signals:
            try:
                effective.append((signal, self._checked_severity(signal), None))
            except CalculationFailure as e:
                logger.warning("%s; substituting conservative estimate", e)
                note = AnalysisNote(
                    kind=NoteKind.CALCULATION_FAILURE,
                    message=(
                        "One score could not be worked out. We used a cautious, "
                        "higher estimate and flagged it for review."
                    ),
                    subject=signal.subject,
                )
                effective.append((signal, self._conservative(signal.severity), note))
        return effective

    @staticmethod
    def _combine(
        effective: Iterable[Tuple[RiskSignal, float, Optional[AnalysisNote]]]
    ) -> Tuple[Dict[str, float], bool, List[AnalysisNote]]:
        factors = {kind.value: 0.0 for kind in SignalKind}
        notes: List[AnalysisNote] = []
        for signal, severity, note in effective:
            key = signal.kind.value
            factors[key] = max(factors[key], severity)
            if note is not None:
                notes.append(note)
        return factors, bool(notes), notes

    @staticmethod
    def _checked_severity(signal: RiskSignal) -> float:
        value = signal.severity
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise CalculationFailure(
                f"Severity for {signal.kind.value}:{signal.subject} is not numeric: {value!r}"
            )
        if not math.isfinite(value) or not 0.0 <= value <= 100.0:
            raise CalculationFailure(
                f"Severity for {signal.kind.value}:{signal.subject} out of range: {value!r}"
            )
        return float(value)

    def _conservative(self, value: Any) -> float:
        """A substitute never lower than the (clamped) computed value"""
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            return max(self.conservative_severity, min(100.0, max(0.0, float(value))))
        return self.conservative_severity

    def _validate_weights(self) -> None:
        expected = {kind.value for kind in SignalKind}
        if set(self.weights) != expected:
            raise ValueError(
                f"Aggregation weights must cover exactly {sorted(expected)}, got {sorted(self.weights)}"
            )
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("Aggregation weights must be non-negative")
        if not math.isclose(sum(self.weights.values()), 1.0, abs_tol=1e-6):
            raise ValueError(
                f"Aggregation weights must sum to 1.0, got {sum(self.weights.values()):.4f}"
            )
        if not 0 <= self.tiers['moderate'] <= self.tiers['high'] <= 100:
            raise ValueError(f"Invalid severity tiers: {self.tiers}")
