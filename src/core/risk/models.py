"""Risk signals, evidence bundles and versioned overall risk records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from src.core.analysis.models import Gap, Trend
from src.core.errors import AnalysisNote
from src.core.guidelines.models import GuidelineRef
from src.core.timeline.models import DataPoint


class SignalKind(Enum):
    ABSENCE = "absence"
    TREND = "trend"
    FOLLOWUP = "followup"
    DEMOGRAPHIC = "demographic"


class SeverityTier(Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"


DEFAULT_TIERS = {'moderate': 30.0, 'high': 60.0}


def classify_severity(score: float, tiers: Optional[Mapping[str, float]] = None) -> SeverityTier:
    """
    Map a [0, 100] score to a tier. Lower bounds are inclusive:
    30.0 is MODERATE and 60.0 is HIGH.
    """
    bounds = tiers or DEFAULT_TIERS
    if score >= bounds['high']:
        return SeverityTier.HIGH
    if score >= bounds['moderate']:
        return SeverityTier.MODERATE
    return SeverityTier.LOW


def _point_key(p: DataPoint):
    return (p.date, p.parameter_name, p.source_id, p.value)


@dataclass(frozen=True)
class Evidence:
    """Data points, gaps, trends and guideline references behind a finding"""
    data_points: Tuple[DataPoint, ...] = ()
    gaps: Tuple[Gap, ...] = ()
    trends: Tuple[Trend, ...] = ()
    guideline_refs: Tuple[GuidelineRef, ...] = ()

    @classmethod
    def union(cls, bundles: Iterable["Evidence"]) -> "Evidence":
        """
        Merge bundles without dropping anything.

        Duplicates collapse and the result is sorted, so the union is the
        same for any ordering of the inputs.
        """
        points: Dict[tuple, DataPoint] = {}
        gaps: Dict[tuple, Gap] = {}
        trends: Dict[tuple, Trend] = {}
        refs: Dict[str, GuidelineRef] = {}
        for bundle in bundles:
            for p in bundle.data_points:
                points[_point_key(p)] = p
            for g in bundle.gaps:
                gaps[(g.test_type, g.guideline_id)] = g
            for t in bundle.trends:
                trends[(t.parameter, t.start_date, t.end_date)] = t
            for r in bundle.guideline_refs:
                refs[r.guideline_id] = r
        return cls(
            data_points=tuple(points[k] for k in sorted(points)),
            gaps=tuple(gaps[k] for k in sorted(gaps)),
            trends=tuple(trends[k] for k in sorted(trends)),
            guideline_refs=tuple(refs[k] for k in sorted(refs)),
        )


@dataclass(frozen=True)
class RiskSignal:
    """One finding contributing to overall risk. Immutable once created."""
    kind: SignalKind
    severity: float  # normalized to [0, 100] by the owning detector
    subject: str     # test type or parameter the finding is about
    title: str
    evidence: Evidence
    created_at: datetime
    signal_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    notes: Tuple[AnalysisNote, ...] = ()

    def tier(self, tiers: Optional[Mapping[str, float]] = None) -> SeverityTier:
        return classify_severity(self.severity, tiers)


@dataclass(frozen=True)
class OverallRisk:
    """Aggregate risk for one user and one assessment run."""
    user_id: str
    version: int
    risk_score: float
    severity: SeverityTier
    factor_scores: Mapping[str, float]
    signals: Tuple[RiskSignal, ...]
    evidence: Evidence
    assessed_at: datetime
    review_required: bool = False
    notes: Tuple[AnalysisNote, ...] = ()

    @property
    def signal_ids(self) -> Tuple[str, ...]:
        return tuple(s.signal_id for s in self.signals)
