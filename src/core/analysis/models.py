"""Derived values produced by the timeline detectors."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Tuple

from src.core.errors import AnalysisNote, ConflictingData, InsufficientData
from src.core.guidelines.models import GuidelineRef, GuidelineResolution
from src.core.timeline.models import DataPoint


class TrendDirection(Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Significance(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class GapPriority(Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass(frozen=True)
class Trend:
    """Trend inferred from one parameter's history. Recomputed on demand."""
    parameter: str
    direction: TrendDirection
    rate_of_change: float  # units per day, from the regression slope
    annual_rate: float     # units per year
    significance: Significance
    confidence: float
    p_value: float
    rapid_change: bool
    unit: str
    data_points: Tuple[DataPoint, ...]
    notes: Tuple[AnalysisNote, ...] = ()

    @property
    def start_date(self) -> date:
        return self.data_points[0].date

    @property
    def end_date(self) -> date:
        return self.data_points[-1].date

    @property
    def point_count(self) -> int:
        return len(self.data_points)


@dataclass
class TrendAnalysis:
    """Trend results for every parameter in a snapshot"""
    trends: List[Trend] = field(default_factory=list)
    insufficient: List[InsufficientData] = field(default_factory=list)
    conflicts: List[ConflictingData] = field(default_factory=list)
    notes: List[AnalysisNote] = field(default_factory=list)


@dataclass(frozen=True)
class Gap:
    """A guideline-recommended test that is overdue."""
    test_type: str
    test_name: str
    guideline_id: str
    guideline_ref: GuidelineRef
    category: str
    days_overdue: int
    recommended_frequency_days: int
    due_since: date
    last_test_date: Optional[date]
    risk_weight: float
    priority_score: float
    priority: GapPriority
    approximated: bool = False

    @property
    def demographic_only(self) -> bool:
        """True when the user has never had the test"""
        return self.last_test_date is None


@dataclass
class GapAnalysis:
    """Gaps for one user, ordered by priority"""
    gaps: List[Gap] = field(default_factory=list)
    resolution: Optional[GuidelineResolution] = None
    notes: List[AnalysisNote] = field(default_factory=list)


@dataclass(frozen=True)
class OpenFollowUp:
    """A requested follow-up that has not been satisfied yet"""
    test_type: str
    description: str
    due_date: date
    issued_on: date
    days_overdue: int
    source_id: str
