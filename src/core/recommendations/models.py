"""Recommendation value objects."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from src.core.errors import RecommendationConstructionError
from src.core.guidelines.models import GuidelineRef
from src.core.risk.models import SeverityTier


class RecommendationPriority(Enum):
    URGENT = "URGENT"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """0 for the most pressing tier"""
        return _RANKS[self]

    @classmethod
    def from_tier(cls, tier: SeverityTier) -> "RecommendationPriority":
        return cls(tier.value)


_RANKS = {
    RecommendationPriority.URGENT: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MODERATE: 2,
    RecommendationPriority.LOW: 3,
}


@dataclass(frozen=True)
class Recommendation:
    """
    A ranked preventive-test suggestion.

    test_name, reason, frequency and priority are required; a missing one
    raises RecommendationConstructionError instead of producing a partial
    recommendation.
    """
    recommendation_id: str
    test_type: str
    test_name: str
    reason: str
    frequency: str
    priority: RecommendationPriority
    severity: SeverityTier
    priority_score: float = 0.0
    risk_weight: float = 1.0
    frequency_days: Optional[int] = None
    related_risk_signal_ids: Tuple[str, ...] = ()
    guideline_ref: Optional[GuidelineRef] = None
    approximated: bool = False

    def __post_init__(self):
        missing = [
            name for name in ('test_name', 'reason', 'frequency')
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if not isinstance(self.priority, RecommendationPriority):
            missing.append('priority')
        if missing:
            raise RecommendationConstructionError(
                f"Recommendation for {self.test_type!r} is missing: {', '.join(missing)}"
            )
