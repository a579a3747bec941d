"""Data models for preventive-care guideline resolution."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from src.core.profile import Gender


class GuidelineSource(Enum):
    USPSTF = "USPSTF"
    ADA = "ADA"
    ACC_AHA = "ACC/AHA"
    GENERAL_WELLNESS = "General Wellness"


class TestCategory(Enum):
    __test__ = False  # not a pytest test class

    CANCER_SCREENING = "cancer_screening"
    DIABETES = "diabetes"
    CARDIOVASCULAR = "cardiovascular"
    GENERAL_WELLNESS = "general_wellness"


class EvidenceLevel(Enum):
    A = "A"
    B = "B"
    C = "C"
    EXPERT_OPINION = "expert_opinion"


@dataclass(frozen=True)
class AgeRange:
    min_years: int  # inclusive
    max_years: int  # inclusive

    def contains(self, age_years: int) -> bool:
        return self.min_years <= age_years <= self.max_years

    def distance(self, age_years: int) -> int:
        """Years outside the range (0 when inside)"""
        if age_years < self.min_years:
            return self.min_years - age_years
        if age_years > self.max_years:
            return age_years - self.max_years
        return 0


@dataclass(frozen=True)
class GuidelineRef:
    """Citation handle carried inside Evidence bundles."""
    guideline_id: str
    title: str
    citation: str
    evidence_level: EvidenceLevel


@dataclass(frozen=True)
class Guideline:
    """
    A preventive-test rule: who should have which test, how often.

    Population predicate: age in `age_range`, gender in `genders` (empty
    means any), and at least one of `risk_factors` (empty means none
    required).
    """
    id: str
    source: GuidelineSource
    category: TestCategory
    test_type: str
    test_name: str
    purpose: str
    age_range: AgeRange
    recommended_frequency_days: int
    evidence_level: EvidenceLevel
    citation: str
    genders: FrozenSet[Gender] = field(default_factory=frozenset)
    risk_factors: FrozenSet[str] = field(default_factory=frozenset)
    parameters: FrozenSet[str] = field(default_factory=frozenset)
    assumed_start_age: Optional[int] = None  # defaults to age_range.min_years

    @property
    def frequency(self) -> timedelta:
        return timedelta(days=self.recommended_frequency_days)

    @property
    def start_age(self) -> int:
        if self.assumed_start_age is not None:
            return self.assumed_start_age
        return self.age_range.min_years

    @property
    def ref(self) -> GuidelineRef:
        return GuidelineRef(
            guideline_id=self.id,
            title=self.test_name,
            citation=self.citation,
            evidence_level=self.evidence_level,
        )

    def covers(self, name: str) -> bool:
        return name == self.test_type or name in self.parameters

    def matches(
        self,
        age_years: int,
        gender: Gender,
        risk_factors: FrozenSet[str],
        ignore: FrozenSet[str] = frozenset(),
    ) -> bool:
        """Population predicate, optionally ignoring 'risk_factors' or 'age_range'"""
        if self.genders and gender not in self.genders:
            return False
        if "age_range" not in ignore and not self.age_range.contains(age_years):
            return False
        if (
            "risk_factors" not in ignore
            and self.risk_factors
            and not (self.risk_factors & risk_factors)
        ):
            return False
        return True


@dataclass(frozen=True)
class GuidelineResolution:
    """Guidelines applicable to one demographic, with approximation flags."""
    guidelines: Tuple[Guideline, ...]
    approximated: bool = False
    relaxed: Tuple[str, ...] = ()

    @property
    def note_text(self) -> Optional[str]:
        if not self.approximated:
            return None
        relaxed = " and ".join(r.replace("_", " ") for r in self.relaxed)
        return (
            f"No guideline matched exactly. We used the closest match "
            f"by relaxing the {relaxed}."
        )
