"""
GuidelineStore: deterministic resolution of preventive-care guidelines.
Uses metadata filtering on the population predicate, no external database required.
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from src.core.errors import GuidelineNotFound, MalformedGuidelineError
from src.core.profile import Gender
from src.utils.preprocessing import standardize_parameter_name

from .models import Guideline, GuidelineResolution, TestCategory

logger = logging.getLogger(__name__)

DEFAULT_RELAXATION_ORDER = ("risk_factors", "age_range")


class GuidelineStore:
    """
    Read-only guideline reference data.

    Resolution algorithm:
      1. Exact match on age, gender and risk factors
      2. If nothing matches, relax constraints one at a time in
         `relaxation_order` (risk factors first, then age range by
         default) and flag the result as an approximation
      3. When the age range is relaxed, keep only the guidelines whose
         range is closest to the user's age
    """

    def __init__(
        self,
        guidelines: Optional[Sequence[Guideline]] = None,
        relaxation_order: Sequence[str] = DEFAULT_RELAXATION_ORDER,
    ):
        self._guidelines: List[Guideline] = []
        self._preset = list(guidelines) if guidelines is not None else None
        self._loaded = False
        for step in relaxation_order:
            if step not in DEFAULT_RELAXATION_ORDER:
                raise ValueError(f"Unknown relaxation step: {step!r}")
        self.relaxation_order = tuple(relaxation_order)

    def initialize(self) -> None:
        """Load and validate guidelines (built-in data modules unless preset)"""
        if self._preset is not None:
            guidelines = self._preset
        else:
            from .data.acc_aha import ACC_AHA_GUIDELINES
            from .data.ada import ADA_GUIDELINES
            from .data.uspstf import USPSTF_GUIDELINES
            from .data.wellness import WELLNESS_GUIDELINES

            guidelines = (
                USPSTF_GUIDELINES + ADA_GUIDELINES + ACC_AHA_GUIDELINES + WELLNESS_GUIDELINES
            )

        self._validate(guidelines)
        self._guidelines = sorted(guidelines, key=lambda g: g.id)
        self._loaded = True
        logger.info(
            "GuidelineStore loaded %d guidelines from %d sources",
            len(self._guidelines),
            len({g.source for g in self._guidelines}),
        )

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def guidelines(self) -> List[Guideline]:
        return list(self._guidelines)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve(
        self,
        age_years: int,
        gender: Gender,
        risk_factors: Iterable[str] = (),
    ) -> GuidelineResolution:
        """Guidelines for a demographic, falling back to the closest match"""
        self._require_loaded()
        factors = frozenset(rf.strip().lower() for rf in risk_factors)

        exact = [g for g in self._guidelines if g.matches(age_years, gender, factors)]
        if exact:
            return GuidelineResolution(guidelines=tuple(exact))

        relaxed: List[str] = []
        for step in self.relaxation_order:
            relaxed.append(step)
            ignore = frozenset(relaxed)
            candidates = [
                g for g in self._guidelines
                if g.matches(age_years, gender, factors, ignore=ignore)
            ]
            if "age_range" in ignore and candidates:
                closest = min(g.age_range.distance(age_years) for g in candidates)
                candidates = [
                    g for g in candidates if g.age_range.distance(age_years) == closest
                ]
            if candidates:
                logger.info(
                    "No exact guideline for age=%d gender=%s; approximated by relaxing %s",
                    age_years, gender.value, ", ".join(relaxed),
                )
                return GuidelineResolution(
                    guidelines=tuple(candidates),
                    approximated=True,
                    relaxed=tuple(relaxed),
                )

        raise GuidelineNotFound(
            f"No guideline applies to age={age_years} gender={gender.value}, "
            f"even after relaxing {', '.join(relaxed) or 'nothing'}"
        )

    def frequency(self, test_type: str) -> timedelta:
        """Shortest recommended interval for a test type"""
        matching = self.for_test_type(test_type)
        if not matching:
            raise GuidelineNotFound(f"No guideline defines test type {test_type!r}")
        return min(g.frequency for g in matching)

    def get(self, guideline_id: str) -> Guideline:
        self._require_loaded()
        for g in self._guidelines:
            if g.id == guideline_id:
                return g
        raise GuidelineNotFound(f"Unknown guideline id {guideline_id!r}")

    def for_test_type(self, test_type: str) -> List[Guideline]:
        self._require_loaded()
        key = standardize_parameter_name(test_type)
        return [g for g in self._guidelines if g.test_type == key]

    def for_parameter(
        self,
        parameter: str,
        within: Optional[Iterable[Guideline]] = None,
    ) -> List[Guideline]:
        """
        Guidelines that cite a parameter, preferring `within` (the user's
        applicable set). Falls back to general-wellness guidance so any
        measured parameter can be tied to at least one reference.
        """
        self._require_loaded()
        key = standardize_parameter_name(parameter)
        pool = list(within) if within is not None else self._guidelines

        direct = [g for g in pool if g.covers(key)]
        if direct:
            return direct
        direct = [g for g in self._guidelines if g.covers(key)]
        if direct:
            return direct
        wellness = [g for g in pool if g.category is TestCategory.GENERAL_WELLNESS]
        if wellness:
            return wellness
        return [g for g in self._guidelines if g.category is TestCategory.GENERAL_WELLNESS]

    # ------------------------------------------------------------------
    # Internal validation
    # ------------------------------------------------------------------

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise GuidelineNotFound("GuidelineStore has not been initialized")

    @staticmethod
    def _validate(guidelines: Sequence[Guideline]) -> None:
        seen: Dict[str, Guideline] = {}
        for g in guidelines:
            problems = []
            if not g.id:
                problems.append("missing id")
            if g.id in seen:
                problems.append("duplicate id")
            if not g.test_type or g.test_type != standardize_parameter_name(g.test_type):
                problems.append(f"test_type {g.test_type!r} is not a canonical key")
            if not g.test_name or not g.purpose:
                problems.append("missing test_name or purpose")
            if not g.citation:
                problems.append("missing citation")
            if g.recommended_frequency_days <= 0:
                problems.append(
                    f"recommended_frequency_days must be positive, got {g.recommended_frequency_days}"
                )
            if g.age_range.min_years < 0 or g.age_range.min_years > g.age_range.max_years:
                problems.append(f"invalid age range {g.age_range}")
            if g.start_age < 0:
                problems.append(f"invalid assumed start age {g.start_age}")
            if problems:
                logger.error("Malformed guideline %r: %s", g.id, "; ".join(problems))
                raise MalformedGuidelineError(
                    f"Guideline {g.id!r} is malformed: {'; '.join(problems)}"
                )
            seen[g.id] = g
