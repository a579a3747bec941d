"""
Error taxonomy for the analysis core.

Structural failures are exceptions and propagate to the caller.
Detection-layer conditions (too little history, conflicting values,
approximated guidelines) are recorded as AnalysisNote values and travel
with the result instead.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Tuple


class HealthEngineError(Exception):
    """Base class for all errors raised by the analysis core"""


class NotFoundError(HealthEngineError, KeyError):
    """A user has no timeline, or a record does not exist"""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class GuidelineNotFound(HealthEngineError):
    """No guideline applies, even after relaxing the population predicate"""


class MalformedGuidelineError(HealthEngineError):
    """Guideline reference data failed structural validation"""


class CorruptedTimelineError(HealthEngineError):
    """A timeline holds records that break its own invariants"""


class CalculationFailure(HealthEngineError):
    """Invalid numeric input reached a scoring step"""


class RecommendationConstructionError(HealthEngineError, ValueError):
    """A recommendation is missing a required field"""


class ExplanationContractError(HealthEngineError, ValueError):
    """A generated explanation violates an output invariant"""


class NoteKind(Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    CONFLICTING_DATA = "conflicting_data"
    GUIDELINE_APPROXIMATION = "guideline_approximation"
    GUIDELINE_NOT_FOUND = "guideline_not_found"
    CALCULATION_FAILURE = "calculation_failure"
    MISSING_FACTOR = "missing_factor"
    SINGLE_POINT_LEVERAGE = "single_point_leverage"
    READABILITY = "readability"
    FUTURE_DATED = "future_dated"


@dataclass(frozen=True)
class AnalysisNote:
    """Plain-language caveat attached to a degraded or partial result"""
    kind: NoteKind
    message: str
    subject: Optional[str] = None


@dataclass(frozen=True)
class InsufficientData:
    """Too few points to infer a trend. A valid outcome, not a failure."""
    parameter: str
    point_count: int
    required: int = 3

    @property
    def note(self) -> AnalysisNote:
        return AnalysisNote(
            kind=NoteKind.INSUFFICIENT_DATA,
            message=(
                f"Not enough history for trend analysis yet. "
                f"We have {self.point_count} of the {self.required} results needed."
            ),
            subject=self.parameter,
        )


@dataclass(frozen=True)
class ConflictingData:
    """Two or more values recorded for the same parameter on the same day"""
    parameter: str
    on: date
    values: Tuple[float, ...]
    preferred_value: float
    source_ids: Tuple[str, ...]

    @property
    def note(self) -> AnalysisNote:
        return AnalysisNote(
            kind=NoteKind.CONFLICTING_DATA,
            message=(
                f"Different results were recorded on {self.on.isoformat()}. "
                f"We used the most recent one ({self.preferred_value:g})."
            ),
            subject=self.parameter,
        )
