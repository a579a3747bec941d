"""Explanation value object."""

from dataclasses import dataclass
from typing import Optional, Tuple

from src.core.errors import AnalysisNote
from src.core.guidelines.models import GuidelineRef


@dataclass(frozen=True)
class Explanation:
    """Plain-language account of one risk signal or recommendation"""
    subject_id: str
    subject_kind: str  # "signal" or "recommendation"
    summary: str
    detailed_reasoning: str
    citations: Tuple[GuidelineRef, ...]
    action_guidance: str
    disclaimer: str
    visualization_ref: Optional[str] = None
    reading_grade: float = 0.0
    notes: Tuple[AnalysisNote, ...] = ()

    @property
    def text(self) -> str:
        """All user-facing text, in reading order"""
        parts = [self.summary, self.detailed_reasoning, self.action_guidance]
        parts.extend(ref.citation for ref in self.citations)
        parts.append(self.disclaimer)
        return " ".join(parts)
