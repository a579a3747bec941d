"""
Base Analyzer Interface
All timeline detectors (trend, gap, follow-up) inherit from this base class
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List

from src.core.errors import AnalysisNote, NoteKind
from src.core.timeline.models import EventType, TimelineSnapshot


class BaseAnalyzer(ABC):
    """Abstract base class for detectors that read a timeline snapshot"""

    name = "analyzer"

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the analyzer with configuration

        Args:
            config: Dictionary containing analyzer-specific configuration
        """
        self.config = config or {}

    @abstractmethod
    def analyze(self, snapshot: TimelineSnapshot, as_of: date, **context) -> Any:
        """
        Run the detector over an immutable timeline snapshot

        Args:
            snapshot: Timeline view taken at the start of the run
            as_of: Assessment date
            context: Detector-specific inputs (profile, guidelines, ...)

        Returns:
            Detector-specific result object
        """
        pass

    def validate_input(self, snapshot: TimelineSnapshot, as_of: date) -> List[AnalysisNote]:
        """
        Validate the snapshot before analysis

        Returns:
            Notes describing anything the detector will have to work around
        """
        future = [p for p in snapshot.data_points if p.date > as_of]
        future_events = [
            e for e in snapshot.events
            if e.date > as_of and e.event_type is not EventType.FOLLOW_UP_DUE
        ]
        if not future and not future_events:
            return []
        return [
            AnalysisNote(
                kind=NoteKind.FUTURE_DATED,
                message=(
                    f"{len(future) + len(future_events)} record(s) are dated after "
                    f"{as_of.isoformat()}. They were left out of this check."
                ),
            )
        ]
