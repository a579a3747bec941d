"""
Follow-up Detector - requested follow-up tests that are past due

A FOLLOW_UP_DUE event is satisfied by any matching test on or after the
day it was issued. Unsatisfied follow-ups whose due date has passed
become FOLLOWUP risk signals.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from src.core.base_analyzer import BaseAnalyzer
from src.core.guidelines.models import GuidelineRef
from src.core.guidelines.store import GuidelineStore
from src.core.risk.models import Evidence, RiskSignal, SignalKind
from src.core.timeline.models import EventType, TimelineSnapshot
from src.utils.preprocessing import elapsed_days

from .models import OpenFollowUp

logger = logging.getLogger(__name__)


class FollowUpDetector(BaseAnalyzer):

    name = "followup"

    def __init__(
        self,
        config: Dict[str, Any] = None,
        guideline_store: Optional[GuidelineStore] = None,
    ):
        super().__init__(config)
        self.guideline_store = guideline_store
        self.base_severity = self.config.get('base_severity', 40.0)
        self.full_severity_days = self.config.get('full_severity_days', 180)

    def analyze(self, snapshot: TimelineSnapshot, as_of: date, **context) -> List[OpenFollowUp]:
        visible = snapshot.until(as_of)
        overdue = []
        for event in visible.events_of_type(EventType.FOLLOW_UP_DUE):
            issued_on = event.issued_on or event.date
            if visible.occurrences_since(
                event.test_type, issued_on, self._parameters(event.test_type)
            ):
                continue
            days_overdue = elapsed_days(event.date, as_of)
            if days_overdue <= 0:
                continue
            overdue.append(
                OpenFollowUp(
                    test_type=event.test_type,
                    description=event.description,
                    due_date=event.date,
                    issued_on=issued_on,
                    days_overdue=days_overdue,
                    source_id=event.source_id,
                )
            )
        if overdue:
            logger.info("%d overdue follow-up(s) for %s", len(overdue), snapshot.user_id)
        return sorted(overdue, key=lambda f: (-f.days_overdue, f.test_type))

    def severity(self, followup: OpenFollowUp) -> float:
        """Follow-up risk normalized to [0, 100]; grows with days overdue"""
        progress = min(1.0, followup.days_overdue / self.full_severity_days)
        return float(self.base_severity + (100.0 - self.base_severity) * progress)

    def to_signals(
        self,
        followups: Iterable[OpenFollowUp],
        guideline_refs: Dict[str, List[GuidelineRef]],
        created_at: datetime,
        default_refs: Optional[List[GuidelineRef]] = None,
    ) -> List[RiskSignal]:
        signals = []
        for followup in followups:
            refs = guideline_refs.get(followup.test_type) or default_refs or []
            signals.append(
                RiskSignal(
                    kind=SignalKind.FOLLOWUP,
                    severity=self.severity(followup),
                    subject=followup.test_type,
                    title=f"Follow-up {followup.test_type} is overdue",
                    evidence=Evidence(guideline_refs=tuple(refs)),
                    created_at=created_at,
                )
            )
        return signals

    def _parameters(self, test_type: str) -> List[str]:
        """Parameters whose results count as having done the test"""
        if self.guideline_store is None or not self.guideline_store.is_loaded:
            return []
        names = set()
        for guideline in self.guideline_store.for_test_type(test_type):
            names.update(guideline.parameters)
        return sorted(names)
