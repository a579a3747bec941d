"""
TimelineStore: chronological index of each user's data points and events.

Writes are serialized per user with one lock per timeline; there is no
global write lock. Reads copy a consistent snapshot under the same lock.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from src.core.errors import ConflictingData, CorruptedTimelineError, NotFoundError
from src.utils.preprocessing import standardize_parameter_name

from .models import (
    DataPoint,
    Event,
    EventType,
    IngestionSummary,
    Medication,
    TestResult,
    TimelineSnapshot,
    WriteOutcome,
)

logger = logging.getLogger(__name__)


class _UserTimeline:
    """Mutable per-user state. Only touched while holding `lock`."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.lock = threading.RLock()
        self.version = 0
        self._sequence = 0
        # (identity, value) -> (sequence, point); a revised value is a second row
        self.points: Dict[tuple, Tuple[int, DataPoint]] = {}
        self.values: Dict[tuple, List[float]] = {}
        self.events: Dict[tuple, Tuple[int, Event]] = {}

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def ordered_points(self) -> List[DataPoint]:
        ordered = sorted(self.points.values(), key=lambda item: (item[1].date, item[0]))
        return [point for _, point in ordered]

    def ordered_events(self) -> List[Event]:
        ordered = sorted(self.events.values(), key=lambda item: (item[1].date, item[0]))
        return [event for _, event in ordered]


class TimelineStore:
    """
    In-memory timeline store.

    Guarantees:
      - identical DataPoints and Event identities are stored once (idempotent)
      - a new value for a stored DataPoint identity is kept as a revision
      - reads are sorted ascending by date, ties in insertion order
      - a user without a timeline raises NotFoundError; an empty timeline
        is valid and reads back as empty sequences
    """

    def __init__(self):
        self._timelines: Dict[str, _UserTimeline] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Timeline lifecycle
    # ------------------------------------------------------------------

    def create_timeline(self, user_id: str) -> None:
        """Create an empty timeline for the user (no-op if it exists)"""
        self._get_or_create(user_id)

    def has_timeline(self, user_id: str) -> bool:
        return user_id in self._timelines

    def version(self, user_id: str) -> int:
        timeline = self._require(user_id)
        with timeline.lock:
            return timeline.version

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_data_point(self, point: DataPoint) -> bool:
        """
        Store a data point.

        Re-sending a stored identity with the same value is a no-op. A
        different value for a stored identity is kept as a revision; the
        snapshot then reports the day as conflicting and prefers the
        revision.

        Returns:
            True if stored, False if the identical point was already present
        """
        outcome, _ = self._write_point(point)
        return outcome is not WriteOutcome.DUPLICATE

    def add_event(self, event: Event) -> bool:
        """Store an event. Returns False if the identity was already present."""
        timeline = self._get_or_create(event.user_id)
        with timeline.lock:
            if event.identity in timeline.events:
                logger.debug("Duplicate event ignored: %s", event.identity)
                return False
            timeline.events[event.identity] = (timeline.next_sequence(), event)
            timeline.version += 1
            return True

    def ingest(
        self,
        user_id: str,
        results: Iterable[TestResult] = (),
        medications: Iterable[Medication] = (),
    ) -> IngestionSummary:
        """
        Convert extraction-service records into data points and events.

        Each TestResult becomes a DataPoint plus a LAB_TEST event for its
        test type (the panel, or the parameter itself). Each Medication
        becomes a PRESCRIPTION event.
        """
        summary = IngestionSummary()
        self.create_timeline(user_id)

        for result in results:
            # both records are validated before either is stored
            try:
                point = DataPoint(
                    user_id=user_id,
                    parameter_name=result.test_name,
                    date=result.date,
                    value=result.value,
                    unit=result.unit,
                    source_id=result.source_id,
                )
                event = Event(
                    user_id=user_id,
                    event_type=EventType.LAB_TEST,
                    date=result.date,
                    source_id=result.source_id,
                    test_type=result.test_type or point.parameter_name,
                    description=result.test_name,
                )
            except ValueError as e:
                logger.warning("Rejected test result %r: %s", result.test_name, e)
                summary.errors.append(f"{result.test_name}: {e}")
                continue

            outcome, conflict = self._write_point(point)
            if outcome is WriteOutcome.INSERTED:
                summary.inserted_points += 1
            elif outcome is WriteOutcome.REVISED:
                summary.revised_points += 1
                summary.conflicts.append(conflict)
            else:
                summary.duplicate_points += 1

            if self.add_event(event):
                summary.inserted_events += 1
            else:
                summary.duplicate_events += 1

        for medication in medications:
            try:
                event = Event(
                    user_id=user_id,
                    event_type=EventType.PRESCRIPTION,
                    date=medication.date,
                    source_id=medication.source_id,
                    description=medication.name,
                )
            except ValueError as e:
                logger.warning("Rejected medication %r: %s", medication.name, e)
                summary.errors.append(f"{medication.name}: {e}")
                continue
            if self.add_event(event):
                summary.inserted_events += 1
            else:
                summary.duplicate_events += 1

        logger.info(
            "Ingested for %s: %d points (%d duplicate, %d revised), %d events (%d duplicate)",
            user_id,
            summary.inserted_points,
            summary.duplicate_points,
            summary.revised_points,
            summary.inserted_events,
            summary.duplicate_events,
        )
        return summary

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_history(self, user_id: str, parameter: str) -> List[DataPoint]:
        """All data points for one parameter, ascending by date"""
        key = standardize_parameter_name(parameter)
        timeline = self._require(user_id)
        with timeline.lock:
            return [p for p in timeline.ordered_points() if p.parameter_name == key]

    def get_ordered_events(self, user_id: str) -> List[Event]:
        """All events, ascending by date"""
        timeline = self._require(user_id)
        with timeline.lock:
            return timeline.ordered_events()

    def snapshot(self, user_id: str, taken_at: Optional[datetime] = None) -> TimelineSnapshot:
        """Immutable copy of the user's timeline at its current version"""
        timeline = self._require(user_id)
        with timeline.lock:
            points = tuple(timeline.ordered_points())
            events = tuple(timeline.ordered_events())
            version = timeline.version

        for point in points:
            if point.user_id != user_id:
                logger.error("Timeline %s holds a point owned by %s", user_id, point.user_id)
                raise CorruptedTimelineError(
                    f"Timeline for {user_id} contains a data point for {point.user_id}"
                )

        return TimelineSnapshot(
            user_id=user_id,
            version=version,
            taken_at=taken_at or datetime.now(),
            data_points=points,
            events=events,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _write_point(self, point: DataPoint) -> Tuple[WriteOutcome, Optional[ConflictingData]]:
        timeline = self._get_or_create(point.user_id)
        with timeline.lock:
            key = (point.identity, point.value)
            if key in timeline.points:
                logger.debug("Duplicate data point ignored: %s", point.identity)
                return WriteOutcome.DUPLICATE, None

            previous = timeline.values.setdefault(point.identity, [])
            timeline.points[key] = (timeline.next_sequence(), point)
            timeline.version += 1
            if not previous:
                previous.append(point.value)
                return WriteOutcome.INSERTED, None

            conflict = ConflictingData(
                parameter=point.parameter_name,
                on=point.date,
                values=tuple(previous) + (point.value,),
                preferred_value=point.value,
                source_ids=(point.source_id,) * (len(previous) + 1),
            )
            previous.append(point.value)
        logger.warning(
            "Conflicting value for %s on %s from %s: %s, now preferring %g",
            point.parameter_name, point.date, point.source_id,
            ", ".join(f"{v:g}" for v in conflict.values[:-1]), point.value,
        )
        return WriteOutcome.REVISED, conflict

    def _require(self, user_id: str) -> _UserTimeline:
        timeline = self._timelines.get(user_id)
        if timeline is None:
            raise NotFoundError(f"No timeline for user {user_id!r}")
        return timeline

    def _get_or_create(self, user_id: str) -> _UserTimeline:
        timeline = self._timelines.get(user_id)
        if timeline is not None:
            return timeline
        with self._registry_lock:
            timeline = self._timelines.get(user_id)
            if timeline is None:
                timeline = _UserTimeline(user_id)
                self._timelines[user_id] = timeline
                logger.info("Created timeline for %s", user_id)
            return timeline
