"""Data models for the per-user health timeline."""

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from src.core.errors import ConflictingData
from src.utils.preprocessing import standardize_parameter_name


class EventType(Enum):
    LAB_TEST = "lab_test"
    PRESCRIPTION = "prescription"
    FOLLOW_UP_DUE = "follow_up_due"


@dataclass(frozen=True)
class DataPoint:
    """A single measured value. Immutable once stored."""
    user_id: str
    parameter_name: str
    date: date
    value: float
    unit: str
    source_id: str

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("DataPoint requires a user_id")
        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise ValueError(f"DataPoint date must be a date, got {self.date!r}")
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValueError(f"DataPoint value must be numeric, got {self.value!r}")
        if not math.isfinite(self.value):
            raise ValueError(f"DataPoint value must be finite, got {self.value!r}")
        object.__setattr__(
            self, "parameter_name", standardize_parameter_name(self.parameter_name)
        )
        object.__setattr__(self, "value", float(self.value))

    @property
    def identity(self) -> Tuple[str, str, date, str]:
        return (self.user_id, self.parameter_name, self.date, self.source_id)


@dataclass(frozen=True)
class Event:
    """
    A discrete timeline event.

    For FOLLOW_UP_DUE events `date` is the due date and `issued_on` is the
    day the follow-up was requested (defaults to the due date).
    """
    user_id: str
    event_type: EventType
    date: date
    source_id: str
    test_type: Optional[str] = None
    description: str = ""
    issued_on: Optional[date] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("Event requires a user_id")
        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise ValueError(f"Event date must be a date, got {self.date!r}")
        if self.test_type is not None:
            object.__setattr__(
                self, "test_type", standardize_parameter_name(self.test_type)
            )
        if self.event_type is EventType.FOLLOW_UP_DUE and not self.test_type:
            raise ValueError("FOLLOW_UP_DUE events require a test_type")

    @property
    def identity(self) -> Tuple[str, str, date, Optional[str], str]:
        return (self.user_id, self.event_type.value, self.date, self.test_type, self.source_id)


@dataclass(frozen=True)
class TestResult:
    """Normalized lab result as produced by the extraction service."""
    __test__ = False  # not a pytest test class

    test_name: str
    value: float
    unit: str
    date: date
    source_id: str
    test_type: Optional[str] = None  # panel the result belongs to, e.g. lipid_panel


@dataclass(frozen=True)
class Medication:
    """Normalized medication record as produced by the extraction service."""
    name: str
    date: date
    source_id: str
    dosage: str = ""


@dataclass(frozen=True)
class TimelineSnapshot:
    """
    Immutable view of one user's timeline taken at the start of a run.

    Detectors only ever see snapshots, never the live store, so
    concurrent writes cannot be observed half-way through a run.
    """
    user_id: str
    version: int
    taken_at: datetime
    data_points: Tuple[DataPoint, ...] = ()
    events: Tuple[Event, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.data_points and not self.events

    def until(self, day: date) -> "TimelineSnapshot":
        """The same snapshot restricted to records visible on `day`"""
        events = tuple(
            e for e in self.events
            if e.date <= day
            or (e.event_type is EventType.FOLLOW_UP_DUE and (e.issued_on or e.date) <= day)
        )
        return replace(
            self,
            data_points=tuple(p for p in self.data_points if p.date <= day),
            events=events,
        )

    def parameters(self) -> List[str]:
        return sorted({p.parameter_name for p in self.data_points})

    def history(self, parameter: str) -> Tuple[DataPoint, ...]:
        key = standardize_parameter_name(parameter)
        return tuple(p for p in self.data_points if p.parameter_name == key)

    def resolved_history(
        self, parameter: str
    ) -> Tuple[List[DataPoint], List[ConflictingData]]:
        """
        One value per day for a parameter.

        When several sources report different values on the same day the
        most recently ingested one is used and the conflict is returned
        alongside. Stored rows are never removed.
        """
        by_day: Dict[date, List[DataPoint]] = {}
        for point in self.history(parameter):
            by_day.setdefault(point.date, []).append(point)

        resolved: List[DataPoint] = []
        conflicts: List[ConflictingData] = []
        for day in sorted(by_day):
            points = by_day[day]
            # data_points is in (date, ingestion sequence) order
            preferred = points[-1]
            resolved.append(preferred)
            if len({p.value for p in points}) > 1:
                conflicts.append(
                    ConflictingData(
                        parameter=preferred.parameter_name,
                        on=day,
                        values=tuple(p.value for p in points),
                        preferred_value=preferred.value,
                        source_ids=tuple(p.source_id for p in points),
                    )
                )
        return resolved, conflicts

    def events_of_type(self, event_type: EventType) -> Tuple[Event, ...]:
        return tuple(e for e in self.events if e.event_type is event_type)

    def last_occurrence(
        self, test_type: str, parameters: Iterable[str] = ()
    ) -> Optional[date]:
        """Most recent date on which the test was performed, if ever"""
        key = standardize_parameter_name(test_type)
        names: Set[str] = {key} | {standardize_parameter_name(p) for p in parameters}
        dates = [
            e.date for e in self.events
            if e.event_type is EventType.LAB_TEST and e.test_type in names
        ]
        dates.extend(p.date for p in self.data_points if p.parameter_name in names)
        return max(dates) if dates else None

    def occurrences_since(
        self, test_type: str, since: date, parameters: Iterable[str] = ()
    ) -> List[date]:
        key = standardize_parameter_name(test_type)
        names: Set[str] = {key} | {standardize_parameter_name(p) for p in parameters}
        dates = [
            e.date for e in self.events
            if e.event_type is EventType.LAB_TEST and e.test_type in names and e.date >= since
        ]
        dates.extend(
            p.date for p in self.data_points if p.parameter_name in names and p.date >= since
        )
        return sorted(dates)


class WriteOutcome(Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    REVISED = "revised"  # known identity, different value; stored alongside


@dataclass
class IngestionSummary:
    """Counts returned by TimelineStore.ingest"""
    inserted_points: int = 0
    duplicate_points: int = 0
    revised_points: int = 0
    inserted_events: int = 0
    duplicate_events: int = 0
    errors: List[str] = field(default_factory=list)
    conflicts: List[ConflictingData] = field(default_factory=list)
