# ABOUTME: Defines the record types that flow between timeline synthesis stages.
# ABOUTME: Centralizes period, lifecycle event, and program mapping structures.

from dataclasses import dataclass, field
from datetime import date
from typing import NamedTuple, Optional, Tuple


class EventKind:
    ENTRY = "entry"
    EXIT = "exit"
    DEGREE_CONFERRED = "degree_conferred"
    WITHDRAWAL = "withdrawal"
    FIRST_ACTIVE = "first_active"
    LAST_ACTIVE = "last_active"

    # Tie-break order for events sharing a date inside one period.
    ORDER = (ENTRY, EXIT, DEGREE_CONFERRED, WITHDRAWAL, FIRST_ACTIVE, LAST_ACTIVE)


@dataclass(frozen=True)
class Period:
    """One academic term on the gap-filled calendar."""

    code: int
    start_date: date
    nominal_end_date: Optional[date] = None
    extended_end_date: Optional[date] = None
    calendar_keys: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def contains(self, value: date) -> bool:
        if value < self.start_date:
            return False
        return self.extended_end_date is None or value <= self.extended_end_date


@dataclass(frozen=True)
class LifecycleEvent:
    """Dated milestone for one student, optionally tagged with program context."""

    id_num: str
    event_date: date
    event_kind: str
    reason_code: Optional[str] = None
    major_1: Optional[str] = None
    major_2: Optional[str] = None
    concentration_1: Optional[str] = None
    degr_cde: Optional[str] = None
    div_cde: Optional[str] = None
    period_code: Optional[int] = None


class MajorCandidate(NamedTuple):
    """A major seen in a period, tagged with the degree-history slot it came from."""

    slot: int
    major_code: str
    concentration_code: Optional[str]


class ProgramEntry(NamedTuple):
    coll_code: Optional[str]
    degc_code: Optional[str]
    majr_code: Optional[str]
    majr_code_conc: Optional[str]
    program: Optional[str]


@dataclass(frozen=True)
class ProgramResolution:
    """Target program codes resolved for one slot of one period."""

    degree_code: Optional[str]
    source_major: Optional[str]
    coll_code: Optional[str] = None
    degc_code: Optional[str] = None
    majr_code: Optional[str] = None
    majr_code_conc: Optional[str] = None
    program: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.coll_code is not None or self.program is not None
