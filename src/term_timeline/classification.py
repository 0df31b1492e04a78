# ABOUTME: Derives load, enrollment-status, student-type, and level codes per period.
# ABOUTME: Walks each student's periods in order carrying lookback/lookahead state.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence

import pandas as pd

from .config import EngineConfig
from .schemas import EventKind

logger = logging.getLogger(__name__)

LOAD_FULL = "F"
LOAD_PART = "P"

STATUS_ACTIVE = "AS"
STATUS_INACTIVE = "IS"
STATUS_GRADUATED = "GR"

STYP_TRANSFER = "2"
STYP_NATIVE = "3"
STYP_NON_DEGREE = "9"
STYP_CONTINUING = "A"
STYP_CONTINUING_NON_DEGREE = "C"

LEVEL_ADULT_ED = "XX"
LEVEL_UNDERGRADUATE = "UG"
LEVEL_VOCATIONAL = "VO"
LEVEL_CONTINUING_ED = "CE"
LEVEL_UNKNOWN = "00"

DEGREE_LEVEL_CODES = {
    -1: LEVEL_ADULT_ED,
    3: LEVEL_UNDERGRADUATE,
    2: LEVEL_VOCATIONAL,
    1: LEVEL_CONTINUING_ED,
}
CREDIT_RANK_CODES = {
    3: LEVEL_UNDERGRADUATE,
    2: LEVEL_VOCATIONAL,
    1: LEVEL_CONTINUING_ED,
}
# Levels borrowed from an entry-date neighbour skip the adult-education bucket.
ENTRY_NEIGHBOR_LEVEL_CODES = dict(CREDIT_RANK_CODES)

HISTORY_START_KINDS = (EventKind.ENTRY, EventKind.FIRST_ACTIVE)
CLOSING_KINDS = (EventKind.LAST_ACTIVE, EventKind.WITHDRAWAL)

CLASSIFICATION_COLUMNS = [
    "row_num",
    "ft_pt_ind",
    "is_transfer",
    "is_first_period",
    "is_active",
    "starts_history",
    "history_group",
    "ini_styp",
    "styp_code",
    "stst_code",
    "levl_code",
    "term_code_admit",
    "full_part_ind",
]


class StatusContext(NamedTuple):
    period_code: int
    event_kinds: Sequence[str]
    is_last_period: bool
    count_row: int
    current_period: int
    upcoming_periods: Sequence[int]

    def has(self, *kinds: str) -> bool:
        return any(kind in self.event_kinds for kind in kinds)


# Evaluated top to bottom; the first matching guard decides the status.
STATUS_RULES: List[tuple] = [
    ("single lifetime period", lambda c: c.count_row == 1, STATUS_ACTIVE),
    ("closed final period", lambda c: c.is_last_period and c.period_code < c.current_period, STATUS_INACTIVE),
    ("closed before current", lambda c: c.has(*CLOSING_KINDS) and c.period_code < c.current_period, STATUS_INACTIVE),
    ("closing in upcoming window", lambda c: c.has(*CLOSING_KINDS) and c.period_code in c.upcoming_periods, STATUS_ACTIVE),
    (
        "enrollment milestone",
        lambda c: c.has(EventKind.FIRST_ACTIVE, EventKind.ENTRY, EventKind.EXIT),
        STATUS_ACTIVE,
    ),
    ("degree conferred", lambda c: c.has(EventKind.DEGREE_CONFERRED), STATUS_GRADUATED),
]


def load_from_hours(hours: Optional[float], full_time_hours: float = 12.0) -> Optional[str]:
    if hours is None or pd.isna(hours):
        return None
    if hours >= full_time_hours:
        return LOAD_FULL
    if hours > 0:
        return LOAD_PART
    return None


def load_indicator(
    hours: Optional[float],
    neighbor_hours: Optional[float],
    load_flag: Optional[str],
    full_time_hours: float = 12.0,
) -> str:
    """
    Full/part-time for one period.

    Own hours decide first. With no hours recorded at all, the neighbouring
    period's hours are used; after that the candidacy load flag, then full.
    """

    own = load_from_hours(hours, full_time_hours)
    if own:
        return own
    if hours is None or pd.isna(hours):
        borrowed = load_from_hours(neighbor_hours, full_time_hours)
        if borrowed:
            return borrowed
    if load_flag in (LOAD_FULL, LOAD_PART):
        return load_flag
    return LOAD_FULL


def initial_student_type(highest_degree_level: Optional[int], degree_codes: Sequence[str], is_transfer: bool) -> str:
    """Seed student type: non-degree below undergraduate level, else native or transfer-in."""

    if highest_degree_level is not None and highest_degree_level < 3 and not _has_degree_token(degree_codes):
        return STYP_NON_DEGREE
    return STYP_TRANSFER if is_transfer else STYP_NATIVE


def student_type(seed: str, previous_seed: Optional[str], first_in_history_group: bool) -> str:
    if first_in_history_group or previous_seed is None:
        return seed
    if previous_seed == STYP_NON_DEGREE:
        return STYP_CONTINUING_NON_DEGREE
    if previous_seed in (STYP_TRANSFER, STYP_NATIVE):
        return STYP_CONTINUING
    return seed


def enrollment_status(context: StatusContext) -> Optional[str]:
    for _, guard, code in STATUS_RULES:
        if guard(context):
            return code
    return None


def level_from_degree(level: Optional[int]) -> str:
    return DEGREE_LEVEL_CODES.get(level, LEVEL_UNKNOWN)


def level_from_credit_rank(rank: Optional[int]) -> str:
    return CREDIT_RANK_CODES.get(rank, LEVEL_UNKNOWN)


def level_code(
    record: Mapping,
    previous: Optional[Mapping] = None,
    following: Optional[Mapping] = None,
) -> Optional[str]:
    """
    Academic level for one period.

    Uses the period's own degree level when known; otherwise borrows from a
    neighbouring period or falls back to the credit-type rank depending on
    which enrollment events the period carries.
    """

    highest = record.get("highest_degree_level")
    if highest in DEGREE_LEVEL_CODES:
        return DEGREE_LEVEL_CODES[highest]
    if highest is not None:
        return None

    kinds = record.get("event_kinds") or ()
    has_last = EventKind.LAST_ACTIVE in kinds
    has_first = EventKind.FIRST_ACTIVE in kinds
    credit_rank = record.get("credit_type_rank")

    if has_last and has_first:
        return level_from_credit_rank(credit_rank)
    if has_last:
        previous_level = previous.get("highest_degree_level") if previous else None
        if previous_level is None:
            return level_from_credit_rank(credit_rank)
        return level_from_degree(previous_level)
    if has_first:
        for neighbor in (previous, following):
            if neighbor and EventKind.ENTRY in (neighbor.get("event_kinds") or ()):
                return ENTRY_NEIGHBOR_LEVEL_CODES.get(neighbor.get("highest_degree_level"), LEVEL_UNKNOWN)
        return level_from_credit_rank(credit_rank)
    return None


@dataclass
class ClassificationState:
    """Per-student running state for the ordered scan."""

    previous_seed: Optional[str] = None
    history_group: int = 0
    group_admit_period: Optional[int] = None
    group_admit_load: Optional[str] = None


def classify_period_records(
    records: pd.DataFrame,
    activity_summary: Optional[pd.DataFrame] = None,
    config: Optional[EngineConfig] = None,
) -> pd.DataFrame:
    """
    Run the status classification pass over every student's period records.

    Returns the input rows (ordered by id_num, period_code) with the
    CLASSIFICATION_COLUMNS added.
    """

    config = config or EngineConfig()
    if records.empty:
        return pd.DataFrame(columns=list(records.columns) + CLASSIFICATION_COLUMNS)

    facts: Dict[str, dict] = {}
    if activity_summary is not None and not activity_summary.empty:
        facts = activity_summary.to_dict("index")

    rows: List[dict] = []
    ordered = records.sort_values(["id_num", "period_code"], kind="mergesort")
    for id_num, group in ordered.groupby("id_num", sort=False):
        entity_rows = [_plain(row) for row in group.to_dict("records")]
        rows.extend(_classify_entity(entity_rows, facts.get(id_num, {}), config))

    classified = pd.DataFrame(rows)
    for column in ("highest_degree_level", "credit_type_rank", "term_code_admit"):
        classified[column] = pd.to_numeric(classified[column]).astype("Int64")
    classified["period_code"] = classified["period_code"].astype("int64")
    return classified


def _classify_entity(rows: List[dict], facts: Mapping, config: EngineConfig) -> List[dict]:
    is_transfer = bool(facts.get("is_transfer", False))
    is_active = bool(facts.get("is_active", False))
    first_active = _plain_value(facts.get("first_active_period"))
    state = ClassificationState()
    total = len(rows)

    for idx, row in enumerate(rows):
        previous = rows[idx - 1] if idx > 0 else None
        following = rows[idx + 1] if idx + 1 < total else None
        neighbor = following if idx == 0 else previous
        kinds = row["event_kinds"]

        ft_pt = load_indicator(
            row.get("attempted_hours"),
            neighbor.get("attempted_hours") if neighbor else None,
            row.get("load_flag"),
            config.full_time_hours,
        )
        starts_history = any(kind in kinds for kind in HISTORY_START_KINDS)
        if starts_history:
            state.history_group += 1
        first_in_group = idx == 0 or starts_history
        if first_in_group:
            state.group_admit_period = row["period_code"] if starts_history else None
            state.group_admit_load = ft_pt

        seed = initial_student_type(row.get("highest_degree_level"), row.get("degree_codes") or (), is_transfer)
        context = StatusContext(
            period_code=row["period_code"],
            event_kinds=kinds,
            is_last_period=idx == total - 1,
            count_row=row.get("count_row") or total,
            current_period=config.current_period,
            upcoming_periods=config.upcoming_periods,
        )

        row.update(
            row_num=idx + 1,
            ft_pt_ind=ft_pt,
            is_transfer=is_transfer,
            is_first_period=first_active is not None and row["period_code"] == first_active,
            is_active=is_active,
            starts_history=starts_history,
            history_group=state.history_group,
            ini_styp=seed,
            styp_code=student_type(seed, state.previous_seed, first_in_group),
            stst_code=enrollment_status(context),
            levl_code=level_code(row, previous, following),
            term_code_admit=state.group_admit_period,
            full_part_ind=state.group_admit_load,
        )
        state.previous_seed = seed
    return rows


def _plain(row: dict) -> dict:
    return {key: _plain_value(value) for key, value in row.items()}


def _plain_value(value):
    if isinstance(value, (list, tuple)):
        return value
    if value is None or value is pd.NA:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if hasattr(value, "item"):
        return value.item()
    return value


def _has_degree_token(degree_codes: Sequence[str]) -> bool:
    for code in degree_codes:
        if code == "A" or "S" in code or "BA" in code:
            return True
    return False
