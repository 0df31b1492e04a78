# ABOUTME: Extracts dated lifecycle events per student and pins each to a period.
# ABOUTME: Derives synthetic first/last active events from qualifying course activity.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import pandas as pd

from .config import EngineConfig
from .periods import PeriodCalendar
from .schemas import EventKind, LifecycleEvent

logger = logging.getLogger(__name__)

COURSE_HISTORY_COLUMNS = ["id_num", "yr_cde", "trm_cde", "transaction_sts", "grade_cde", "credit_hrs"]
DEGREE_HISTORY_COLUMNS = ["id_num"]
DEGREE_CONTEXT_COLUMNS = ["major_1", "major_2", "concentration_1", "degr_cde", "div_cde"]
EVENT_COLUMNS = [
    "id_num",
    "event_date",
    "event_kind",
    "reason_code",
    "major_1",
    "major_2",
    "concentration_1",
    "degr_cde",
    "div_cde",
    "period_code",
]

# (date column, event kind, reason column)
MILESTONE_COLUMNS = [
    ("entry_dte", EventKind.ENTRY, None),
    ("exit_dte", EventKind.EXIT, "exit_reason"),
    ("dte_degr_conferred", EventKind.DEGREE_CONFERRED, None),
    ("withdrawal_dte", EventKind.WITHDRAWAL, None),
]


@dataclass
class EventExtraction:
    events: pd.DataFrame
    unresolved_events: int = 0
    null_date_events: int = 0


def require_columns(df: pd.DataFrame, columns: List[str], table: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{table} is missing required columns: {missing}")


def clean_code(value) -> Optional[str]:
    """Strip a code value; blanks and nulls become None."""

    if value is None or (isinstance(value, float) and pd.isna(value)) or value is pd.NA:
        return None
    text_value = str(value).strip()
    return text_value or None


def qualifying_activity_mask(
    course_history: pd.DataFrame, config: EngineConfig, hours_column: str = "credit_hrs"
) -> pd.Series:
    """Rows that count as real enrollment: not dropped, not transfer, with positive ``hours_column``."""

    status = course_history["transaction_sts"].map(clean_code)
    grade = course_history["grade_cde"].map(clean_code)
    yr = course_history["yr_cde"].map(clean_code)
    trm = course_history["trm_cde"].map(clean_code)
    credit = pd.to_numeric(course_history[hours_column], errors="coerce")
    return (
        (status != config.dropped_status)
        & ~grade.isin(config.transfer_grades)
        & (credit > 0)
        & (trm != config.transfer_term_code)
        & (yr != config.transfer_year_code)
    )


def summarize_entity_activity(
    course_history: pd.DataFrame, calendar: PeriodCalendar, config: EngineConfig
) -> pd.DataFrame:
    """
    Per-student facts evaluated once across all course activity.

    Columns: first_active_period, last_active_period, is_transfer, is_active,
    has_qualifying_activity, has_enrollment_activity (attempted hours instead
    of credit hours, any calendar key). Indexed by id_num.
    """

    require_columns(course_history, COURSE_HISTORY_COLUMNS, "course_history")
    df = course_history.copy()
    df["id_num"] = df["id_num"].map(clean_code)
    df = df.dropna(subset=["id_num"])
    yr = df["yr_cde"].map(clean_code)
    trm = df["trm_cde"].map(clean_code)
    df["period_code"] = calendar.assign_keys(yr, trm)

    qualifying = df[qualifying_activity_mask(df, config)].dropna(subset=["period_code"])
    bounds = qualifying.groupby("id_num")["period_code"].agg(["min", "max"])

    transfer_rows = df[(yr == config.transfer_year_code) | (trm == config.transfer_term_code)]

    status = df["transaction_sts"].map(clean_code)
    credit = pd.to_numeric(df["credit_hrs"], errors="coerce")
    active_keys = set(config.active_calendar_keys)
    in_active_window = pd.Series(
        [(y, t) in active_keys for y, t in zip(yr, trm)], index=df.index, dtype=bool
    )
    active_rows = df[(status != config.dropped_status) & (credit > 0) & in_active_window]

    ids = pd.Index(sorted(df["id_num"].unique()), name="id_num")
    summary = pd.DataFrame(index=ids)
    summary["first_active_period"] = bounds["min"].reindex(ids).astype("Int64")
    summary["last_active_period"] = bounds["max"].reindex(ids).astype("Int64")
    summary["is_transfer"] = ids.isin(transfer_rows["id_num"].unique())
    summary["is_active"] = ids.isin(active_rows["id_num"].unique())
    summary["has_qualifying_activity"] = summary["first_active_period"].notna()
    enrollment_hours = "hrs_attempted" if "hrs_attempted" in df.columns else "credit_hrs"
    enrolled = df[qualifying_activity_mask(df, config, enrollment_hours)]
    summary["has_enrollment_activity"] = ids.isin(enrolled["id_num"].unique())
    return summary


def extract_lifecycle_events(
    degree_history: pd.DataFrame,
    course_history: pd.DataFrame,
    calendar: PeriodCalendar,
    config: Optional[EngineConfig] = None,
    activity_summary: Optional[pd.DataFrame] = None,
) -> EventExtraction:
    """
    Emit one event per populated milestone date plus first/last active events.

    Events whose date falls outside every calendar interval are dropped and
    counted in ``unresolved_events``.
    """

    config = config or EngineConfig()
    if activity_summary is None:
        activity_summary = summarize_entity_activity(course_history, calendar, config)

    milestones, null_dates = _milestone_events(degree_history)
    if null_dates:
        logger.warning("Dropped %d milestone dates that could not be parsed", null_dates)
    frames = [milestones, _active_events(activity_summary, calendar)]
    frames = [f for f in frames if not f.empty]
    if frames:
        events = pd.concat(frames, ignore_index=True)
    else:
        events = pd.DataFrame(columns=EVENT_COLUMNS[:-1])

    events = events.drop_duplicates(subset=EVENT_COLUMNS[:-1]).reset_index(drop=True)
    events["period_code"] = calendar.assign_dates(events["event_date"])

    unresolved = int(events["period_code"].isna().sum())
    if unresolved:
        logger.warning("Dropped %d lifecycle events dated outside the period calendar", unresolved)
    events = events.dropna(subset=["period_code"])
    events = _order_events(events)
    return EventExtraction(
        events=events[EVENT_COLUMNS], unresolved_events=unresolved, null_date_events=null_dates
    )


def iter_lifecycle_events(events: pd.DataFrame) -> Iterator[LifecycleEvent]:
    for row in events.itertuples(index=False):
        yield LifecycleEvent(
            id_num=row.id_num,
            event_date=row.event_date.date(),
            event_kind=row.event_kind,
            reason_code=clean_code(row.reason_code),
            major_1=clean_code(row.major_1),
            major_2=clean_code(row.major_2),
            concentration_1=clean_code(row.concentration_1),
            degr_cde=clean_code(row.degr_cde),
            div_cde=clean_code(row.div_cde),
            period_code=None if pd.isna(row.period_code) else int(row.period_code),
        )


def _milestone_events(degree_history: pd.DataFrame) -> Tuple[pd.DataFrame, int]:
    require_columns(degree_history, DEGREE_HISTORY_COLUMNS, "degree_history")
    df = degree_history.copy()
    df["id_num"] = df["id_num"].map(clean_code)
    df = df.dropna(subset=["id_num"])
    for column in DEGREE_CONTEXT_COLUMNS:
        df[column] = df[column].map(clean_code) if column in df.columns else None

    frames = []
    null_dates = 0
    for date_column, kind, reason_column in MILESTONE_COLUMNS:
        if date_column not in df.columns:
            continue
        dates = pd.to_datetime(df[date_column], errors="coerce")
        null_dates += int((df[date_column].map(clean_code).notna() & dates.isna()).sum())
        subset = df[dates.notna()]
        if subset.empty:
            continue
        reasons = (
            subset[reason_column].map(clean_code)
            if reason_column and reason_column in subset.columns
            else pd.Series(None, index=subset.index, dtype=object)
        )
        frames.append(
            pd.DataFrame(
                {
                    "id_num": subset["id_num"],
                    "event_date": dates[dates.notna()],
                    "event_kind": kind,
                    "reason_code": reasons,
                    **{column: subset[column] for column in DEGREE_CONTEXT_COLUMNS},
                }
            )
        )
    if not frames:
        return pd.DataFrame(columns=EVENT_COLUMNS[:-1]), null_dates
    return pd.concat(frames, ignore_index=True), null_dates


def _active_events(activity_summary: pd.DataFrame, calendar: PeriodCalendar) -> pd.DataFrame:
    rows = []
    for id_num, summary in activity_summary.iterrows():
        for column, kind in (
            ("first_active_period", EventKind.FIRST_ACTIVE),
            ("last_active_period", EventKind.LAST_ACTIVE),
        ):
            code = summary[column]
            if pd.isna(code):
                continue
            period = calendar.get(int(code))
            rows.append(
                {
                    "id_num": id_num,
                    "event_date": pd.Timestamp(period.start_date),
                    "event_kind": kind,
                    "reason_code": None,
                    **{column_name: None for column_name in DEGREE_CONTEXT_COLUMNS},
                }
            )
    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS[:-1])
    return pd.DataFrame(rows)


def _order_events(events: pd.DataFrame) -> pd.DataFrame:
    kind_rank = {kind: idx for idx, kind in enumerate(EventKind.ORDER)}
    ordered = events.assign(_kind_rank=events["event_kind"].map(kind_rank))
    ordered = ordered.sort_values(["id_num", "period_code", "event_date", "_kind_rank"], kind="mergesort")
    return ordered.drop(columns=["_kind_rank"]).reset_index(drop=True)
