# ABOUTME: Collapses lifecycle events into one summary row per student and period.
# ABOUTME: Attaches degree-level, credit-type, attempted-hour, and candidacy signals.

from __future__ import annotations

import logging
from typing import List, Optional

import pandas as pd

from .config import EngineConfig
from .events import clean_code, qualifying_activity_mask, require_columns
from .periods import PeriodCalendar
from .schemas import MajorCandidate

logger = logging.getLogger(__name__)

UNDERGRADUATE_DEGREES = {"A", "AGS", "BA", "BS", "BSW", "S"}
CREDIT_TYPE_RANKS = {"CR": 3, "VO": 2, "CE": 1}

PERIOD_RECORD_COLUMNS = [
    "id_num",
    "period_code",
    "event_kinds",
    "reason_codes",
    "major_candidates",
    "degree_codes",
    "highest_degree_level",
    "credit_type_rank",
    "attempted_hours",
    "load_flag",
    "candidacy_type",
    "count_row",
]


def degree_level(div_cde: Optional[str], degr_cde: Optional[str]) -> Optional[int]:
    """Rank a degree-history row: 3 undergraduate, 2 vocational, 1 certificate, 0 non-degree, -1 adult ed."""

    if div_cde == "U":
        return 3
    if degr_cde in UNDERGRADUATE_DEGREES:
        return 3
    if degr_cde == "V":
        return 2
    if degr_cde == "C":
        return 1
    if degr_cde == "NDA":
        return 0
    if div_cde == "A":
        return -1
    return None


def credit_type_rank(credit_type_cde: Optional[str]) -> Optional[int]:
    return CREDIT_TYPE_RANKS.get(credit_type_cde)


def aggregate_period_records(
    events: pd.DataFrame,
    course_history: pd.DataFrame,
    calendar: PeriodCalendar,
    candidacy: Optional[pd.DataFrame] = None,
    config: Optional[EngineConfig] = None,
) -> pd.DataFrame:
    """
    Group events by (id_num, period_code) into ordered, multi-valued summaries.

    Event kinds, reasons, majors and degrees keep event order and duplicates.
    Hours, credit-type rank and candidacy load are joined from raw activity.
    """

    config = config or EngineConfig()
    if events.empty:
        return pd.DataFrame(columns=PERIOD_RECORD_COLUMNS)

    df = events.copy()
    df["period_code"] = df["period_code"].astype("int64")
    df["degree_level"] = [degree_level(div, degr) for div, degr in zip(df["div_cde"], df["degr_cde"])]
    df["candidates"] = [
        _event_candidates(m1, m2, conc) for m1, m2, conc in zip(df["major_1"], df["major_2"], df["concentration_1"])
    ]

    grouped = df.groupby(["id_num", "period_code"], sort=True)
    records = grouped.agg(
        event_kinds=("event_kind", list),
        reason_codes=("reason_code", _present_values),
        major_candidates=("candidates", _concat_lists),
        degree_codes=("degr_cde", _present_values),
        highest_degree_level=("degree_level", lambda s: s.dropna().max() if s.notna().any() else None),
    ).reset_index()
    records["highest_degree_level"] = pd.to_numeric(records["highest_degree_level"]).astype("Int64")
    # Periods with events, used for the single-lifetime-period checks.
    event_periods = records.groupby("id_num")["period_code"].transform("size").astype("int64")
    records["count_row"] = event_periods

    activity = _activity_by_period(course_history, calendar, config)
    records = _add_enrolled_periods(records, activity)
    records = records.merge(activity, on=["id_num", "period_code"], how="left", validate="one_to_one")

    load = _candidacy_by_period(candidacy, calendar, config)
    records = records.merge(load, on=["id_num", "period_code"], how="left", validate="one_to_one")

    records["count_row"] = records.groupby("id_num")["count_row"].transform("max").astype("int64")
    records["credit_type_rank"] = records["credit_type_rank"].astype("Int64")
    logger.debug("Aggregated %d period records for %d students", len(records), records["id_num"].nunique())
    return records[PERIOD_RECORD_COLUMNS]


def _add_enrolled_periods(records: pd.DataFrame, activity: pd.DataFrame) -> pd.DataFrame:
    """Add empty records for periods where a student attempted hours but no event landed."""

    attempted = activity[(activity["attempted_hours"] > 0) & activity["id_num"].isin(records["id_num"])]
    keys = attempted[["id_num", "period_code"]].merge(
        records[["id_num", "period_code"]], on=["id_num", "period_code"], how="left", indicator=True
    )
    missing = keys[keys["_merge"] == "left_only"].drop(columns=["_merge"])
    if missing.empty:
        return records

    filler = missing.reset_index(drop=True)
    for column in ("event_kinds", "reason_codes", "major_candidates", "degree_codes"):
        filler[column] = [[] for _ in range(len(filler))]
    filler["highest_degree_level"] = pd.array([pd.NA] * len(filler), dtype="Int64")
    logger.debug("Added %d periods with attempted hours and no lifecycle event", len(filler))
    combined = pd.concat([records, filler], ignore_index=True)
    return combined.sort_values(["id_num", "period_code"], kind="mergesort").reset_index(drop=True)


def _event_candidates(major_1, major_2, concentration) -> List[MajorCandidate]:
    candidates = []
    concentration = clean_code(concentration)
    for slot, major in ((1, major_1), (2, major_2)):
        major = clean_code(major)
        if major:
            candidates.append(MajorCandidate(slot=slot, major_code=major, concentration_code=concentration))
    return candidates


def _present_values(values: pd.Series) -> List[str]:
    return [v for v in (clean_code(value) for value in values) if v]


def _concat_lists(values: pd.Series) -> list:
    out: list = []
    for value in values:
        out.extend(value)
    return out


def _activity_by_period(course_history: pd.DataFrame, calendar: PeriodCalendar, config: EngineConfig) -> pd.DataFrame:
    columns = ["id_num", "period_code", "attempted_hours", "credit_type_rank"]
    if course_history is None or course_history.empty:
        return pd.DataFrame(columns=columns).astype({"period_code": "int64"})

    df = course_history.copy()
    df["id_num"] = df["id_num"].map(clean_code)
    df["period_code"] = calendar.assign_keys(df["yr_cde"].map(clean_code), df["trm_cde"].map(clean_code))
    df = df.dropna(subset=["id_num", "period_code"])
    df["period_code"] = df["period_code"].astype("int64")
    hours_column = "hrs_attempted" if "hrs_attempted" in df.columns else "credit_hrs"
    df["hours"] = pd.to_numeric(df[hours_column], errors="coerce")

    hours = (
        df.groupby(["id_num", "period_code"])["hours"]
        .sum(min_count=1)
        .rename("attempted_hours")
        .reset_index()
    )

    qualifying = df[qualifying_activity_mask(df, config)].copy()
    if "credit_type_cde" in qualifying.columns:
        qualifying["rank"] = qualifying["credit_type_cde"].map(clean_code).map(CREDIT_TYPE_RANKS)
    else:
        qualifying["rank"] = float("nan")
    ranks = (
        qualifying.groupby(["id_num", "period_code"])["rank"]
        .max()
        .rename("credit_type_rank")
        .reset_index()
    )
    return hours.merge(ranks, on=["id_num", "period_code"], how="left")


def _candidacy_by_period(
    candidacy: Optional[pd.DataFrame], calendar: PeriodCalendar, config: EngineConfig
) -> pd.DataFrame:
    columns = ["id_num", "period_code", "load_flag", "candidacy_type"]
    if candidacy is None or candidacy.empty:
        return pd.DataFrame(columns=columns).astype({"period_code": "int64"})

    require_columns(candidacy, ["id_num", "yr_cde", "trm_cde"], "candidacy")
    df = candidacy.copy()
    df["id_num"] = df["id_num"].map(clean_code)
    yr = df["yr_cde"].map(clean_code)
    trm = df["trm_cde"].map(clean_code)
    df = df[~(yr.isin(config.excluded_year_codes) & trm.isin(config.excluded_term_codes))].copy()
    df["period_code"] = calendar.assign_keys(df["yr_cde"].map(clean_code), df["trm_cde"].map(clean_code))
    df = df.dropna(subset=["id_num", "period_code"])
    df["period_code"] = df["period_code"].astype("int64")
    df["load_flag"] = df["load_p_f"].map(clean_code) if "load_p_f" in df.columns else None
    df["candidacy_type"] = df["candidacy_type"].map(clean_code) if "candidacy_type" in df.columns else None

    # Several candidacy rows can share a term; the first populated flag wins.
    return (
        df.groupby(["id_num", "period_code"], sort=False)
        .agg(load_flag=("load_flag", "first"), candidacy_type=("candidacy_type", "first"))
        .reset_index()
    )
