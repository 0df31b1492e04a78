# ABOUTME: Builds the continuous period calendar from raw term definitions.
# ABOUTME: Closes gaps between terms so every later date resolves to exactly one period.

from __future__ import annotations

import bisect
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import EngineConfig
from .schemas import Period

logger = logging.getLogger(__name__)

TERM_DEFINITION_COLUMNS = ["yr_cde", "trm_cde", "trm_begin_dte"]


def period_code_for(start: date) -> int:
    """Derive the YYYYMM-style period code from a term start date."""

    return start.year * 100 + start.month


class PeriodCalendar:
    """Ordered, gap-filled list of periods with date and calendar-key lookups."""

    def __init__(self, periods: Sequence[Period]):
        self.periods: List[Period] = sorted(periods, key=lambda p: p.start_date)
        self._starts = [p.start_date for p in self.periods]
        self._codes = [p.code for p in self.periods]
        self._by_code: Dict[int, Period] = {p.code: p for p in self.periods}
        self._by_key: Dict[Tuple[str, str], int] = {}
        for period in self.periods:
            for key in period.calendar_keys:
                self._by_key[key] = period.code

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self):
        return iter(self.periods)

    @property
    def codes(self) -> List[int]:
        return list(self._codes)

    def get(self, code: int) -> Optional[Period]:
        return self._by_code.get(code)

    def period_for_date(self, value: Optional[date]) -> Optional[int]:
        if value is None or not self.periods:
            return None
        idx = bisect.bisect_right(self._starts, value) - 1
        if idx < 0:
            return None
        return self._codes[idx]

    def period_for_key(self, yr_cde, trm_cde) -> Optional[int]:
        return self._by_key.get((_clean_key(yr_cde), _clean_key(trm_cde)))

    def next_code(self, code: int) -> Optional[int]:
        idx = bisect.bisect_right(self._codes, code)
        if idx >= len(self._codes):
            return None
        return self._codes[idx]

    def assign_dates(self, dates: pd.Series) -> pd.Series:
        """Vectorized date → period code; dates before the first period map to <NA>."""

        if not self.periods:
            return pd.Series(pd.NA, index=dates.index, dtype="Int64")
        starts = pd.to_datetime(pd.Series(self._starts)).to_numpy(dtype="datetime64[ns]")
        values = pd.to_datetime(dates, errors="coerce")
        positions = np.searchsorted(starts, values.to_numpy(dtype="datetime64[ns]"), side="right") - 1
        codes = np.asarray(self._codes, dtype="int64")
        result = pd.Series(pd.NA, index=dates.index, dtype="Int64")
        matched = (positions >= 0) & values.notna().to_numpy()
        result[matched] = codes[positions[matched]]
        return result

    def assign_keys(self, yr_codes: pd.Series, trm_codes: pd.Series) -> pd.Series:
        codes = [self.period_for_key(yr, trm) for yr, trm in zip(yr_codes, trm_codes)]
        return pd.Series(codes, index=yr_codes.index, dtype="Int64")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "period_code": [p.code for p in self.periods],
                "start_date": [p.start_date for p in self.periods],
                "nominal_end_date": [p.nominal_end_date for p in self.periods],
                "extended_end_date": [p.extended_end_date for p in self.periods],
                "calendar_keys": [
                    ", ".join(f"{yr}/{trm}" for yr, trm in p.calendar_keys) for p in self.periods
                ],
            }
        )


def build_period_calendar(term_definitions: pd.DataFrame, config: Optional[EngineConfig] = None) -> PeriodCalendar:
    """
    Normalize raw term definitions into non-overlapping, gap-filled periods.

    Each period's extended end is the day before the next period starts; the
    last period stays open-ended. Placeholder year codes are ignored, as are
    rows without a start date.
    """

    config = config or EngineConfig()
    missing = [c for c in TERM_DEFINITION_COLUMNS if c not in term_definitions.columns]
    if missing:
        raise ValueError(f"term_definitions is missing required columns: {missing}")

    df = term_definitions.copy()
    df["yr_cde"] = df["yr_cde"].map(_clean_key)
    df["trm_cde"] = df["trm_cde"].map(_clean_key)
    df = df[~df["yr_cde"].isin(config.excluded_year_codes)]
    df["trm_begin_dte"] = pd.to_datetime(df["trm_begin_dte"], errors="coerce")
    if "trm_end_dte" in df.columns:
        df["trm_end_dte"] = pd.to_datetime(df["trm_end_dte"], errors="coerce")
    else:
        df["trm_end_dte"] = pd.NaT
    skipped = int(df["trm_begin_dte"].isna().sum())
    if skipped:
        logger.warning("Skipping %d term definitions without a start date", skipped)
    df = df.dropna(subset=["trm_begin_dte"])
    df = df.sort_values(["trm_begin_dte", "yr_cde", "trm_cde"], kind="mergesort")

    grouped = []
    for start, rows in df.groupby("trm_begin_dte", sort=True):
        keys = tuple(zip(rows["yr_cde"], rows["trm_cde"]))
        ends = rows["trm_end_dte"].dropna()
        nominal_end = ends.max().date() if not ends.empty else None
        grouped.append((start.date(), nominal_end, keys))

    periods = _extend_periods(grouped)
    codes = [p.code for p in periods]
    if len(set(codes)) != len(codes):
        logger.warning("Several term start dates share one period code; later terms shadow earlier ones")
    logger.debug("Built calendar with %d periods", len(periods))
    return PeriodCalendar(periods)


def _extend_periods(grouped: Iterable[Tuple[date, Optional[date], Tuple[Tuple[str, str], ...]]]) -> List[Period]:
    rows = list(grouped)
    periods: List[Period] = []
    for idx, (start, nominal_end, keys) in enumerate(rows):
        extended_end = rows[idx + 1][0] - timedelta(days=1) if idx + 1 < len(rows) else None
        periods.append(
            Period(
                code=period_code_for(start),
                start_date=start,
                nominal_end_date=nominal_end,
                extended_end_date=extended_end,
                calendar_keys=keys,
            )
        )
    return periods


def _clean_key(value) -> str:
    if value is None or value is pd.NA or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()
