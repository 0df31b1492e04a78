# ABOUTME: Tests the gap-filled period calendar builder.
# ABOUTME: Ensures every date after the first start lands in exactly one period.

from datetime import date, timedelta

import pandas as pd
import pytest

from src.term_timeline.config import EngineConfig
from src.term_timeline.periods import build_period_calendar, period_code_for


def test_period_codes_are_ordered_and_skip_placeholder_years(calendar):
    assert calendar.codes == [202308, 202401, 202405, 202409, 202501, 202506, 202508]


def test_extended_end_is_day_before_next_start(calendar):
    spring = calendar.get(202401)
    assert spring.nominal_end_date == date(2024, 5, 10)
    assert spring.extended_end_date == date(2024, 5, 19)
    assert calendar.get(202508).extended_end_date is None


def test_gap_between_terms_resolves_to_previous_period(calendar):
    assert calendar.period_for_date(date(2024, 5, 15)) == 202401
    assert calendar.period_for_date(date(2024, 5, 20)) == 202405
    assert calendar.period_for_date(date(2023, 1, 1)) is None
    assert calendar.period_for_date(date(2031, 1, 1)) == 202508


def test_every_date_falls_in_exactly_one_period(calendar):
    day = date(2023, 8, 28)
    while day <= date(2026, 1, 31):
        matches = [p.code for p in calendar if p.contains(day)]
        assert len(matches) == 1, day
        assert matches[0] == calendar.period_for_date(day)
        day += timedelta(days=1)


def test_calendar_key_and_next_code_lookups(calendar):
    assert calendar.period_for_key("2425", "FA") == 202409
    assert calendar.period_for_key(" 2425 ", "SP ") == 202501
    assert calendar.period_for_key("ZZZZ", "ZZ") is None
    assert calendar.next_code(202409) == 202501
    assert calendar.next_code(202508) is None


def test_assign_dates_vectorized(calendar):
    dates = pd.Series(["2024-09-10", None, "1990-01-01", "2025-06-01"])
    codes = calendar.assign_dates(dates)
    assert codes.iloc[0] == 202409
    assert pd.isna(codes.iloc[1])
    assert pd.isna(codes.iloc[2])
    assert codes.iloc[3] == 202501


def test_shared_start_date_collapses_to_one_period():
    terms = pd.DataFrame(
        {
            "yr_cde": ["2425", "2425", "2425"],
            "trm_cde": ["FA", "F2", "SP"],
            "trm_begin_dte": ["2024-09-03", "2024-09-03", "2025-01-21"],
        }
    )
    calendar = build_period_calendar(terms)
    assert calendar.codes == [202409, 202501]
    assert calendar.period_for_key("2425", "F2") == 202409
    assert calendar.get(202409).nominal_end_date is None


def test_custom_placeholder_years_are_excluded(term_definitions):
    calendar = build_period_calendar(term_definitions, EngineConfig(excluded_year_codes=("ZZZZ", "2526")))
    assert 202508 not in calendar.codes


def test_missing_columns_raise():
    with pytest.raises(ValueError, match="trm_begin_dte"):
        build_period_calendar(pd.DataFrame({"yr_cde": ["2425"], "trm_cde": ["FA"]}))


def test_period_code_for_uses_year_and_month():
    assert period_code_for(date(2025, 6, 2)) == 202506
