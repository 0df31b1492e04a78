# ABOUTME: Tests the status classification decision tables and ordered scan.
# ABOUTME: Covers load fallback, student-type state, enrollment status, and level borrowing.

import math

import pandas as pd
import pytest

from src.term_timeline.classification import (
    LEVEL_UNKNOWN,
    StatusContext,
    classify_period_records,
    enrollment_status,
    initial_student_type,
    level_code,
    load_indicator,
    student_type,
)
from src.term_timeline.config import EngineConfig
from src.term_timeline.schemas import EventKind

NAN = math.nan


@pytest.mark.parametrize(
    "hours, neighbor, flag, expected",
    [
        (15, None, None, "F"),
        (12, None, None, "F"),
        (6, 20, "F", "P"),
        (None, 12, None, "F"),
        (NAN, 3, "F", "P"),
        (None, None, "P", "P"),
        (None, 0, "X", "F"),
        (None, None, None, "F"),
        (0, 20, "P", "P"),
        (0, 20, None, "F"),
    ],
)
def test_load_indicator(hours, neighbor, flag, expected):
    assert load_indicator(hours, neighbor, flag) == expected


@pytest.mark.parametrize(
    "level, degrees, transfer, expected",
    [
        (2, ["V"], False, "9"),
        (0, ["NDA"], True, "9"),
        (1, ["C", "BS"], False, "3"),
        (2, ["V", "A"], False, "3"),
        (3, ["BA"], False, "3"),
        (3, ["BA"], True, "2"),
        (None, [], False, "3"),
    ],
)
def test_initial_student_type(level, degrees, transfer, expected):
    assert initial_student_type(level, degrees, transfer) == expected


def test_student_type_transitions():
    assert student_type("9", None, False) == "9"
    assert student_type("3", "9", True) == "3"
    assert student_type("9", "9", False) == "C"
    assert student_type("3", "3", False) == "A"
    assert student_type("9", "2", False) == "A"


def _context(period, kinds, is_last=False, count_row=3):
    return StatusContext(
        period_code=period,
        event_kinds=kinds,
        is_last_period=is_last,
        count_row=count_row,
        current_period=202501,
        upcoming_periods=(202501, 202506),
    )


@pytest.mark.parametrize(
    "context, expected",
    [
        (_context(202308, [EventKind.DEGREE_CONFERRED], count_row=1), "AS"),
        (_context(202409, [EventKind.ENTRY], is_last=True), "IS"),
        (_context(202401, [EventKind.WITHDRAWAL, EventKind.ENTRY]), "IS"),
        (_context(202506, [EventKind.LAST_ACTIVE]), "AS"),
        (_context(202508, [EventKind.EXIT]), "AS"),
        (_context(202409, [EventKind.FIRST_ACTIVE]), "AS"),
        (_context(202409, [EventKind.DEGREE_CONFERRED]), "GR"),
        (_context(202508, [EventKind.LAST_ACTIVE]), None),
    ],
)
def test_enrollment_status_rules(context, expected):
    assert enrollment_status(context) == expected


def test_level_code_uses_own_degree_level():
    assert level_code({"highest_degree_level": 3}) == "UG"
    assert level_code({"highest_degree_level": -1}) == "XX"
    assert level_code({"highest_degree_level": 0, "event_kinds": [EventKind.LAST_ACTIVE]}) is None


def test_level_code_fallbacks():
    both = {"highest_degree_level": None, "event_kinds": [EventKind.FIRST_ACTIVE, EventKind.LAST_ACTIVE], "credit_type_rank": 2}
    assert level_code(both, previous={"highest_degree_level": 3}) == "VO"

    last_only = {"highest_degree_level": None, "event_kinds": [EventKind.LAST_ACTIVE], "credit_type_rank": 1}
    assert level_code(last_only, previous={"highest_degree_level": 3}) == "UG"
    assert level_code(last_only, previous={"highest_degree_level": None}) == "CE"
    assert level_code({**last_only, "credit_type_rank": None}) == LEVEL_UNKNOWN

    first_only = {"highest_degree_level": None, "event_kinds": [EventKind.FIRST_ACTIVE], "credit_type_rank": 3}
    entry_before = {"highest_degree_level": 2, "event_kinds": [EventKind.ENTRY]}
    entry_after = {"highest_degree_level": 3, "event_kinds": [EventKind.ENTRY]}
    plain = {"highest_degree_level": 1, "event_kinds": [EventKind.EXIT]}
    assert level_code(first_only, previous=entry_before, following=entry_after) == "VO"
    assert level_code(first_only, previous=plain, following=entry_after) == "UG"
    assert level_code(first_only, previous=plain, following=plain) == "UG"
    assert level_code({**first_only, "credit_type_rank": None}) == LEVEL_UNKNOWN

    assert level_code({"highest_degree_level": None, "event_kinds": [EventKind.EXIT]}) is None


def _records():
    rows = [
        ("S1", 202401, [EventKind.FIRST_ACTIVE, EventKind.ENTRY], ["BA"], 3, 3, 15.0, None, 3),
        ("S1", 202409, [EventKind.EXIT], ["BA"], 3, 3, 6.0, None, 3),
        ("S1", 202501, [EventKind.LAST_ACTIVE], [], None, 3, NAN, None, 3),
        ("S2", 202308, [EventKind.FIRST_ACTIVE], ["V"], 2, 2, 3.0, None, 3),
        ("S2", 202401, [EventKind.WITHDRAWAL], ["V"], 2, None, NAN, None, 3),
        ("S2", 202409, [EventKind.ENTRY], ["BS"], 3, None, 12.0, "P", 3),
    ]
    df = pd.DataFrame(
        rows,
        columns=["id_num", "period_code", "event_kinds", "degree_codes", "highest_degree_level",
                 "credit_type_rank", "attempted_hours", "load_flag", "count_row"],
    )
    df["highest_degree_level"] = df["highest_degree_level"].astype("Int64")
    df["credit_type_rank"] = df["credit_type_rank"].astype("Int64")
    df["major_candidates"] = [[] for _ in range(len(df))]
    return df


def _summary():
    return pd.DataFrame(
        {
            "first_active_period": pd.array([202401, 202308], dtype="Int64"),
            "last_active_period": pd.array([202501, 202308], dtype="Int64"),
            "is_transfer": [False, True],
            "is_active": [True, False],
            "has_qualifying_activity": [True, True],
        },
        index=pd.Index(["S1", "S2"], name="id_num"),
    )


def test_classify_degree_seeking_student():
    classified = classify_period_records(_records().iloc[::-1], _summary(), EngineConfig())
    s1 = classified[classified["id_num"] == "S1"].reset_index(drop=True)

    assert s1["period_code"].tolist() == [202401, 202409, 202501]
    assert s1["row_num"].tolist() == [1, 2, 3]
    assert s1["ft_pt_ind"].tolist() == ["F", "P", "P"]
    assert s1["ini_styp"].tolist() == ["3", "3", "3"]
    assert s1["styp_code"].tolist() == ["3", "A", "A"]
    assert s1["stst_code"].tolist() == ["AS", "AS", "AS"]
    assert s1["levl_code"].tolist() == ["UG", "UG", "UG"]
    assert s1["is_first_period"].tolist() == [True, False, False]
    assert s1["history_group"].tolist() == [1, 1, 1]
    assert s1["term_code_admit"].tolist() == [202401, 202401, 202401]
    assert s1["full_part_ind"].tolist() == ["F", "F", "F"]
    assert s1["is_active"].all()


def test_classify_restarted_non_degree_student():
    classified = classify_period_records(_records(), _summary(), EngineConfig())
    s2 = classified[classified["id_num"] == "S2"].reset_index(drop=True)

    assert s2["ft_pt_ind"].tolist() == ["P", "P", "F"]
    assert s2["ini_styp"].tolist() == ["9", "9", "2"]
    assert s2["styp_code"].tolist() == ["9", "C", "2"]
    assert s2["stst_code"].tolist() == ["AS", "IS", "IS"]
    assert s2["levl_code"].tolist() == ["VO", "VO", "UG"]
    assert s2["history_group"].tolist() == [1, 1, 2]
    assert s2["term_code_admit"].tolist() == [202308, 202308, 202409]
    assert s2["full_part_ind"].tolist() == ["P", "P", "F"]
    assert s2["is_transfer"].all()


def test_periods_before_first_history_start_have_no_admit_period():
    records = _records()
    records = records[records["id_num"] == "S1"].copy()
    records["event_kinds"] = pd.Series(
        [[EventKind.EXIT], [EventKind.ENTRY], [EventKind.LAST_ACTIVE]], index=records.index
    )
    classified = classify_period_records(records, _summary())
    assert pd.isna(classified.loc[0, "term_code_admit"])
    assert classified["history_group"].tolist() == [0, 1, 1]
    assert classified.loc[1, "term_code_admit"] == 202409


def test_classify_empty_records():
    classified = classify_period_records(_records().iloc[0:0], _summary())
    assert classified.empty
    assert "styp_code" in classified.columns


def test_start_period_borrowing_adult_education_level_is_unknown():
    first_only = {"highest_degree_level": None, "event_kinds": [EventKind.FIRST_ACTIVE], "credit_type_rank": 3}
    adult_entry = {"highest_degree_level": -1, "event_kinds": [EventKind.ENTRY]}
    assert level_code(first_only, previous=adult_entry) == LEVEL_UNKNOWN
    assert level_code({"highest_degree_level": -1}) == "XX"
