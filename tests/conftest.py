# ABOUTME: Shares term calendars and snapshot tables across timeline tests.
# ABOUTME: Builds a small multi-student snapshot covering the core scenarios.

from pathlib import Path

import pandas as pd
import pytest

from src.term_timeline.periods import build_period_calendar

TERMS_CSV = """yr_cde,trm_cde,trm_begin_dte,trm_end_dte
ZZZZ,ZZ,1900-01-01,1900-02-01
2324,FA,2023-08-28,2023-12-15
2324,SP,2024-01-16,2024-05-10
2324,SU,2024-05-20,2024-08-02
2425,FA,2024-09-03,2024-12-13
2425,SP,2025-01-21,2025-05-16
2425,SU,2025-06-02,2025-08-01
2526,FA,2025-08-25,2025-12-12
"""

COURSE_HISTORY_CSV = """id_num,yr_cde,trm_cde,transaction_sts,grade_cde,credit_hrs,hrs_attempted,credit_type_cde
E,2425,FA,C,A,15,15,CR
F,2324,SP,C,B,12,12,CR
G,2425,FA,C,A,6,6,CR
H,2425,SP,C,,9,9,CR
I,2425,SU,C,,3,3,CE
"""

DEGREE_HISTORY_CSV = """id_num,entry_dte,exit_dte,exit_reason,dte_degr_conferred,withdrawal_dte,major_1,major_2,concentration_1,degr_cde,div_cde
F,2024-01-20,2024-05-25,TR,,,M1,,,BA,U
G,2024-09-10,,,,1990-01-01,M1,,,BA,U
"""

MAJOR_DEFINITIONS_CSV = """major_cde,degr_cde
M1,BA
M2,BS
CERT1,C
LAR,AA
"""

PROGRAM_MAP_ACTIVE_CSV = """map_code,coll_code,degc_code,majr_code,majr_code_conc,program
BAM1,AS,BA,ENGL,,BA-ENGL
"""

PROGRAM_MAP_INACTIVE_CSV = """map_code,coll_code,degc_code,majr_code,majr_code_conc,program
BA,AS,BA,,,BA-HIST
"""

IDENTITY_MAP_CSV = """id_num,pidm
E,1001
F,1002
G,1003
I,1005
"""


@pytest.fixture
def term_definitions() -> pd.DataFrame:
    from io import StringIO

    return pd.read_csv(StringIO(TERMS_CSV), dtype=str)


@pytest.fixture
def calendar(term_definitions):
    return build_period_calendar(term_definitions)


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    tables = {
        "term_definitions": TERMS_CSV,
        "course_history": COURSE_HISTORY_CSV,
        "degree_history": DEGREE_HISTORY_CSV,
        "major_definitions": MAJOR_DEFINITIONS_CSV,
        "program_map_active": PROGRAM_MAP_ACTIVE_CSV,
        "program_map_inactive": PROGRAM_MAP_INACTIVE_CSV,
        "identity_map": IDENTITY_MAP_CSV,
    }
    for name, data in tables.items():
        (tmp_path / f"{name}.csv").write_text(data.strip() + "\n", encoding="utf-8")
    return tmp_path
