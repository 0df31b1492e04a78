# ABOUTME: Emits the ordered output record set with current and forecast views.
# ABOUTME: Renormalizes summer period codes and pads rows to the target student table.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

import pandas as pd

from .classification import STATUS_ACTIVE, STATUS_INACTIVE
from .config import EngineConfig
from .events import clean_code
from .periods import PeriodCalendar

logger = logging.getLogger(__name__)

CURRENT_VIEW = 1
FORECAST_VIEW = 2
TARGET_PREFIX = "sgbstdn_"

OUTPUT_COLUMNS = [
    "pidm",
    "id_num",
    "term_code_eff",
    "view",
    "stst_code",
    "levl_code",
    "styp_code",
    "term_code_admit",
    "camp_code",
    "full_part_ind",
    "resd_code",
    "coll_code_1",
    "degc_code_1",
    "majr_code_1",
    "majr_code_conc_1",
    "coll_code_2",
    "degc_code_2",
    "majr_code_2",
    "majr_code_conc_2",
    "majr_code_1_2",
    "admt_code",
    "program_1",
    "term_code_ctlg_1",
    "program_2",
    "term_code_ctlg_2",
    "cert_code_1",
    "cert_degc_1",
    "cert_code_2",
    "cert_degc_2",
]

# Column order of the target student table; names absent from OUTPUT_COLUMNS are blank.
TARGET_COLUMNS = [
    "pidm", "term_code_eff", "stst_code", "levl_code", "styp_code", "term_code_matric",
    "term_code_admit", "exp_grad_date", "camp_code", "full_part_ind", "sess_code", "resd_code",
    "coll_code_1", "degc_code_1", "majr_code_1", "majr_code_minr_1", "majr_code_minr_1_2",
    "majr_code_conc_1", "majr_code_conc_1_2", "majr_code_conc_1_3", "coll_code_2", "degc_code_2",
    "majr_code_2", "majr_code_minr_2", "majr_code_minr_2_2", "majr_code_conc_2",
    "majr_code_conc_2_2", "majr_code_conc_2_3", "orsn_code", "prac_code", "advr_pidm",
    "grad_credit_appr_ind", "capl_code", "leav_code", "leav_from_date", "leav_to_date",
    "astd_code", "term_code_astd", "rate_code", "activity_date", "majr_code_1_2", "majr_code_2_2",
    "edlv_code", "incm_code", "admt_code", "emex_code", "aprn_code", "trcn_code", "gain_code",
    "voed_code", "blck_code", "term_code_grad", "acyr_code", "dept_code", "site_code",
    "dept_code_2", "egol_code", "degc_code_dual", "levl_code_dual", "dept_code_dual",
    "coll_code_dual", "majr_code_dual", "bskl_code", "prim_roll_ind", "program_1",
    "term_code_ctlg_1", "dept_code_1_2", "majr_code_conc_121", "majr_code_conc_122",
    "majr_code_conc_123", "secd_roll_ind", "term_code_admit_2", "admt_code_2", "program_2",
    "term_code_ctlg_2", "levl_code_2", "camp_code_2", "dept_code_2_2", "majr_code_conc_221",
    "majr_code_conc_222", "majr_code_conc_223", "curr_rule_1", "cmjr_rule_1_1", "ccon_rule_11_1",
    "ccon_rule_11_2", "ccon_rule_11_3", "cmjr_rule_1_2", "ccon_rule_12_1", "ccon_rule_12_2",
    "ccon_rule_12_3", "cmnr_rule_1_1", "cmnr_rule_1_2", "curr_rule_2", "cmjr_rule_2_1",
    "ccon_rule_21_1", "ccon_rule_21_2", "ccon_rule_21_3", "cmjr_rule_2_2", "ccon_rule_22_1",
    "ccon_rule_22_2", "ccon_rule_22_3", "cmnr_rule_2_1", "cmnr_rule_2_2", "prev_code",
    "term_code_prev", "cast_code", "term_code_cast", "data_origin", "user_id", "scpc_code",
    "surrogate_id", "version", "vpdi_code", "guid",
]


@dataclass
class SequencedOutput:
    records: pd.DataFrame
    collisions: int = 0
    missing_identities: int = 0


def renormalize_period_code(code: Optional[int], summer_marker: int = 6) -> Optional[int]:
    """Fold a summer-session code into the preceding numeric value (202506 → 202505)."""

    if code is None or pd.isna(code):
        return None
    code = int(code)
    return code - 1 if code % 100 == summer_marker else code


def period_sequence(records: pd.DataFrame) -> List[int]:
    """Sorted distinct period codes observed across all students."""

    if records.empty:
        return []
    return sorted(int(code) for code in records["period_code"].dropna().unique())


def next_period(code: int, sequence: Sequence[int]) -> int:
    for candidate in sequence:
        if candidate > code:
            return candidate
    return code


def iter_current_view(rows: Sequence[Mapping], config: EngineConfig) -> Iterator[dict]:
    for row in rows:
        out = _project(row, config)
        out.update(
            term_code_eff=renormalize_period_code(row["period_code"], config.summer_marker),
            view=CURRENT_VIEW,
            stst_code=_value(row.get("stst_code")),
        )
        yield out


def iter_forecast_view(
    rows: Sequence[Mapping],
    sequence: Sequence[int],
    config: EngineConfig,
    last_periods: Optional[Mapping[str, int]] = None,
) -> Iterator[dict]:
    """
    Placeholder next-period rows for students whose history is a single period.

    ``last_periods`` limits the forecast to each student's latest record.
    """

    for row in rows:
        if _value(row.get("count_row")) != 1:
            continue
        if last_periods is not None and last_periods.get(row["id_num"]) != row["period_code"]:
            continue
        forecast = next_period(int(row["period_code"]), sequence)
        out = _project(row, config)
        out.update(
            term_code_eff=renormalize_period_code(forecast, config.summer_marker),
            view=FORECAST_VIEW,
            stst_code=STATUS_INACTIVE if forecast < config.current_period else STATUS_ACTIVE,
        )
        yield out


def sequence_output(
    records: pd.DataFrame,
    identity_map: Optional[Mapping[str, int]] = None,
    config: Optional[EngineConfig] = None,
    calendar: Optional[PeriodCalendar] = None,
) -> SequencedOutput:
    """
    Union the current and forecast views and order them by pidm, period, view.

    Forecast periods come from ``calendar`` when given, otherwise from the
    period codes present in ``records``. Students without an identity mapping
    keep a null pidm and sort last.
    """

    config = config or EngineConfig()
    identity_map = identity_map or {}
    rows = records.to_dict("records")
    sequence = calendar.codes if calendar is not None else period_sequence(records)
    last_periods = (
        {} if records.empty else {k: int(v) for k, v in records.groupby("id_num")["period_code"].max().items()}
    )

    output = pd.DataFrame(
        list(iter_current_view(rows, config)) + list(iter_forecast_view(rows, sequence, config, last_periods)),
        columns=OUTPUT_COLUMNS,
    )
    output["pidm"] = output["id_num"].map(lambda id_num: identity_map.get(id_num)).astype("Int64")
    for column in ("term_code_eff", "term_code_admit", "term_code_ctlg_1", "term_code_ctlg_2"):
        output[column] = pd.to_numeric(output[column]).astype("Int64")
    output = output.sort_values(
        ["pidm", "id_num", "term_code_eff", "view"], kind="mergesort", na_position="last"
    ).reset_index(drop=True)

    current = output[output["view"] == CURRENT_VIEW]
    collisions = int(current.duplicated(subset=["id_num", "term_code_eff"]).sum())
    if collisions:
        logger.warning("%d current-view rows share a renormalized period code with another row", collisions)
    missing = int(output["pidm"].isna().sum())
    if missing:
        logger.warning("%d output rows have no identity mapping; they must be rejected before loading", missing)
    return SequencedOutput(records=output, collisions=collisions, missing_identities=missing)


def build_identity_map(identity_map: Optional[pd.DataFrame]) -> Dict[str, int]:
    if identity_map is None or identity_map.empty:
        return {}
    mapping: Dict[str, int] = {}
    for id_num, pidm in zip(identity_map["id_num"], identity_map["pidm"]):
        key = clean_code(id_num)
        if key is None or pd.isna(pidm):
            continue
        mapping.setdefault(key, int(pidm))
    return mapping


def to_target_schema(output: pd.DataFrame) -> pd.DataFrame:
    """Project onto the target table layout: prefixed names, blank filler columns."""

    target = pd.DataFrame(index=output.index)
    for column in TARGET_COLUMNS:
        target[f"{TARGET_PREFIX}{column}"] = output[column] if column in output.columns else ""
    target["sort"] = output["view"]
    return target


def _project(row: Mapping, config: EngineConfig) -> dict:
    admit = renormalize_period_code(_value(row.get("term_code_admit")), config.summer_marker)
    program_2 = _value(row.get("program_2"))
    return {
        "pidm": None,
        "id_num": row["id_num"],
        "levl_code": _value(row.get("levl_code")),
        "styp_code": _value(row.get("styp_code")),
        "term_code_admit": admit,
        "camp_code": config.campus_code,
        "full_part_ind": _value(row.get("full_part_ind")),
        "resd_code": config.residency_code,
        "coll_code_1": _value(row.get("coll_code_1")),
        "degc_code_1": _value(row.get("degc_code_1")),
        "majr_code_1": _value(row.get("majr_code_1")),
        "majr_code_conc_1": _value(row.get("majr_code_conc_1")),
        "coll_code_2": _value(row.get("coll_code_2")),
        "degc_code_2": _value(row.get("degc_code_2")),
        "majr_code_2": _value(row.get("majr_code_2")),
        "majr_code_conc_2": _value(row.get("majr_code_conc_2")),
        "majr_code_1_2": _value(row.get("majr_code_1_2")),
        "admt_code": config.admission_code,
        "program_1": _value(row.get("program_1")),
        "term_code_ctlg_1": admit,
        "program_2": program_2,
        "term_code_ctlg_2": admit if program_2 is not None else None,
        "cert_code_1": _value(row.get("cert_code_1")),
        "cert_degc_1": _value(row.get("cert_degc_1")),
        "cert_code_2": _value(row.get("cert_code_2")),
        "cert_degc_2": _value(row.get("cert_degc_2")),
    }


def _value(value):
    if value is None or value is pd.NA:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return value
