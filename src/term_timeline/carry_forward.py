# ABOUTME: Fills gaps in program and level fields from each student's earlier periods.
# ABOUTME: Applies a last-observed-value forward fill bounded to a fixed lookback window.

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

CARRY_FORWARD_COLUMNS = [
    "levl_code",
    "coll_code_1",
    "degc_code_1",
    "majr_code_1",
    "majr_code_conc_1",
    "program_1",
    "coll_code_2",
    "degc_code_2",
    "majr_code_2",
    "program_2",
]


def carry_forward(
    df: pd.DataFrame,
    columns: Sequence[str] = tuple(CARRY_FORWARD_COLUMNS),
    window: Optional[int] = 6,
    entity_column: str = "id_num",
    order_column: str = "period_code",
) -> pd.DataFrame:
    """
    Replace nulls with the nearest earlier non-null value of the same student.

    ``window`` caps how many consecutive nulls one value fills; ``None`` fills
    without bound. A bounded fill is not idempotent: on a run of more than
    ``window`` nulls, the filled values fill the next ``window`` nulls when the
    output is passed through again. Rows come back ordered by student and
    period, and nulls in the filled columns are always ``None``.
    """

    ordered = df.sort_values([entity_column, order_column], kind="mergesort").reset_index(drop=True)
    targets = [c for c in columns if c in ordered.columns]
    if ordered.empty or not targets or window == 0:
        return ordered

    filled = ordered.groupby(entity_column, sort=False)[targets].ffill(limit=window)
    out = ordered.copy()
    for column in targets:
        out[column] = pd.Series(
            [None if pd.isna(value) else value for value in filled[column]], index=out.index, dtype=object
        )
    return out
