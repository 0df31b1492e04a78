# ABOUTME: Wires calendar, events, aggregation, classification, mapping, and sequencing.
# ABOUTME: Loads input tables from disk and reports data-loss counts for each run.

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .aggregation import aggregate_period_records
from .carry_forward import carry_forward
from .classification import classify_period_records
from .config import EngineConfig
from .events import EventExtraction, clean_code, extract_lifecycle_events, summarize_entity_activity
from .periods import PeriodCalendar, build_period_calendar
from .programs import ProgramDictionary, build_major_degrees, map_programs
from .sequencer import build_identity_map, sequence_output

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("term_definitions", "course_history", "degree_history")
OPTIONAL_TABLES = (
    "candidacy",
    "major_definitions",
    "program_map_active",
    "program_map_inactive",
    "identity_map",
    "population",
)


@dataclass
class TimelineInputs:
    """Immutable snapshot of every source table the engine reads."""

    term_definitions: pd.DataFrame
    course_history: pd.DataFrame
    degree_history: pd.DataFrame
    candidacy: Optional[pd.DataFrame] = None
    major_definitions: Optional[pd.DataFrame] = None
    program_map_active: Optional[pd.DataFrame] = None
    program_map_inactive: Optional[pd.DataFrame] = None
    identity_map: Optional[pd.DataFrame] = None
    population: Optional[pd.DataFrame] = None


@dataclass
class RunReport:
    students: int = 0
    period_records: int = 0
    output_records: int = 0
    forecast_records: int = 0
    unresolved_events: int = 0
    null_date_events: int = 0
    unknown_majors: int = 0
    unresolved_program_slots: int = 0
    dropped_majors: int = 0
    missing_identities: int = 0
    period_collisions: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class TimelineResult:
    output: pd.DataFrame
    period_records: pd.DataFrame
    calendar: PeriodCalendar
    events: pd.DataFrame
    report: RunReport = field(default_factory=RunReport)


def load_inputs(input_dir: Path) -> TimelineInputs:
    """Read ``<table>.csv`` files from a directory; optional tables may be absent."""

    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise ValueError(f"Input directory {input_dir} does not exist.")

    tables: Dict[str, Optional[pd.DataFrame]] = {}
    for name in REQUIRED_TABLES:
        path = input_dir / f"{name}.csv"
        if not path.exists():
            raise ValueError(f"Missing required input table {path}")
        tables[name] = pd.read_csv(path, dtype=str)
    for name in OPTIONAL_TABLES:
        path = input_dir / f"{name}.csv"
        tables[name] = pd.read_csv(path, dtype=str) if path.exists() else None
    return TimelineInputs(**tables)


def build_timeline(inputs: TimelineInputs, config: Optional[EngineConfig] = None) -> TimelineResult:
    """Run the full snapshot transform; either returns every record or raises."""

    config = config or EngineConfig()
    calendar = build_period_calendar(inputs.term_definitions, config)
    activity_summary = summarize_entity_activity(inputs.course_history, calendar, config)
    extraction: EventExtraction = extract_lifecycle_events(
        inputs.degree_history,
        inputs.course_history,
        calendar,
        config,
        activity_summary=activity_summary,
    )
    events = _restrict_population(extraction.events, activity_summary, inputs.population, config)

    records = aggregate_period_records(events, inputs.course_history, calendar, inputs.candidacy, config)
    classified = classify_period_records(records, activity_summary, config)

    mapping = map_programs(
        classified,
        build_major_degrees(inputs.major_definitions, config),
        ProgramDictionary.from_frame(inputs.program_map_active, "program_map_active"),
        ProgramDictionary.from_frame(inputs.program_map_inactive, "program_map_inactive"),
        config,
    )
    mapped = classified.merge(
        mapping.assignments, on=["id_num", "period_code"], how="left", validate="one_to_one"
    )
    normalized = carry_forward(mapped, window=config.carry_forward_window)

    sequenced = sequence_output(normalized, build_identity_map(inputs.identity_map), config, calendar)
    output = sequenced.records

    report = RunReport(
        students=int(normalized["id_num"].nunique()) if not normalized.empty else 0,
        period_records=len(normalized),
        output_records=len(output),
        forecast_records=int((output["view"] == 2).sum()) if not output.empty else 0,
        unresolved_events=extraction.unresolved_events,
        null_date_events=extraction.null_date_events,
        unknown_majors=mapping.unknown_majors,
        unresolved_program_slots=mapping.unresolved_slots,
        dropped_majors=mapping.dropped_majors,
        missing_identities=sequenced.missing_identities,
        period_collisions=sequenced.collisions,
    )
    logger.info(
        "Synthesized %d output records for %d students (%d events outside the calendar)",
        report.output_records,
        report.students,
        report.unresolved_events,
    )
    return TimelineResult(
        output=output,
        period_records=normalized,
        calendar=calendar,
        events=events,
        report=report,
    )


def _restrict_population(
    events: pd.DataFrame,
    activity_summary: pd.DataFrame,
    population: Optional[pd.DataFrame],
    config: EngineConfig,
) -> pd.DataFrame:
    keep = pd.Series(True, index=events.index)
    if config.require_enrollment_activity:
        enrolled = activity_summary.index[activity_summary["has_enrollment_activity"]]
        keep &= events["id_num"].isin(enrolled)
    if population is not None:
        ids = {clean_code(v) for v in population["id_num"]} - {None}
        keep &= events["id_num"].isin(ids)
    return events[keep].reset_index(drop=True)
