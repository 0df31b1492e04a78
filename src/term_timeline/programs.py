# ABOUTME: Resolves each period's majors into target college/degree/program codes.
# ABOUTME: Separates certificate majors and consults active or historical program maps.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from .config import EngineConfig
from .events import clean_code, require_columns
from .schemas import MajorCandidate, ProgramEntry, ProgramResolution

logger = logging.getLogger(__name__)

CERTIFICATE_DEGREES = {"V", "C"}

PROGRAM_COLUMNS = [
    "coll_code_1",
    "degc_code_1",
    "majr_code_1",
    "majr_code_conc_1",
    "program_1",
    "coll_code_2",
    "degc_code_2",
    "majr_code_2",
    "majr_code_conc_2",
    "program_2",
    "majr_code_1_2",
    "cert_code_1",
    "cert_degc_1",
    "cert_code_2",
    "cert_degc_2",
]
PROGRAM_MAP_COLUMNS = ["map_code", "coll_code", "degc_code", "majr_code", "majr_code_conc", "program"]


class ProgramDictionary:
    """Composite-key lookup into a target program table."""

    def __init__(self, entries: Optional[Mapping[str, ProgramEntry]] = None):
        self._entries: Dict[str, ProgramEntry] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @classmethod
    def from_frame(cls, df: Optional[pd.DataFrame], table: str = "program map") -> "ProgramDictionary":
        if df is None or df.empty:
            return cls()
        require_columns(df, ["map_code"], table)
        entries: Dict[str, ProgramEntry] = {}
        for row in df.to_dict("records"):
            key = clean_code(row.get("map_code"))
            if key is None or key in entries:
                continue
            entries[key] = ProgramEntry(*(clean_code(row.get(column)) for column in PROGRAM_MAP_COLUMNS[1:]))
        return cls(entries)

    def lookup(self, *keys: Optional[str]) -> Optional[ProgramEntry]:
        for key in keys:
            if key and key in self._entries:
                return self._entries[key]
        return None


def build_major_degrees(major_definitions: Optional[pd.DataFrame], config: Optional[EngineConfig] = None) -> Dict[str, str]:
    """Major code → degree code, with configured overrides applied."""

    config = config or EngineConfig()
    degrees: Dict[str, str] = {}
    if major_definitions is not None and not major_definitions.empty:
        require_columns(major_definitions, ["major_cde", "degr_cde"], "major_definitions")
        for major, degree in zip(major_definitions["major_cde"], major_definitions["degr_cde"]):
            major, degree = clean_code(major), clean_code(degree)
            if major and degree:
                degrees.setdefault(major, degree)
    degrees.update(config.major_degree_overrides)
    return degrees


def composite_key(degree_code: Optional[str], major_code: Optional[str], concentration_code: Optional[str]) -> str:
    return f"{degree_code or ''}{major_code or ''}{concentration_code or ''}"


def resolve_slot(
    degree_code: str,
    candidate: MajorCandidate,
    is_active: bool,
    active: ProgramDictionary,
    inactive: ProgramDictionary,
) -> ProgramResolution:
    key = composite_key(degree_code, candidate.major_code, candidate.concentration_code)
    if is_active:
        entry = active.lookup(key)
        if entry is None:
            return ProgramResolution(degree_code=degree_code, source_major=candidate.major_code)
        return ProgramResolution(
            degree_code=degree_code,
            source_major=candidate.major_code,
            coll_code=entry.coll_code,
            degc_code=entry.degc_code,
            majr_code=entry.majr_code,
            majr_code_conc=entry.majr_code_conc,
            program=entry.program,
        )

    # Historical students keep their own major code; the map only supplies college/degree/program.
    entry = inactive.lookup(key, degree_code)
    return ProgramResolution(
        degree_code=degree_code,
        source_major=candidate.major_code,
        coll_code=entry.coll_code if entry else None,
        degc_code=entry.degc_code if entry else None,
        majr_code=(entry.majr_code if entry and entry.majr_code else candidate.major_code),
        majr_code_conc=entry.majr_code_conc if entry else None,
        program=entry.program if entry else None,
    )


@dataclass
class ProgramMapping:
    assignments: pd.DataFrame
    unknown_majors: int = 0
    unresolved_slots: int = 0
    dropped_majors: int = 0


def map_programs(
    records: pd.DataFrame,
    major_degrees: Mapping[str, str],
    active: ProgramDictionary,
    inactive: ProgramDictionary,
    config: Optional[EngineConfig] = None,
) -> ProgramMapping:
    """
    Resolve slot-1/slot-2 program assignments for every classified period.

    ``records`` must carry id_num, period_code, major_candidates, is_active
    and row_num. Returns one assignment row per input row.
    """

    config = config or EngineConfig()
    rows: List[dict] = []
    unknown = unresolved = dropped = 0

    for record in records[["id_num", "period_code", "major_candidates", "is_active", "row_num"]].itertuples(index=False):
        degree_track, certificates, missing = split_candidates(record.major_candidates or (), major_degrees)
        unknown += missing
        if len(degree_track) > 2:
            dropped += len(degree_track) - 2
            logger.debug(
                "Student %s period %s has %d degree majors; keeping the first two",
                record.id_num,
                record.period_code,
                len(degree_track),
            )

        row = {"id_num": record.id_num, "period_code": record.period_code}
        row.update({column: None for column in PROGRAM_COLUMNS})
        resolutions = [
            resolve_slot(degree, candidate, bool(record.is_active), active, inactive)
            for degree, candidate in degree_track[:2]
        ]
        unresolved += sum(1 for r in resolutions if not r.resolved)
        _fill_slots(row, resolutions)
        for position, (degree, candidate) in enumerate(certificates[:2], start=1):
            row[f"cert_code_{position}"] = candidate.major_code
            row[f"cert_degc_{position}"] = degree
        if record.row_num == 1 and row["coll_code_1"] is None:
            _apply_first_period_defaults(row, config.first_period_defaults)
        rows.append(row)

    assignments = pd.DataFrame(rows, columns=["id_num", "period_code"] + PROGRAM_COLUMNS)
    # Code columns stay object so unresolved slots read back as None.
    for column in PROGRAM_COLUMNS:
        assignments[column] = pd.Series([row[column] for row in rows], index=assignments.index, dtype=object)
    if unknown:
        logger.warning("%d major references were not found in the major dictionary", unknown)
    if unresolved:
        logger.info("%d program slots did not resolve against the program maps", unresolved)
    return ProgramMapping(
        assignments=assignments,
        unknown_majors=unknown,
        unresolved_slots=unresolved,
        dropped_majors=dropped,
    )


def split_candidates(
    candidates: Iterable[MajorCandidate], major_degrees: Mapping[str, str]
) -> Tuple[List[Tuple[str, MajorCandidate]], List[Tuple[str, MajorCandidate]], int]:
    """Split a period's majors into (degree track, certificate track, unknown count), first-seen order."""

    seen = set()
    degree_track: List[Tuple[str, MajorCandidate]] = []
    certificates: List[Tuple[str, MajorCandidate]] = []
    unknown = 0
    for candidate in candidates:
        identity = (candidate.major_code, candidate.concentration_code)
        if identity in seen:
            continue
        seen.add(identity)
        degree = major_degrees.get(candidate.major_code)
        if degree is None:
            unknown += 1
        elif degree in CERTIFICATE_DEGREES:
            certificates.append((degree, candidate))
        else:
            degree_track.append((degree, candidate))
    return degree_track, certificates, unknown


def _fill_slots(row: dict, resolutions: List[ProgramResolution]) -> None:
    if not resolutions:
        return
    first = resolutions[0]
    row.update(
        coll_code_1=first.coll_code,
        degc_code_1=first.degc_code,
        majr_code_1=first.majr_code,
        majr_code_conc_1=first.majr_code_conc,
        program_1=first.program,
    )
    if len(resolutions) < 2:
        return
    second = resolutions[1]
    if second.degree_code == first.degree_code:
        # Same degree twice is one program with a second major.
        row["majr_code_1_2"] = second.majr_code
        return
    row.update(
        coll_code_2=second.coll_code,
        degc_code_2=second.degc_code,
        majr_code_2=second.majr_code,
        majr_code_conc_2=second.majr_code_conc,
        program_2=second.program,
    )


def _apply_first_period_defaults(row: dict, defaults: Mapping[str, str]) -> None:
    for column, value in defaults.items():
        if row.get(column) is None:
            row[column] = value
