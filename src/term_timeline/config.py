# ABOUTME: Holds the operational constants that steer status derivation.
# ABOUTME: Loads engine configuration from YAML with validated defaults.

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for one timeline synthesis run."""

    # The term the target system treats as "now"; earlier terms can only close out.
    current_period: int = 202501
    upcoming_periods: Tuple[int, ...] = (202501, 202506)
    active_calendar_keys: Tuple[Tuple[str, str], ...] = (("2425", "SP"), ("2425", "SU"))
    summer_marker: int = 6
    carry_forward_window: Optional[int] = 6
    full_time_hours: float = 12.0
    excluded_year_codes: Tuple[str, ...] = ("ZZZZ",)
    excluded_term_codes: Tuple[str, ...] = ("ZZ",)
    dropped_status: str = "D"
    transfer_grades: Tuple[str, ...] = ("T", "TU")
    transfer_term_code: str = "TR"
    transfer_year_code: str = "TRAN"
    major_degree_overrides: Mapping[str, str] = field(default_factory=lambda: {"LAR": "NDA"})
    first_period_defaults: Mapping[str, str] = field(
        default_factory=lambda: {
            "coll_code_1": "U",
            "degc_code_1": "NOND",
            "majr_code_1": "ATLG",
            "program_1": "NOND",
        }
    )
    campus_code: str = "SAC"
    residency_code: str = "C"
    admission_code: str = "ST"
    require_enrollment_activity: bool = True

    def __post_init__(self) -> None:
        if self.carry_forward_window is not None and self.carry_forward_window < 0:
            raise ValueError("carry_forward_window must be non-negative or null.")
        if not 0 <= self.summer_marker <= 99:
            raise ValueError("summer_marker must be a two-digit month marker.")
        if self.full_time_hours <= 0:
            raise ValueError("full_time_hours must be positive.")
        unknown_defaults = set(self.first_period_defaults) - {
            "coll_code_1",
            "degc_code_1",
            "majr_code_1",
            "program_1",
        }
        if unknown_defaults:
            raise ValueError(f"Unknown first_period_defaults keys: {sorted(unknown_defaults)}")


_TUPLE_FIELDS = {
    "upcoming_periods",
    "excluded_year_codes",
    "excluded_term_codes",
    "transfer_grades",
}


def engine_config_from_dict(raw: Optional[Mapping[str, Any]]) -> EngineConfig:
    """Build an EngineConfig from a plain mapping, coercing YAML lists into tuples."""

    if not raw:
        return EngineConfig()
    known = {f.name for f in fields(EngineConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown engine config keys: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _TUPLE_FIELDS:
            value = tuple(value or ())
        elif key == "active_calendar_keys":
            pairs = []
            for pair in value or ():
                if len(pair) != 2:
                    raise ValueError(f"active_calendar_keys entries need [year, term], got {pair!r}")
                pairs.append((str(pair[0]), str(pair[1])))
            value = tuple(pairs)
        elif key in ("major_degree_overrides", "first_period_defaults"):
            value = {str(k): str(v) for k, v in (value or {}).items()}
        values[key] = value

    if "upcoming_periods" in values:
        values["upcoming_periods"] = tuple(int(p) for p in values["upcoming_periods"])
    return EngineConfig(**values)


def load_engine_config(path: Optional[Path], **overrides: Any) -> EngineConfig:
    """Read a YAML config file; keyword overrides win over file values."""

    cfg = EngineConfig()
    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Engine config at {path} must be a mapping.")
        cfg = engine_config_from_dict(raw.get("engine", raw))
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        cfg = replace(cfg, **overrides)
    return cfg
