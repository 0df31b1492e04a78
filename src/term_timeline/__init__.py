# ABOUTME: Exposes the term timeline synthesis engine.
# ABOUTME: Re-exports the pipeline entrypoints and shared record types.

from .config import EngineConfig, load_engine_config
from .periods import PeriodCalendar, build_period_calendar
from .pipeline import RunReport, TimelineInputs, TimelineResult, build_timeline, load_inputs
from .schemas import EventKind, LifecycleEvent, MajorCandidate, Period

__all__ = [
    "EngineConfig",
    "EventKind",
    "LifecycleEvent",
    "MajorCandidate",
    "Period",
    "PeriodCalendar",
    "RunReport",
    "TimelineInputs",
    "TimelineResult",
    "build_period_calendar",
    "build_timeline",
    "load_engine_config",
    "load_inputs",
]
