"""Core contracts and shared types for the ingestion pipeline."""

from .contracts import (
    DEFAULT_SCHEDULE_TIME,
    ItemOutcome,
    QueryConfig,
    RunProgress,
    RunResult,
    RunState,
    ScheduleSpec,
    SearchRequest,
    SearchResult,
    format_schedule_time,
    parse_schedule_time,
)

__all__ = [
    "DEFAULT_SCHEDULE_TIME",
    "ItemOutcome",
    "QueryConfig",
    "RunProgress",
    "RunResult",
    "RunState",
    "ScheduleSpec",
    "SearchRequest",
    "SearchResult",
    "format_schedule_time",
    "parse_schedule_time",
]
