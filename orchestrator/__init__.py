"""Ingestion orchestration: executor, daily scheduler and service facade."""

from .executor import IngestionExecutor, LoggingProgressSink, ProgressSink
from .inflight import InFlightRegistry
from .scheduler import DailyScheduler, compute_next_fire
from .service import IngestionService

__all__ = [
    "DailyScheduler",
    "InFlightRegistry",
    "IngestionExecutor",
    "IngestionService",
    "LoggingProgressSink",
    "ProgressSink",
    "compute_next_fire",
]
