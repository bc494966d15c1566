"""Canonical data contracts for search configs and ingestion runs."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_TIME = "00:00"
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def parse_schedule_time(
    value: Any,
    *,
    strict: bool = False,
    default: str = DEFAULT_SCHEDULE_TIME,
) -> Tuple[int, int]:
    """Parse ``HH:MM`` (24h). Malformed input falls back to ``default`` unless strict."""
    text = str(value or "").strip()
    match = _TIME_RE.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            return hour, minute

    if strict:
        raise ConfigError(f"Invalid schedule time: {text!r}", value=text)

    logger.warning(f"Invalid schedule time {text!r}, falling back to {default}")
    try:
        return parse_schedule_time(default, strict=True)
    except ConfigError:
        return 0, 0


def format_schedule_time(hour: int, minute: int) -> str:
    return f"{int(hour):02d}:{int(minute):02d}"


class ScheduleSpec(BaseModel):
    """Recurring part of a query config. Absent for manual-only configs."""

    scheduled_time: str = DEFAULT_SCHEDULE_TIME
    is_enabled: bool = True
    execution_count: int = 0
    last_execution_date: Optional[datetime] = None

    @field_validator("scheduled_time", mode="before")
    @classmethod
    def _normalize_time(cls, value: Any) -> str:
        hour, minute = parse_schedule_time(value)
        return format_schedule_time(hour, minute)

    @property
    def hour_minute(self) -> Tuple[int, int]:
        return parse_schedule_time(self.scheduled_time)


class QueryConfig(BaseModel):
    """A saved search intent, manual or recurring."""

    id: str = Field(default_factory=_new_id)
    query: str
    language: str = ""
    region: str = ""
    location: str = ""
    safe: str = "off"
    result_type: str = ""
    time_range: str = ""
    as_qdr: str = ""
    nfpr: str = ""
    filter: str = ""
    max_results: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)
    schedule: Optional[ScheduleSpec] = None

    @field_validator("language", "region", "location", "safe", "result_type", "time_range", "as_qdr", "nfpr", "filter", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return str(value or "").strip()

    @property
    def is_automated(self) -> bool:
        return self.schedule is not None

    @property
    def is_schedulable(self) -> bool:
        return self.schedule is not None and self.schedule.is_enabled

    def to_search_request(self, default_max_results: int = 20) -> "SearchRequest":
        return SearchRequest(
            query=self.query.strip(),
            language=self.language,
            region=self.region,
            location=self.location,
            safe=self.safe,
            result_type=self.result_type,
            time_range=self.time_range,
            as_qdr=self.as_qdr,
            nfpr=self.nfpr,
            filter=self.filter,
            max_results=int(self.max_results or default_max_results),
        )


class SearchRequest(BaseModel):
    """Parameters handed to a search client."""

    query: str
    language: str = ""
    region: str = ""
    location: str = ""
    safe: str = ""
    result_type: str = ""
    time_range: str = ""
    as_qdr: str = ""
    nfpr: str = ""
    filter: str = ""
    max_results: int = 20


class SearchResult(BaseModel):
    """One ranked hit returned by the search provider."""

    title: str = ""
    url: str
    snippet: str = ""
    position: int = 0


class RunState(str, Enum):
    """Terminal state of one ingestion run."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    ABORTED = "aborted"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    NOOP = "noop"


class ItemOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class RunProgress(BaseModel):
    """Progress signal emitted after each processed result."""

    config_id: str
    current: int
    total: int
    url: str = ""
    outcome: ItemOutcome


class RunResult(BaseModel):
    """Summary of one ingestion run."""

    config_id: str
    state: RunState = RunState.COMPLETED
    articles_created: int = 0
    duplicates_skipped: int = 0
    failures: int = 0
    total_results: int = 0
    article_ids: List[str] = Field(default_factory=list)
    abort_reason: Optional[str] = None
    missing_credential: bool = False
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def created(self) -> int:
        return self.articles_created

    @property
    def duplicates(self) -> int:
        return self.duplicates_skipped

    @property
    def is_completed_attempt(self) -> bool:
        """True for success or partial success, the states that count as an execution."""
        return self.state in {RunState.COMPLETED, RunState.PARTIAL}

    def summary(self) -> Dict[str, Any]:
        return {
            "config_id": self.config_id,
            "state": self.state.value,
            "created": self.articles_created,
            "duplicates": self.duplicates_skipped,
            "failures": self.failures,
            "abort_reason": self.abort_reason,
        }
