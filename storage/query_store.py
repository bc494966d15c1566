"""Saved query configs (manual and automated)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from core import QueryConfig, ScheduleSpec
from utils.exceptions import StorageError
from utils.logger import get_storage_logger
from .asset_files import AssetFileStore
from .database import ArticleRow, Database, QueryConfigRow, to_db_datetime

logger = get_storage_logger()

_SEARCH_FIELDS = (
    "query", "language", "region", "location", "safe", "result_type",
    "time_range", "as_qdr", "nfpr", "filter", "max_results",
)


def _apply(row: QueryConfigRow, config: QueryConfig) -> QueryConfigRow:
    for name in _SEARCH_FIELDS:
        setattr(row, name, getattr(config, name))
    row.created_at = to_db_datetime(config.created_at)

    schedule = config.schedule
    if schedule is None:
        row.scheduled_time = None
        row.is_enabled = False
        row.execution_count = 0
        row.last_execution_date = None
    else:
        row.scheduled_time = schedule.scheduled_time
        row.is_enabled = schedule.is_enabled
        row.execution_count = schedule.execution_count
        row.last_execution_date = to_db_datetime(schedule.last_execution_date)
    return row


def _to_config(row: QueryConfigRow) -> QueryConfig:
    schedule = None
    if row.scheduled_time is not None:
        schedule = ScheduleSpec(
            scheduled_time=row.scheduled_time,
            is_enabled=row.is_enabled,
            execution_count=row.execution_count,
            last_execution_date=row.last_execution_date,
        )
    return QueryConfig(
        id=row.id,
        created_at=row.created_at,
        schedule=schedule,
        **{name: getattr(row, name) for name in _SEARCH_FIELDS},
    )


class QueryConfigStore:
    """CRUD for query configs plus the scheduler's execution bookkeeping."""

    def __init__(self, database: Database, files: Optional[AssetFileStore] = None):
        self._db = database
        self.files = files

    def add(self, config: QueryConfig) -> QueryConfig:
        with self._db.session() as session, session.begin():
            if session.get(QueryConfigRow, config.id) is not None:
                raise StorageError(f"Query config already exists: {config.id}")
            session.add(_apply(QueryConfigRow(id=config.id), config))
        logger.info(f"Added query config {config.id}: {config.query!r}")
        return config

    def get(self, config_id: str) -> Optional[QueryConfig]:
        with self._db.session() as session:
            row = session.get(QueryConfigRow, config_id)
            return _to_config(row) if row is not None else None

    def update(self, config: QueryConfig) -> QueryConfig:
        with self._db.session() as session, session.begin():
            row = session.get(QueryConfigRow, config.id)
            if row is None:
                raise StorageError(f"Query config not found: {config.id}")
            _apply(row, config)
        return config

    def delete(self, config_id: str) -> bool:
        """Delete a config and, through the FK cascade, its articles."""
        with self._db.session() as session, session.begin():
            row = session.get(QueryConfigRow, config_id)
            if row is None:
                return False
            article_ids = session.execute(
                select(ArticleRow.id).where(ArticleRow.query_config_id == config_id)
            ).scalars().all()
            session.delete(row)

        if self.files is not None:
            for article_id in article_ids:
                self.files.remove_article(article_id)
        logger.info(f"Deleted query config {config_id} ({len(article_ids)} articles)")
        return True

    def list_all(self) -> List[QueryConfig]:
        with self._db.session() as session:
            rows = session.execute(
                select(QueryConfigRow).order_by(QueryConfigRow.created_at)
            ).scalars().all()
            return [_to_config(row) for row in rows]

    def list_automated(self, *, enabled_only: bool = False) -> List[QueryConfig]:
        statement = select(QueryConfigRow).where(QueryConfigRow.scheduled_time.is_not(None))
        if enabled_only:
            statement = statement.where(QueryConfigRow.is_enabled.is_(True))
        with self._db.session() as session:
            rows = session.execute(statement.order_by(QueryConfigRow.created_at)).scalars().all()
            return [_to_config(row) for row in rows]

    def set_enabled(self, config_id: str, enabled: bool) -> Optional[QueryConfig]:
        with self._db.session() as session, session.begin():
            row = session.get(QueryConfigRow, config_id)
            if row is None:
                return None
            if row.scheduled_time is None:
                raise StorageError(f"Query config {config_id} has no schedule")
            row.is_enabled = bool(enabled)
        return self.get(config_id)

    def record_execution(self, config_id: str, when: Optional[datetime] = None) -> Optional[QueryConfig]:
        """Increment execution_count and set last_execution_date (automated configs only)."""
        when = when or datetime.now()
        with self._db.session() as session, session.begin():
            session.execute(
                update(QueryConfigRow)
                .where(QueryConfigRow.id == config_id)
                .where(QueryConfigRow.scheduled_time.is_not(None))
                .values(
                    execution_count=QueryConfigRow.execution_count + 1,
                    last_execution_date=to_db_datetime(when),
                )
            )
        return self.get(config_id)
