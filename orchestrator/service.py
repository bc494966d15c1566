"""Ingestion service facade wiring stores, clients, executor and scheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from config import CredentialResolver
from core import QueryConfig, RunResult, RunState
from models import Article
from scrapers import BaseSearchClient, SerpApiSearchClient
from storage import ArticleStore, AssetFileStore, Database, QueryConfigStore
from utils.logger import get_executor_logger

from .executor import IngestionExecutor, LoggingProgressSink, ProgressSink
from .inflight import InFlightRegistry
from .scheduler import Clock, DailyScheduler

logger = get_executor_logger()


class IngestionService:
    """
    Entry point used by the CLI.

    Manual and scheduled runs share one executor and one in-flight registry,
    so a manual trigger for a config that is already running is skipped.
    """

    def __init__(
        self,
        *,
        database: Optional[Database] = None,
        files: Optional[AssetFileStore] = None,
        search_client: Optional[BaseSearchClient] = None,
        credential_resolver: Optional[CredentialResolver] = None,
        executor: Optional[IngestionExecutor] = None,
        progress: Optional[ProgressSink] = None,
        clock: Optional[Clock] = None,
    ):
        self.database = database or Database()
        self.files = files or AssetFileStore()
        self.articles = ArticleStore(self.database, self.files)
        self.configs = QueryConfigStore(self.database, self.files)
        self.search_client = search_client or SerpApiSearchClient(credential_resolver)
        self.registry = InFlightRegistry()
        self.executor = executor or IngestionExecutor(self.search_client, self.articles, files=self.files)
        self.progress = progress or LoggingProgressSink()
        self.scheduler = DailyScheduler(
            self.configs,
            self.executor,
            registry=self.registry,
            clock=clock,
            progress=self.progress,
        )
        self._manual_cancel: Dict[str, asyncio.Event] = {}
        self._scheduler_task: Optional[asyncio.Task] = None

    # ---- configs -----------------------------------------------------------

    def add_config(self, config: QueryConfig) -> QueryConfig:
        saved = self.configs.add(config)
        self.scheduler.invalidate(saved.id)
        return saved

    def update_config(self, config: QueryConfig) -> QueryConfig:
        saved = self.configs.update(config)
        self.scheduler.invalidate(saved.id)
        return saved

    def set_enabled(self, config_id: str, enabled: bool) -> Optional[QueryConfig]:
        updated = self.configs.set_enabled(config_id, enabled)
        self.scheduler.invalidate(config_id)
        return updated

    def delete_config(self, config_id: str) -> bool:
        self.cancel(config_id)
        self.scheduler.invalidate(config_id)
        return self.configs.delete(config_id)

    def list_configs(self) -> List[QueryConfig]:
        return self.configs.list_all()

    # ---- articles ----------------------------------------------------------

    def list_articles(self, config_id: str) -> List[Article]:
        return self.articles.query_by_parent(config_id)

    def delete_article(self, article_id: str) -> bool:
        return self.articles.delete(article_id)

    # ---- runs --------------------------------------------------------------

    async def run_manual(self, config: QueryConfig, progress: Optional[ProgressSink] = None) -> RunResult:
        """Run one config now. Skipped when a run for the same config is in flight."""
        if not self.registry.try_acquire(config.id):
            logger.info(f"[{config.id[:8]}] run already in flight, manual trigger skipped")
            return RunResult(config_id=config.id, state=RunState.SKIPPED, abort_reason="run already in flight")

        cancel_event = asyncio.Event()
        self._manual_cancel[config.id] = cancel_event
        try:
            return await self.executor.run(config, progress or self.progress, cancel_event)
        finally:
            self._manual_cancel.pop(config.id, None)
            self.registry.release(config.id)

    async def search(self, query: str, progress: Optional[ProgressSink] = None, **params) -> RunResult:
        """One-shot manual search: store a manual config and run it."""
        config = self.add_config(QueryConfig(query=query, **params))
        return await self.run_manual(config, progress)

    def cancel(self, config_id: str) -> bool:
        """Signal an in-flight run (manual or scheduled) to stop at its next checkpoint."""
        event = self._manual_cancel.get(config_id)
        if event is not None:
            event.set()
            return True
        return self.scheduler.cancel(config_id)

    async def retry_assets(self, article_id: str) -> int:
        return await self.executor.retry_failed_assets(article_id)

    # ---- scheduler ---------------------------------------------------------

    def next_fires(self, now: Optional[datetime] = None) -> Dict[str, datetime]:
        self.scheduler.refresh(now)
        return self.scheduler.schedule_table()

    def start(self) -> asyncio.Task:
        if self._scheduler_task is None or self._scheduler_task.done():
            self._scheduler_task = asyncio.get_running_loop().create_task(self.scheduler.run_forever())
        return self._scheduler_task

    async def stop(self) -> None:
        self.scheduler.stop()
        for event in list(self._manual_cancel.values()):
            event.set()
        if self._scheduler_task is not None:
            await self._scheduler_task
            self._scheduler_task = None

    async def aclose(self) -> None:
        await self.stop()
        await self.search_client.close()
        self.database.dispose()
