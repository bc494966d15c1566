"""Ingestion executor: search -> fetch -> extract -> assets -> persist."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional, Protocol
from uuid import uuid4

from config import get_settings
from core import ItemOutcome, QueryConfig, RunProgress, RunResult, RunState, SearchResult
from models import Article, Asset, AssetKind, ExtractedContent
from processing import ContentExtractor, QualityRules, assess_quality
from processing.quality import DEFAULT_RULES
from scrapers import BaseSearchClient
from sources import AssetFailure, AssetFetcher, PageFetcher
from storage import ArticleStore, AssetFileStore
from utils.exceptions import (
    DuplicateArticleError,
    ItemFailure,
    MissingCredentialError,
    SearchError,
    StorageError,
)
from utils.logger import get_executor_logger

from .inflight import InFlightRegistry

logger = get_executor_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressSink(Protocol):
    """Receiver of per-result progress and the final run summary."""

    def on_progress(self, progress: RunProgress) -> None:
        ...

    def on_complete(self, result: RunResult) -> None:
        ...


class LoggingProgressSink:
    """Default sink: write progress and summaries to the log."""

    def on_progress(self, progress: RunProgress) -> None:
        logger.info(
            f"[{progress.config_id[:8]}] {progress.current}/{progress.total} "
            f"{progress.outcome.value}: {progress.url}"
        )

    def on_complete(self, result: RunResult) -> None:
        logger.info(
            f"[{result.config_id[:8]}] run {result.state.value}: "
            f"created={result.articles_created} duplicates={result.duplicates_skipped} "
            f"failures={result.failures}"
            + (f" reason={result.abort_reason}" if result.abort_reason else "")
        )


class _RunCancelled(Exception):
    """Cancellation observed between asset downloads."""


class AssetRef(NamedTuple):
    url: str
    kind: AssetKind
    alt_text: str
    caption: str
    width: Optional[int]
    height: Optional[int]


class IngestionExecutor:
    """
    Runs one ingestion for a query config.

    Item failures (page fetch, extraction, asset download) are counted and the
    run continues; search failures abort the run before any article exists.
    """

    def __init__(
        self,
        search_client: BaseSearchClient,
        article_store: ArticleStore,
        *,
        files: Optional[AssetFileStore] = None,
        page_fetcher: Optional[PageFetcher] = None,
        extractor: Optional[ContentExtractor] = None,
        asset_fetcher: Optional[AssetFetcher] = None,
        quality_rules: QualityRules = DEFAULT_RULES,
        max_assets_per_article: Optional[int] = None,
        default_max_results: Optional[int] = None,
        article_registry: Optional[InFlightRegistry] = None,
    ):
        settings = get_settings()
        self.search_client = search_client
        self.store = article_store
        self.files = files or article_store.files or AssetFileStore()
        self.page_fetcher = page_fetcher or PageFetcher()
        self.extractor = extractor or ContentExtractor()
        self.asset_fetcher = asset_fetcher or AssetFetcher()
        self.quality_rules = quality_rules
        self.max_assets_per_article = int(
            max_assets_per_article if max_assets_per_article is not None
            else settings.fetch.max_assets_per_article
        )
        self.default_max_results = int(default_max_results or settings.search.max_results)
        self.article_registry = article_registry if article_registry is not None else InFlightRegistry()

    async def run(
        self,
        config: QueryConfig,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult:
        """
        Execute one run.

        Args:
            config: fully-resolved query config
            progress: optional progress sink
            cancel_event: checked between results and between asset downloads

        Returns:
            RunResult; the summary is reported even on partial failure
        """
        result = RunResult(config_id=config.id)
        query = str(config.query or "").strip()
        if not query:
            logger.info(f"[{config.id[:8]}] Empty query, nothing to do")
            result.state = RunState.NOOP
            return self._finish(result, progress)

        request = config.to_search_request(self.default_max_results)
        try:
            results = await self.search_client.search(request)
        except MissingCredentialError as e:
            logger.error(f"[{config.id[:8]}] Search aborted, missing credential: {e.credential}")
            result.state = RunState.ABORTED
            result.missing_credential = True
            result.abort_reason = str(e)
            return self._finish(result, progress)
        except SearchError as e:
            logger.error(f"[{config.id[:8]}] Search aborted: {e}")
            result.state = RunState.ABORTED
            result.abort_reason = str(e)
            return self._finish(result, progress)

        result.total_results = len(results)
        logger.info(f"[{config.id[:8]}] {len(results)} results for {query!r}")

        try:
            for index, item in enumerate(results, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    result.state = RunState.CANCELLED
                    break
                try:
                    outcome = await self._process_result(config, item, result, cancel_event)
                except _RunCancelled:
                    result.state = RunState.CANCELLED
                    break
                self._emit(progress, RunProgress(
                    config_id=config.id,
                    current=index,
                    total=len(results),
                    url=item.url,
                    outcome=outcome,
                ))
        except asyncio.CancelledError:
            result.state = RunState.CANCELLED
            self._finish(result, progress)
            raise

        if result.state == RunState.COMPLETED and result.failures:
            result.state = RunState.PARTIAL
        return self._finish(result, progress)

    async def _process_result(
        self,
        config: QueryConfig,
        item: SearchResult,
        result: RunResult,
        cancel_event: Optional[asyncio.Event],
    ) -> ItemOutcome:
        url = item.url.strip()

        if await asyncio.to_thread(self.store.exists_by_url, url):
            logger.debug(f"Duplicate skipped: {url}")
            result.duplicates_skipped += 1
            return ItemOutcome.DUPLICATE

        try:
            body = await self.page_fetcher.fetch(url)
            content = await asyncio.to_thread(self.extractor.extract, body, url)
        except ItemFailure as e:
            logger.warning(f"Item failed ({type(e).__name__}): {url}: {e.message}")
            result.failures += 1
            result.errors.append(f"{url}: {e.message}")
            return ItemOutcome.FAILED

        article_id = uuid4().hex
        try:
            assets = await self._ingest_assets(article_id, url, content, cancel_event)
            article = self._build_article(article_id, config, item, content, assets)
            await asyncio.to_thread(self.store.insert, article)
        except DuplicateArticleError:
            self.files.remove_article(article_id)
            logger.debug(f"Lost insert race, duplicate: {url}")
            result.duplicates_skipped += 1
            return ItemOutcome.DUPLICATE
        except (StorageError, OSError) as e:
            self.files.remove_article(article_id)
            logger.warning(f"Item failed (storage): {url}: {e}")
            result.failures += 1
            result.errors.append(f"{url}: {e}")
            return ItemOutcome.FAILED
        except BaseException:
            # cancelled mid-article: nothing persisted, drop written files
            self.files.remove_article(article_id)
            raise

        result.articles_created += 1
        result.article_ids.append(article_id)
        return ItemOutcome.CREATED

    def _asset_refs(self, content: ExtractedContent) -> List[AssetRef]:
        refs: List[AssetRef] = []
        seen = set()
        for image in content.images:
            if image.url not in seen:
                seen.add(image.url)
                refs.append(AssetRef(image.url, AssetKind.IMAGE, image.alt, image.caption, image.width, image.height))
        for video in content.videos:
            if video.thumbnail and video.thumbnail not in seen:
                seen.add(video.thumbnail)
                refs.append(AssetRef(video.thumbnail, AssetKind.VIDEO_THUMBNAIL, video.title, "", None, None))
        return refs[: self.max_assets_per_article]

    async def _ingest_assets(
        self,
        article_id: str,
        page_url: str,
        content: ExtractedContent,
        cancel_event: Optional[asyncio.Event],
    ) -> List[Asset]:
        assets: List[Asset] = []
        for source_url, kind, alt_text, caption, width, height in self._asset_refs(content):
            if cancel_event is not None and cancel_event.is_set():
                raise _RunCancelled()

            asset_id = uuid4().hex
            fetched = await self.asset_fetcher.fetch(source_url, base_url=page_url)
            local_path = None
            byte_size = 0
            error = None

            if isinstance(fetched, AssetFailure):
                error = fetched.reason
            else:
                try:
                    path = await asyncio.to_thread(
                        self.files.write, article_id, asset_id, fetched.extension, fetched.data
                    )
                    local_path = str(path)
                    byte_size = fetched.byte_count
                    width = width or fetched.width
                    height = height or fetched.height
                except OSError as e:
                    logger.warning(f"Asset write failed for {source_url[:120]}: {e}")
                    error = f"write failed: {e}"

            assets.append(Asset(
                id=asset_id,
                article_id=article_id,
                source_url=source_url,
                kind=kind,
                local_path=local_path,
                byte_size=byte_size,
                width=width,
                height=height,
                alt_text=alt_text,
                caption=caption,
                error=error,
            ))
        return assets

    def _build_article(
        self,
        article_id: str,
        config: QueryConfig,
        item: SearchResult,
        content: ExtractedContent,
        assets: List[Asset],
    ) -> Article:
        metadata = content.metadata
        title = content.title or item.title
        quality, reason = assess_quality(
            item.url, title, content.main_text, metadata.word_count, self.quality_rules
        )

        export_path = None
        try:
            export_path = str(self.files.export_text(article_id, content.main_text))
        except OSError as e:
            logger.warning(f"Text export failed for {article_id}: {e}")

        return Article(
            id=article_id,
            query_config_id=config.id,
            url=item.url.strip(),
            title=title,
            snippet=item.snippet,
            description=content.description or item.snippet,
            main_text=content.main_text,
            word_count=metadata.word_count,
            reading_time=metadata.reading_time,
            author=metadata.author,
            publish_date=metadata.publish_date,
            language=metadata.language,
            category=metadata.category,
            tags=metadata.tags,
            links=content.links,
            videos=content.videos,
            audios=content.audios,
            assets=assets,
            quality=quality,
            quality_reason=reason,
            export_path=export_path,
        )

    async def retry_failed_assets(self, article_id: str) -> int:
        """
        Re-download assets of a stored article whose local path is null.

        Returns the number of assets recovered; 0 when the article is unknown
        or another retry for it is already running.
        """
        if not self.article_registry.try_acquire(article_id):
            logger.info(f"Asset retry already running for {article_id}")
            return 0
        try:
            article = await asyncio.to_thread(self.store.get, article_id)
            if article is None:
                return 0

            recovered = 0
            for asset in article.assets:
                if asset.is_downloaded:
                    continue
                fetched = await self.asset_fetcher.fetch(asset.source_url, base_url=article.url)
                if isinstance(fetched, AssetFailure):
                    continue
                try:
                    path = await asyncio.to_thread(
                        self.files.write, article_id, asset.id, fetched.extension, fetched.data
                    )
                except OSError as e:
                    logger.warning(f"Asset write failed for {asset.source_url[:120]}: {e}")
                    continue
                updated = asset.model_copy(update={
                    "local_path": str(path),
                    "byte_size": fetched.byte_count,
                    "width": asset.width or fetched.width,
                    "height": asset.height or fetched.height,
                    "error": None,
                    "downloaded_at": _utcnow(),
                })
                await asyncio.to_thread(self.store.update_asset, updated)
                recovered += 1

            logger.info(f"Recovered {recovered} assets for article {article_id}")
            return recovered
        finally:
            self.article_registry.release(article_id)

    def _emit(self, progress: Optional[ProgressSink], event: RunProgress) -> None:
        if progress is None:
            return
        try:
            progress.on_progress(event)
        except Exception as e:
            logger.warning(f"Progress sink failed: {e}")

    def _finish(self, result: RunResult, progress: Optional[ProgressSink]) -> RunResult:
        result.finished_at = _utcnow()
        logger.debug(f"[{result.config_id[:8]}] asset cache: {self.asset_fetcher.cache_stats()}")
        if progress is not None:
            try:
                progress.on_complete(result)
            except Exception as e:
                logger.warning(f"Progress sink failed: {e}")
        return result
