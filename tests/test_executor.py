from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Set

import httpx
import pytest

from core import ItemOutcome, QueryConfig, RunProgress, RunResult, RunState, SearchRequest, SearchResult
from orchestrator import IngestionExecutor
from processing import ContentExtractor
from scrapers import BaseSearchClient
from sources import AssetFetcher
from storage import ArticleStore, AssetFileStore, Database, MemoryCache, QueryConfigStore
from utils.exceptions import DuplicateArticleError, MissingCredentialError, PageFetchError, SearchTransportError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class _FakeSearch(BaseSearchClient):
    def __init__(self, results: List[SearchResult], error: Optional[Exception] = None):
        super().__init__()
        self.results = results
        self.error = error
        self.requests: List[SearchRequest] = []

    @property
    def name(self) -> str:
        return "fake"

    async def search(self, request: SearchRequest) -> List[SearchResult]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return list(self.results)


class _FakePages:
    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> str:
        self.fetched.append(url)
        if url not in self.pages:
            raise PageFetchError(f"HTTP 500 for {url}", url=url)
        return self.pages[url]


class _RecordingSink:
    def __init__(self, on_first=None):
        self.events: List[RunProgress] = []
        self.completed: List[RunResult] = []
        self.on_first = on_first

    def on_progress(self, progress: RunProgress) -> None:
        self.events.append(progress)
        if self.on_first is not None and len(self.events) == 1:
            self.on_first()

    def on_complete(self, result: RunResult) -> None:
        self.completed.append(result)


def _page(title: str, images: List[str] = ()) -> str:
    imgs = "".join(f'<img src="{src}" alt="picture {idx}">' for idx, src in enumerate(images))
    body = " ".join(f"Sentence {n} about {title} keeps the reader informed." for n in range(20))
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<article><h1>{title}</h1><p>{body}</p>{imgs}</article></body></html>"
    )


def _asset_transport(broken: Set[str]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) in broken:
            return httpx.Response(404)
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    return httpx.MockTransport(handler)


def _build(
    tmp_path: Path,
    results: List[SearchResult],
    pages: Dict[str, str],
    *,
    error: Optional[Exception] = None,
    broken: Optional[Set[str]] = None,
):
    database = Database(f"sqlite:///{tmp_path / 'executor.db'}")
    files = AssetFileStore(tmp_path / "assets", tmp_path / "exports")
    articles = ArticleStore(database, files)
    configs = QueryConfigStore(database, files)
    search = _FakeSearch(results, error)
    executor = IngestionExecutor(
        search,
        articles,
        files=files,
        page_fetcher=_FakePages(pages),
        extractor=ContentExtractor(),
        asset_fetcher=AssetFetcher(cache=MemoryCache(ttl=60), transport=_asset_transport(broken if broken is not None else set())),
        max_assets_per_article=10,
    )
    return executor, articles, configs, search, files


def _results(urls: List[str]) -> List[SearchResult]:
    return [SearchResult(title=f"Result {idx}", url=url, position=idx) for idx, url in enumerate(urls, start=1)]


@pytest.mark.asyncio
async def test_second_run_skips_existing_url(tmp_path: Path) -> None:
    url = "https://news.example.com/story"
    executor, articles, configs, _, _ = _build(tmp_path, _results([url]), {url: _page("Story")})
    config = configs.add(QueryConfig(query="story"))

    first = await executor.run(config)
    second = await executor.run(config)

    assert (first.state, first.articles_created, first.duplicates_skipped) == (RunState.COMPLETED, 1, 0)
    assert (second.state, second.articles_created, second.duplicates_skipped) == (RunState.COMPLETED, 0, 1)
    assert articles.count() == 1


@pytest.mark.asyncio
async def test_failed_page_is_counted_and_run_continues(tmp_path: Path) -> None:
    urls = [f"https://site.example.com/{n}" for n in range(1, 6)]
    pages = {url: _page(f"Page {n}") for n, url in enumerate(urls, start=1) if n != 3}
    executor, articles, configs, _, _ = _build(tmp_path, _results(urls), pages)
    config = configs.add(QueryConfig(query="pages"))
    sink = _RecordingSink()

    result = await executor.run(config, sink)

    assert result.state == RunState.PARTIAL
    assert result.articles_created == 4
    assert result.failures == 1
    assert result.total_results == 5
    assert len(result.errors) == 1 and urls[2] in result.errors[0]
    assert [event.current for event in sink.events] == [1, 2, 3, 4, 5]
    assert all(event.total == 5 for event in sink.events)
    assert [event.outcome for event in sink.events] == [
        ItemOutcome.CREATED,
        ItemOutcome.CREATED,
        ItemOutcome.FAILED,
        ItemOutcome.CREATED,
        ItemOutcome.CREATED,
    ]
    assert sink.completed == [result]
    assert [article.url for article in articles.query_by_parent(config.id)] == [
        url for n, url in enumerate(urls, start=1) if n != 3
    ]


@pytest.mark.asyncio
async def test_failed_asset_keeps_reference_without_local_path(tmp_path: Path) -> None:
    url = "https://blog.example.com/post"
    images = ["/img/one.png", "/img/two.png", "/img/broken.png"]
    broken = {"https://blog.example.com/img/broken.png"}
    executor, articles, configs, _, files = _build(
        tmp_path, _results([url]), {url: _page("Post", images)}, broken=broken
    )
    config = configs.add(QueryConfig(query="post"))

    result = await executor.run(config)
    article = articles.get(result.article_ids[0])

    assert result.state == RunState.COMPLETED
    assert [asset.source_url for asset in article.assets] == [
        "https://blog.example.com/img/one.png",
        "https://blog.example.com/img/two.png",
        "https://blog.example.com/img/broken.png",
    ]
    stored = [asset for asset in article.assets if asset.local_path is not None]
    assert len(stored) == 2
    assert all(Path(asset.local_path).read_bytes() == PNG_BYTES for asset in stored)
    assert all(Path(asset.local_path).parent == files.article_dir(article.id) for asset in stored)
    assert article.assets[2].local_path is None
    assert article.assets[2].error
    assert article.asset_count == 2
    assert article.total_asset_bytes == 2 * len(PNG_BYTES)

    broken.clear()
    recovered = await executor.retry_failed_assets(article.id)
    assert recovered == 1
    assert articles.get(article.id).asset_count == 3


@pytest.mark.asyncio
async def test_text_export_written_for_article(tmp_path: Path) -> None:
    url = "https://docs.example.com/guide"
    executor, articles, configs, _, files = _build(tmp_path, _results([url]), {url: _page("Guide")})
    config = configs.add(QueryConfig(query="guide"))

    result = await executor.run(config)
    article = articles.get(result.article_ids[0])

    assert article.export_path == str(files.export_path(article.id))
    exported = Path(article.export_path).read_text(encoding="utf-8")
    assert exported == article.main_text
    assert "Sentence 0 about Guide" in exported
    assert article.word_count > 0
    assert article.reading_time >= 1


@pytest.mark.asyncio
async def test_empty_query_is_noop(tmp_path: Path) -> None:
    executor, articles, configs, search, _ = _build(tmp_path, [], {})
    config = configs.add(QueryConfig(query="   "))

    result = await executor.run(config)

    assert result.state == RunState.NOOP
    assert search.requests == []
    assert articles.count() == 0


@pytest.mark.asyncio
async def test_search_failure_aborts_run(tmp_path: Path) -> None:
    executor, articles, configs, _, _ = _build(
        tmp_path, [], {}, error=SearchTransportError("HTTP 503", provider="fake", status_code=503)
    )
    config = configs.add(QueryConfig(query="anything"))

    result = await executor.run(config)

    assert result.state == RunState.ABORTED
    assert result.missing_credential is False
    assert "HTTP 503" in result.abort_reason
    assert articles.count() == 0


@pytest.mark.asyncio
async def test_missing_credential_is_flagged(tmp_path: Path) -> None:
    executor, _, configs, _, _ = _build(
        tmp_path, [], {}, error=MissingCredentialError("serpapi_api_key", provider="fake")
    )
    config = configs.add(QueryConfig(query="anything"))

    result = await executor.run(config)

    assert result.state == RunState.ABORTED
    assert result.missing_credential is True
    assert result.is_completed_attempt is False


@pytest.mark.asyncio
async def test_search_request_carries_config_parameters(tmp_path: Path) -> None:
    executor, _, configs, search, _ = _build(tmp_path, [], {})
    config = configs.add(QueryConfig(query=" python ", language="de", region="at", time_range="qdr:w", max_results=7))

    await executor.run(config)

    request = search.requests[0]
    assert (request.query, request.language, request.region, request.time_range, request.max_results) == (
        "python", "de", "at", "qdr:w", 7
    )


@pytest.mark.asyncio
async def test_cancel_event_stops_between_results(tmp_path: Path) -> None:
    urls = [f"https://cancel.example.com/{n}" for n in range(3)]
    executor, articles, configs, _, _ = _build(
        tmp_path, _results(urls), {url: _page(url) for url in urls}
    )
    config = configs.add(QueryConfig(query="cancel"))
    cancel = asyncio.Event()
    sink = _RecordingSink(on_first=cancel.set)

    result = await executor.run(config, sink, cancel)

    assert result.state == RunState.CANCELLED
    assert result.articles_created == 1
    assert articles.count() == 1
    assert sink.completed[0].state == RunState.CANCELLED


@pytest.mark.asyncio
async def test_broken_progress_sink_does_not_fail_run(tmp_path: Path) -> None:
    class _Broken:
        def on_progress(self, progress):
            raise RuntimeError("sink down")

        def on_complete(self, result):
            raise RuntimeError("sink down")

    url = "https://sink.example.com/a"
    executor, _, configs, _, _ = _build(tmp_path, _results([url]), {url: _page("Sink")})
    config = configs.add(QueryConfig(query="sink"))

    result = await executor.run(config, _Broken())

    assert result.state == RunState.COMPLETED
    assert result.articles_created == 1


def _stored_article_dirs(files: AssetFileStore) -> List[Path]:
    if not files.asset_dir.exists():
        return []
    return [path for path in files.asset_dir.iterdir() if path.is_dir()]


@pytest.mark.asyncio
async def test_undecodable_asset_host_fails_only_that_asset(tmp_path: Path) -> None:
    urls = ["https://idna.example.com/1", "https://idna.example.com/2"]
    pages = {
        urls[0]: _page("Bad host", ["http://xn--a.com/a.png"]),
        urls[1]: _page("Clean", ["/img/ok.png"]),
    }
    executor, articles, configs, _, _ = _build(tmp_path, _results(urls), pages)

    def handler(request: httpx.Request) -> httpx.Response:
        if "xn--a.com" in str(request.url):
            raise UnicodeError("label empty or too long")
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    executor.asset_fetcher = AssetFetcher(cache=MemoryCache(ttl=60), transport=httpx.MockTransport(handler))
    config = configs.add(QueryConfig(query="idna"))
    sink = _RecordingSink()

    result = await executor.run(config, sink)

    assert result.state == RunState.COMPLETED
    assert result.articles_created == 2
    assert sink.completed == [result]
    first = articles.get(result.article_ids[0])
    assert first.assets[0].local_path is None
    assert first.assets[0].error


@pytest.mark.asyncio
async def test_file_reference_on_remote_page_is_not_copied(tmp_path: Path) -> None:
    secret = tmp_path / "secret.txt"
    secret.write_bytes(b"top secret")
    url = "https://evil.example.com/page"
    executor, articles, configs, _, files = _build(
        tmp_path, _results([url]), {url: _page("Evil", [secret.as_uri()])}
    )
    config = configs.add(QueryConfig(query="evil"))

    result = await executor.run(config)
    article = articles.get(result.article_ids[0])

    assert result.articles_created == 1
    assert article.assets[0].source_url == secret.as_uri()
    assert article.assets[0].local_path is None
    assert article.assets[0].error
    assert not any(files.article_dir(article.id).glob("*"))


@pytest.mark.asyncio
async def test_insert_race_counts_duplicate_and_drops_files(tmp_path: Path) -> None:
    class _RacingStore(ArticleStore):
        def exists_by_url(self, url: str) -> bool:
            return False

        def insert(self, article):
            raise DuplicateArticleError(article.url)

    url = "https://race.example.com/story"
    database = Database(f"sqlite:///{tmp_path / 'race.db'}")
    files = AssetFileStore(tmp_path / "assets", tmp_path / "exports")
    configs = QueryConfigStore(database, files)
    executor = IngestionExecutor(
        _FakeSearch(_results([url])),
        _RacingStore(database, files),
        files=files,
        page_fetcher=_FakePages({url: _page("Race", ["/img/a.png", "/img/b.png"])}),
        extractor=ContentExtractor(),
        asset_fetcher=AssetFetcher(cache=MemoryCache(ttl=60), transport=_asset_transport(set())),
        max_assets_per_article=10,
    )
    config = configs.add(QueryConfig(query="race"))
    sink = _RecordingSink()

    result = await executor.run(config, sink)

    assert result.state == RunState.COMPLETED
    assert (result.articles_created, result.duplicates_skipped, result.failures) == (0, 1, 0)
    assert [event.outcome for event in sink.events] == [ItemOutcome.DUPLICATE]
    assert _stored_article_dirs(files) == []
    assert not files.export_dir.exists() or list(files.export_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_cancel_between_assets_leaves_no_files(tmp_path: Path) -> None:
    url = "https://slow.example.com/gallery"
    images = ["/img/1.png", "/img/2.png", "/img/3.png"]
    executor, articles, configs, _, files = _build(tmp_path, _results([url]), {url: _page("Gallery", images)})
    cancel = asyncio.Event()
    requested: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        cancel.set()
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

    executor.asset_fetcher = AssetFetcher(cache=MemoryCache(ttl=60), transport=httpx.MockTransport(handler))
    config = configs.add(QueryConfig(query="gallery"))
    sink = _RecordingSink()

    result = await executor.run(config, sink, cancel)

    assert result.state == RunState.CANCELLED
    assert result.articles_created == 0
    assert requested == ["https://slow.example.com/img/1.png"]
    assert articles.count() == 0
    assert _stored_article_dirs(files) == []
    assert sink.completed[0].state == RunState.CANCELLED


@pytest.mark.asyncio
async def test_retry_continues_after_write_error(tmp_path: Path, monkeypatch) -> None:
    url = "https://retry.example.com/post"
    images = ["/img/a.png", "/img/b.png"]
    broken = {"https://retry.example.com/img/a.png", "https://retry.example.com/img/b.png"}
    executor, articles, configs, _, files = _build(
        tmp_path, _results([url]), {url: _page("Retry", images)}, broken=broken
    )
    config = configs.add(QueryConfig(query="retry"))
    result = await executor.run(config)
    article_id = result.article_ids[0]
    assert articles.get(article_id).asset_count == 0

    broken.clear()
    original_write = files.write
    calls: List[str] = []

    def flaky_write(article_id: str, asset_id: str, extension: str, data: bytes) -> Path:
        calls.append(asset_id)
        if len(calls) == 1:
            raise OSError(28, "No space left on device")
        return original_write(article_id, asset_id, extension, data)

    monkeypatch.setattr(files, "write", flaky_write)

    recovered = await executor.retry_failed_assets(article_id)

    assert recovered == 1
    assert len(calls) == 2
    stored = articles.get(article_id)
    assert stored.asset_count == 1
    assert [asset.local_path is None for asset in stored.assets] == [True, False]
    assert executor.article_registry.is_busy(article_id) is False
