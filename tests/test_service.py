from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pytest

from core import QueryConfig, RunState, ScheduleSpec, SearchRequest, SearchResult
from orchestrator import IngestionExecutor, IngestionService
from processing import ContentExtractor
from scrapers import BaseSearchClient
from storage import ArticleStore, AssetFileStore, Database


class _FakeSearch(BaseSearchClient):
    def __init__(self, results: List[SearchResult]):
        super().__init__()
        self.results = results

    @property
    def name(self) -> str:
        return "fake"

    async def search(self, request: SearchRequest) -> List[SearchResult]:
        return list(self.results)


class _FakePages:
    def __init__(self, pages: Dict[str, str]):
        self.pages = pages

    async def fetch(self, url: str) -> str:
        return self.pages[url]


def _page(title: str) -> str:
    body = " ".join(f"Sentence {n} about {title}." for n in range(30))
    return f"<html><head><title>{title}</title></head><body><article><p>{body}</p></article></body></html>"


def _service(tmp_path: Path, urls=("https://svc.example.com/a",)) -> IngestionService:
    database = Database(f"sqlite:///{tmp_path / 'service.db'}")
    files = AssetFileStore(tmp_path / "assets", tmp_path / "exports")
    search = _FakeSearch([SearchResult(title="A", url=url, position=1) for url in urls])
    executor = IngestionExecutor(
        search,
        ArticleStore(database, files),
        files=files,
        page_fetcher=_FakePages({url: _page("Service") for url in urls}),
        extractor=ContentExtractor(),
    )
    return IngestionService(
        database=database,
        files=files,
        search_client=search,
        executor=executor,
        clock=lambda: datetime(2024, 3, 1, 7, 0),
    )


@pytest.mark.asyncio
async def test_one_shot_search_stores_manual_config_and_articles(tmp_path: Path) -> None:
    service = _service(tmp_path)

    result = await service.search("python news", language="de")

    assert result.state == RunState.COMPLETED
    configs = service.list_configs()
    assert len(configs) == 1
    assert configs[0].query == "python news" and configs[0].schedule is None
    assert [article.url for article in service.list_articles(configs[0].id)] == ["https://svc.example.com/a"]
    await service.aclose()


@pytest.mark.asyncio
async def test_manual_trigger_is_skipped_while_busy(tmp_path: Path) -> None:
    service = _service(tmp_path)
    config = service.add_config(QueryConfig(query="busy"))
    service.registry.try_acquire(config.id)

    result = await service.run_manual(config)

    assert result.state == RunState.SKIPPED
    assert service.list_articles(config.id) == []
    service.registry.release(config.id)

    assert (await service.run_manual(config)).state == RunState.COMPLETED
    assert service.registry.is_busy(config.id) is False
    await service.aclose()


@pytest.mark.asyncio
async def test_next_fires_follow_enable_state(tmp_path: Path) -> None:
    service = _service(tmp_path)
    automated = service.add_config(QueryConfig(query="daily", schedule=ScheduleSpec(scheduled_time="08:00")))
    service.add_config(QueryConfig(query="manual"))

    assert service.next_fires() == {automated.id: datetime(2024, 3, 1, 8, 0)}

    service.set_enabled(automated.id, False)
    assert service.next_fires() == {}

    service.set_enabled(automated.id, True)
    assert service.next_fires(datetime(2024, 3, 1, 9, 0)) == {automated.id: datetime(2024, 3, 2, 8, 0)}
    await service.aclose()


@pytest.mark.asyncio
async def test_delete_config_and_article(tmp_path: Path) -> None:
    service = _service(tmp_path, urls=("https://svc.example.com/a", "https://svc.example.com/b"))
    config = service.add_config(QueryConfig(query="two"))
    result = await service.run_manual(config)
    assert result.articles_created == 2

    assert service.delete_article(result.article_ids[0]) is True
    assert len(service.list_articles(config.id)) == 1

    assert service.delete_config(config.id) is True
    assert service.list_configs() == []
    assert service.articles.count() == 0
    await service.aclose()
