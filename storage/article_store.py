"""Article persistence with a database-enforced unique original URL."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from models import (
    Article,
    Asset,
    AssetKind,
    ContentQuality,
    ExtractedAudio,
    ExtractedLink,
    ExtractedVideo,
)
from utils.exceptions import DuplicateArticleError, StorageError
from utils.logger import get_storage_logger
from .asset_files import AssetFileStore
from .database import ArticleRow, AssetRow, Database, to_db_datetime

logger = get_storage_logger()


def _asset_to_row(asset: Asset, position: int) -> AssetRow:
    return AssetRow(
        id=asset.id,
        article_id=asset.article_id,
        position=position,
        source_url=asset.source_url,
        kind=asset.kind.value,
        local_path=asset.local_path,
        byte_size=asset.byte_size,
        width=asset.width,
        height=asset.height,
        alt_text=asset.alt_text,
        caption=asset.caption,
        error=asset.error,
        downloaded_at=to_db_datetime(asset.downloaded_at),
    )


def _row_to_asset(row: AssetRow) -> Asset:
    return Asset(
        id=row.id,
        article_id=row.article_id,
        source_url=row.source_url,
        kind=AssetKind(row.kind),
        local_path=row.local_path,
        byte_size=row.byte_size,
        width=row.width,
        height=row.height,
        alt_text=row.alt_text or "",
        caption=row.caption or "",
        error=row.error,
        downloaded_at=row.downloaded_at,
    )


def _article_to_row(article: Article) -> ArticleRow:
    row = ArticleRow(
        id=article.id,
        query_config_id=article.query_config_id,
        url=article.url,
        title=article.title,
        snippet=article.snippet,
        description=article.description,
        main_text=article.main_text,
        word_count=article.word_count,
        reading_time=article.reading_time,
        author=article.author,
        publish_date=to_db_datetime(article.publish_date),
        language=article.language,
        category=article.category,
        tags=list(article.tags),
        links=[link.model_dump(mode="json") for link in article.links],
        videos=[video.model_dump(mode="json") for video in article.videos],
        audios=[audio.model_dump(mode="json") for audio in article.audios],
        quality=article.quality.value,
        quality_reason=article.quality_reason,
        export_path=article.export_path,
        fetched_at=to_db_datetime(article.fetched_at),
    )
    row.assets = [_asset_to_row(asset, idx) for idx, asset in enumerate(article.assets)]
    return row


def _row_to_article(row: ArticleRow) -> Article:
    return Article(
        id=row.id,
        query_config_id=row.query_config_id,
        url=row.url,
        title=row.title or "",
        snippet=row.snippet or "",
        description=row.description or "",
        main_text=row.main_text or "",
        word_count=row.word_count,
        reading_time=row.reading_time,
        author=row.author,
        publish_date=row.publish_date,
        language=row.language,
        category=row.category,
        tags=list(row.tags or []),
        links=[ExtractedLink.model_validate(item) for item in row.links or []],
        videos=[ExtractedVideo.model_validate(item) for item in row.videos or []],
        audios=[ExtractedAudio.model_validate(item) for item in row.audios or []],
        assets=[_row_to_asset(asset) for asset in row.assets],
        quality=ContentQuality(row.quality),
        quality_reason=row.quality_reason or "",
        export_path=row.export_path,
        fetched_at=row.fetched_at,
    )


class ArticleStore:
    """
    Persisted articles and their assets.

    The UNIQUE constraint on ``articles.url`` is the single serialization
    point for duplicate detection: when two runs race on the same URL exactly
    one insert commits and the other raises ``DuplicateArticleError``.
    """

    def __init__(self, database: Database, files: Optional[AssetFileStore] = None):
        self._db = database
        self.files = files

    def exists_by_url(self, url: str) -> bool:
        with self._db.session() as session:
            found = session.execute(
                select(ArticleRow.id).where(ArticleRow.url == url).limit(1)
            ).first()
            return found is not None

    def insert(self, article: Article) -> Article:
        """Insert article and assets in one transaction."""
        try:
            with self._db.session() as session, session.begin():
                session.add(_article_to_row(article))
        except IntegrityError as e:
            if self.exists_by_url(article.url):
                logger.debug(f"Duplicate article rejected: {article.url}")
                raise DuplicateArticleError(article.url)
            raise StorageError(f"Failed to insert article {article.id}", {"error": str(e.orig)})

        logger.debug(f"Inserted article {article.id} ({len(article.assets)} assets)")
        return article

    def get(self, article_id: str) -> Optional[Article]:
        with self._db.session() as session:
            row = session.execute(
                select(ArticleRow).where(ArticleRow.id == article_id)
            ).scalar_one_or_none()
            return _row_to_article(row) if row is not None else None

    def query_by_parent(self, query_config_id: str) -> List[Article]:
        """Articles of one config, in insertion order."""
        with self._db.session() as session:
            rows = session.execute(
                select(ArticleRow)
                .where(ArticleRow.query_config_id == query_config_id)
                .order_by(ArticleRow.seq)
            ).scalars().all()
            return [_row_to_article(row) for row in rows]

    def count(self, query_config_id: Optional[str] = None) -> int:
        statement = select(func.count(ArticleRow.seq))
        if query_config_id is not None:
            statement = statement.where(ArticleRow.query_config_id == query_config_id)
        with self._db.session() as session:
            return int(session.execute(statement).scalar_one())

    def delete(self, article_id: str) -> bool:
        """Delete an article; its assets follow through the FK cascade."""
        with self._db.session() as session, session.begin():
            row = session.execute(
                select(ArticleRow).where(ArticleRow.id == article_id)
            ).scalar_one_or_none()
            if row is None:
                return False
            session.delete(row)

        if self.files is not None:
            self.files.remove_article(article_id)
        logger.info(f"Deleted article {article_id}")
        return True

    def update_asset(self, asset: Asset) -> bool:
        """Overwrite the download outcome of one existing asset."""
        with self._db.session() as session, session.begin():
            row = session.get(AssetRow, asset.id)
            if row is None:
                return False
            row.local_path = asset.local_path
            row.byte_size = asset.byte_size
            row.width = asset.width
            row.height = asset.height
            row.error = asset.error
            row.downloaded_at = to_db_datetime(asset.downloaded_at)
        return True
