"""SQLAlchemy schema and engine setup for configs, articles and assets."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_storage_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class QueryConfigRow(Base):
    __tablename__ = "query_configs"

    id = Column(String(32), primary_key=True)
    query = Column(Text, nullable=False)
    language = Column(String(16), nullable=False, default="")
    region = Column(String(16), nullable=False, default="")
    location = Column(String(255), nullable=False, default="")
    safe = Column(String(16), nullable=False, default="off")
    result_type = Column(String(32), nullable=False, default="")
    time_range = Column(String(64), nullable=False, default="")
    as_qdr = Column(String(32), nullable=False, default="")
    nfpr = Column(String(8), nullable=False, default="")
    filter = Column(String(8), nullable=False, default="")
    max_results = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False)

    # schedule sub-record; scheduled_time is NULL for manual-only configs
    scheduled_time = Column(String(5), nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    execution_count = Column(Integer, nullable=False, default=0)
    last_execution_date = Column(DateTime, nullable=True)

    articles = relationship("ArticleRow", back_populates="query_config", passive_deletes=True)

    def __repr__(self):
        return f"<QueryConfigRow(id={self.id}, query='{self.query[:30]}', scheduled_time={self.scheduled_time})>"


class ArticleRow(Base):
    __tablename__ = "articles"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, nullable=False, index=True)
    query_config_id = Column(
        String(32),
        ForeignKey("query_configs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(Text, unique=True, nullable=False)
    title = Column(Text, nullable=False, default="")
    snippet = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    main_text = Column(Text, nullable=False, default="")
    word_count = Column(Integer, nullable=False, default=0)
    reading_time = Column(Integer, nullable=False, default=1)
    author = Column(String(255), nullable=True)
    publish_date = Column(DateTime, nullable=True)
    language = Column(String(32), nullable=True)
    category = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    links = Column(JSON, nullable=False, default=list)
    videos = Column(JSON, nullable=False, default=list)
    audios = Column(JSON, nullable=False, default=list)
    quality = Column(String(16), nullable=False, default="medium")
    quality_reason = Column(Text, nullable=False, default="")
    export_path = Column(Text, nullable=True)
    fetched_at = Column(DateTime, nullable=False)

    query_config = relationship("QueryConfigRow", back_populates="articles")
    assets = relationship(
        "AssetRow",
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AssetRow.position",
    )

    def __repr__(self):
        return f"<ArticleRow(id={self.id}, url='{self.url[:50]}')>"


class AssetRow(Base):
    __tablename__ = "assets"

    id = Column(String(32), primary_key=True)
    article_id = Column(
        String(32),
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    source_url = Column(Text, nullable=False)
    kind = Column(String(32), nullable=False, default="image")
    local_path = Column(Text, nullable=True)
    byte_size = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    alt_text = Column(Text, nullable=False, default="")
    caption = Column(Text, nullable=False, default="")
    error = Column(Text, nullable=True)
    downloaded_at = Column(DateTime, nullable=False)

    article = relationship("ArticleRow", back_populates="assets")


def to_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """Store aware datetimes as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets FK enforcement and thread-shared connections."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, echo=echo)

    kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    else:
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, echo=echo, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class Database:
    """Engine plus session factory; creates the schema on first use."""

    def __init__(self, database_url: Optional[str] = None, *, echo: bool = False):
        self.url = database_url or get_storage_settings().database_url
        self.engine = create_engine_from_url(self.url, echo=echo)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.debug(f"Database ready: {self.engine.url.render_as_string(hide_password=True)}")

    def session(self) -> Session:
        return self._sessions()

    def dispose(self) -> None:
        self.engine.dispose()
