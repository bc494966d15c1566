"""
Storage Module
存储模块 - 数据库、文章/配置存储、资源文件、缓存
"""
from .article_store import ArticleStore
from .asset_files import AssetFileStore
from .cache import BaseCache, MemoryCache
from .database import (
    ArticleRow,
    AssetRow,
    Base,
    Database,
    QueryConfigRow,
    create_engine_from_url,
)
from .query_store import QueryConfigStore

__all__ = [
    "ArticleStore",
    "AssetFileStore",
    "BaseCache",
    "MemoryCache",
    "ArticleRow",
    "AssetRow",
    "Base",
    "Database",
    "QueryConfigRow",
    "create_engine_from_url",
    "QueryConfigStore",
]
