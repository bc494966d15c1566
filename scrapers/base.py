"""
Base Search Client
所有搜索客户端的抽象基类
"""
from abc import ABC, abstractmethod
from typing import List
import asyncio
import logging
import time

from config import get_settings
from core import SearchRequest, SearchResult


logger = logging.getLogger(__name__)


class BaseSearchClient(ABC):
    """
    搜索客户端抽象基类
    具体客户端需实现 search(), 返回按排名排序的结果列表
    """

    def __init__(self):
        self.settings = get_settings()
        self._session = None

    @property
    @abstractmethod
    def name(self) -> str:
        """返回客户端名称"""
        pass

    @abstractmethod
    async def search(self, request: SearchRequest) -> List[SearchResult]:
        """
        执行搜索

        Args:
            request: 搜索参数

        Returns:
            按提供方顺序排列的结果

        Raises:
            SearchError: 任意失败 (缺少凭据/请求构造/传输/解码/空结果)
        """
        pass

    def is_configured(self) -> bool:
        """
        检查是否已正确配置
        子类可以覆盖此方法来检查必要的 API 密钥等
        """
        return True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """清理资源"""
        if self._session is not None:
            await self._session.aclose()
            self._session = None

    def _log_search(self, query: str, count: int):
        logger.info(f"[{self.name}] Search '{query}' returned {count} results")

    def _log_error(self, message: str, error: Exception):
        logger.error(f"[{self.name}] {message}: {error}")


class RateLimitedSearchClient(BaseSearchClient):
    """
    带速率限制的搜索客户端基类
    """

    def __init__(self, requests_per_second: float = 1.0):
        super().__init__()
        self._rate_limit = requests_per_second
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def _wait_for_rate_limit(self):
        """等待满足速率限制"""
        async with self._lock:
            current_time = time.monotonic()
            time_since_last = current_time - self._last_request_time
            min_interval = 1.0 / self._rate_limit

            if time_since_last < min_interval:
                await asyncio.sleep(min_interval - time_since_last)

            self._last_request_time = time.monotonic()
