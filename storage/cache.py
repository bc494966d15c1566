"""
Cache
资源下载的内存缓存
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from datetime import datetime, timedelta
import logging
import threading


logger = logging.getLogger(__name__)


class BaseCache(ABC):
    """
    缓存抽象基类
    """

    def __init__(self, ttl: Optional[int] = None):
        """
        Args:
            ttl: 缓存过期时间 (秒), None = 永不过期
        """
        self.ttl = ttl

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None, size: int = 0) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class MemoryCache(BaseCache):
    """
    内存缓存
    按 URL 缓存已下载的资源, 同一次运行中被多篇文章引用的资源只下载一次
    条目数和总字节数都有上限, 超出时淘汰最旧的条目
    """

    def __init__(self, ttl: Optional[int] = None, max_size: int = 256, max_bytes: Optional[int] = None):
        """
        Args:
            ttl: 默认过期时间 (秒)
            max_size: 最大缓存条目数
            max_bytes: 缓存总字节上限, None = 不限
        """
        super().__init__(ttl)
        self.max_size = max(1, int(max_size))
        self.max_bytes = max_bytes if max_bytes and max_bytes > 0 else None
        self._cache: Dict[str, Dict] = {}
        self._lock = threading.Lock()
        self.total_bytes = 0
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _is_expired(entry: Dict) -> bool:
        expires_at = entry.get("expires_at")
        return expires_at is not None and datetime.now() > expires_at

    def _drop(self, key: str) -> None:
        entry = self._cache.pop(key, None)
        if entry is not None:
            self.total_bytes -= entry["size"]

    def _cleanup(self, incoming: int) -> None:
        """清理过期条目, 为新条目腾出条目数和字节预算"""
        for key in [k for k, v in self._cache.items() if self._is_expired(v)]:
            self._drop(key)

        oldest = sorted(self._cache, key=lambda k: self._cache[k]["created_at"])
        for key in oldest:
            over_count = len(self._cache) + 1 > self.max_size
            over_bytes = self.max_bytes is not None and self.total_bytes + incoming > self.max_bytes
            if not (over_count or over_bytes):
                break
            self._drop(key)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._is_expired(entry):
                self._drop(key)
                self.misses += 1
                return None
            self.hits += 1
            return entry["value"]

    def set(self, key: str, value: Any, ttl: Optional[int] = None, size: int = 0) -> None:
        ttl = ttl or self.ttl
        size = max(0, int(size))
        now = datetime.now()
        with self._lock:
            if self.max_bytes is not None and size > self.max_bytes:
                logger.debug(f"Skip caching {key[:120]}: {size} bytes over budget")
                return
            self._drop(key)
            self._cleanup(size)
            self._cache[key] = {
                "value": value,
                "size": size,
                "created_at": now,
                "expires_at": now + timedelta(seconds=ttl) if ttl else None,
            }
            self.total_bytes += size

    def delete(self, key: str) -> None:
        with self._lock:
            self._drop(key)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.total_bytes = 0

    def size(self) -> int:
        with self._lock:
            return len(self._cache)
