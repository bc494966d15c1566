"""
Custom Exceptions
自定义异常类

Run-level errors (``SearchError`` and subclasses) abort a whole ingestion run.
Item-level errors (``ItemFailure`` and subclasses) are counted and the run
continues with the next search result.
"""
from typing import Optional


class ScannerError(Exception):
    """基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ScannerError):
    """配置错误"""
    pass


class ConfigError(ConfigurationError):
    """Malformed schedule time (only raised by the strict parser)."""

    def __init__(self, message: str, value: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.value = value


# --- search provider (run-aborting) -----------------------------------------

class SearchError(ScannerError):
    """搜索调用失败, 整个 run 中止"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


RunAbortingError = SearchError


class MissingCredentialError(SearchError):
    """API key is absent; surfaced so the caller can prompt for it."""

    def __init__(self, credential: str, provider: str = None):
        super().__init__(f"Missing credential: {credential}", provider=provider)
        self.credential = credential


class MalformedRequestError(SearchError):
    """Request URL could not be constructed."""
    pass


class SearchTransportError(SearchError):
    """Network failure or non-2xx response."""

    def __init__(self, message: str, provider: str = None, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, provider=provider, **kwargs)
        self.status_code = status_code


class SearchDecodeError(SearchError):
    """Provider response was not valid JSON of the expected shape."""
    pass


class EmptyResponseError(SearchError):
    """Provider answered but returned no results."""
    pass


# --- per-result (item) failures ---------------------------------------------

class ItemFailure(ScannerError):
    """单条结果处理失败, 不影响整个 run"""

    def __init__(self, message: str, url: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.url = url


class PageFetchError(ItemFailure):
    """页面抓取失败"""
    pass


class ExtractionError(ItemFailure):
    """内容抽取失败"""
    pass


class NoContentError(ExtractionError):
    """Page body is empty; there is nothing to extract."""
    pass


class AssetFetchError(ScannerError):
    """资源下载失败"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


# --- storage -------------------------------------------------------------------

class StorageError(ScannerError):
    """存储错误"""
    pass


class DuplicateArticleError(StorageError):
    """An article with the same original URL already exists."""

    def __init__(self, url: str):
        super().__init__(f"Article already exists: {url}", {"url": url})
        self.url = url
