"""
Utils Module
通用工具函数
"""
from .logger import configure_logging, setup_logger, get_logger
from .exceptions import (
    ScannerError,
    ConfigurationError,
    ConfigError,
    SearchError,
    RunAbortingError,
    MissingCredentialError,
    MalformedRequestError,
    SearchTransportError,
    SearchDecodeError,
    EmptyResponseError,
    ItemFailure,
    PageFetchError,
    ExtractionError,
    NoContentError,
    AssetFetchError,
    StorageError,
    DuplicateArticleError,
)

__all__ = [
    "configure_logging",
    "setup_logger",
    "get_logger",
    "ScannerError",
    "ConfigurationError",
    "ConfigError",
    "SearchError",
    "RunAbortingError",
    "MissingCredentialError",
    "MalformedRequestError",
    "SearchTransportError",
    "SearchDecodeError",
    "EmptyResponseError",
    "ItemFailure",
    "PageFetchError",
    "ExtractionError",
    "NoContentError",
    "AssetFetchError",
    "StorageError",
    "DuplicateArticleError",
]
