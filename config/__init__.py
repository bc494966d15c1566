"""
Configuration Management Module
统一配置管理
"""
from .settings import (
    Settings,
    get_settings,
    get_search_settings,
    get_fetch_settings,
    get_storage_settings,
    get_scheduler_settings,
)
from .credentials import (
    CredentialResolver,
    SERPAPI_API_KEY,
    resolve_credential,
    static_resolver,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_search_settings",
    "get_fetch_settings",
    "get_storage_settings",
    "get_scheduler_settings",
    "CredentialResolver",
    "SERPAPI_API_KEY",
    "resolve_credential",
    "static_resolver",
]
