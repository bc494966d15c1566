"""
Fetchers for result pages and referenced assets.
"""
from .asset_fetcher import (
    AssetBytes,
    AssetFailure,
    AssetFetcher,
    AssetResult,
    decode_data_uri,
    extension_for,
    resolve_asset_ref,
    sniff_dimensions,
)
from .page_fetcher import PageFetcher

__all__ = [
    "AssetBytes",
    "AssetFailure",
    "AssetFetcher",
    "AssetResult",
    "PageFetcher",
    "decode_data_uri",
    "extension_for",
    "resolve_asset_ref",
    "sniff_dimensions",
]
