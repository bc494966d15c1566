"""
Data Models
"""
from .schemas import (
    MediaPlatform,
    AssetKind,
    ContentQuality,
    ExtractedLink,
    ExtractedVideo,
    ExtractedAudio,
    ExtractedImage,
    ContentMetadata,
    ExtractedContent,
    Asset,
    Article,
)

__all__ = [
    "MediaPlatform",
    "AssetKind",
    "ContentQuality",
    "ExtractedLink",
    "ExtractedVideo",
    "ExtractedAudio",
    "ExtractedImage",
    "ContentMetadata",
    "ExtractedContent",
    "Asset",
    "Article",
]
