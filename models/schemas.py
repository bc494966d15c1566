"""
Data Models / Schemas
定义统一的数据结构 (抽取内容 / 文章 / 资源)
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class MediaPlatform(str, Enum):
    """视频/音频平台"""
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    SOUNDCLOUD = "soundcloud"
    SPOTIFY = "spotify"
    DIRECT = "direct"
    OTHER = "other"


class AssetKind(str, Enum):
    """资源类型"""
    IMAGE = "image"
    VIDEO_THUMBNAIL = "video_thumbnail"


class ContentQuality(str, Enum):
    """内容质量等级"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    EXCLUDED = "excluded"


class ExtractedLink(BaseModel):
    """页面外链"""
    url: str = Field(..., description="绝对链接")
    title: str = Field(default="", description="锚文本")
    description: str = Field(default="", description="title 属性")
    is_external: bool = Field(default=False, description="是否指向其他主机")


class ExtractedVideo(BaseModel):
    """视频引用"""
    url: str = Field(..., description="视频链接")
    title: str = Field(default="", description="标题")
    thumbnail: Optional[str] = Field(None, description="缩略图链接")
    duration: Optional[str] = Field(None, description="时长")
    platform: MediaPlatform = Field(default=MediaPlatform.OTHER)
    platform_name: str = Field(default="", description="平台名 (other 时保留主机名)")


class ExtractedAudio(BaseModel):
    """音频引用"""
    url: str = Field(..., description="音频链接")
    title: str = Field(default="", description="标题")
    platform: MediaPlatform = Field(default=MediaPlatform.OTHER)
    platform_name: str = Field(default="", description="平台名 (other 时保留主机名)")


class ExtractedImage(BaseModel):
    """图片引用"""
    url: str = Field(..., description="图片链接或 data URI")
    alt: str = Field(default="", description="alt 文本")
    caption: str = Field(default="", description="标题/说明")
    width: Optional[int] = Field(None, description="宽度")
    height: Optional[int] = Field(None, description="高度")
    is_main: bool = Field(default=False, description="是否主图")


class ContentMetadata(BaseModel):
    """页面元数据 (尽力而为)"""
    author: Optional[str] = None
    publish_date: Optional[datetime] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    language: Optional[str] = None
    word_count: int = 0
    reading_time: int = 1


class ExtractedContent(BaseModel):
    """ContentExtractor 的输出"""
    title: str = ""
    description: str = ""
    main_text: str = ""
    links: List[ExtractedLink] = Field(default_factory=list)
    videos: List[ExtractedVideo] = Field(default_factory=list)
    audios: List[ExtractedAudio] = Field(default_factory=list)
    images: List[ExtractedImage] = Field(default_factory=list)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)


class Asset(BaseModel):
    """已下载 (或下载失败) 的资源记录"""
    id: str = Field(default_factory=_new_id)
    article_id: str
    source_url: str
    kind: AssetKind = AssetKind.IMAGE
    local_path: Optional[str] = Field(None, description="None 表示下载失败, 仅保留引用")
    byte_size: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    alt_text: str = ""
    caption: str = ""
    error: Optional[str] = None
    downloaded_at: datetime = Field(default_factory=_utcnow)

    @field_validator("byte_size", mode="before")
    @classmethod
    def _non_negative(cls, value) -> int:
        return max(0, int(value or 0))

    @property
    def is_downloaded(self) -> bool:
        return self.local_path is not None


class Article(BaseModel):
    """一篇已采集的网页"""
    id: str = Field(default_factory=_new_id)
    query_config_id: str
    url: str
    title: str = ""
    snippet: str = ""
    description: str = ""
    main_text: str = ""
    word_count: int = 0
    reading_time: int = 1
    author: Optional[str] = None
    publish_date: Optional[datetime] = None
    language: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    links: List[ExtractedLink] = Field(default_factory=list)
    videos: List[ExtractedVideo] = Field(default_factory=list)
    audios: List[ExtractedAudio] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)
    quality: ContentQuality = ContentQuality.MEDIUM
    quality_reason: str = ""
    export_path: Optional[str] = None
    fetched_at: datetime = Field(default_factory=_utcnow)

    @property
    def asset_count(self) -> int:
        """Number of assets that were actually downloaded."""
        return sum(1 for asset in self.assets if asset.is_downloaded)

    @property
    def total_asset_bytes(self) -> int:
        return sum(asset.byte_size for asset in self.assets if asset.is_downloaded)
