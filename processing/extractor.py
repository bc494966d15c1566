"""
Content Extractor
从网页 HTML 中抽取正文、链接、图片、视频、音频与元数据
"""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag
from dateutil import parser as date_parser

from models import (
    ContentMetadata,
    ExtractedAudio,
    ExtractedContent,
    ExtractedImage,
    ExtractedLink,
    ExtractedVideo,
    MediaPlatform,
)
from utils.exceptions import NoContentError
from .cleaner import TextCleaner, clean_inline


logger = logging.getLogger(__name__)

# 阅读速度 (词/分钟), 固定策略值
READING_WORDS_PER_MINUTE = 200

MAIN_CONTENT_SELECTORS = [
    "article",
    ".article-content",
    ".post-content",
    ".entry-content",
    ".content",
    "main",
    ".main-content",
]

NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form"]

BLOCK_TAGS = {
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote",
    "pre", "dt", "dd", "figcaption", "td", "th",
}

AUTHOR_SELECTORS = [
    "meta[name='author']",
    "meta[property='article:author']",
    ".author",
    ".byline",
    ".post-author",
]

DATE_SELECTORS = [
    "meta[property='article:published_time']",
    "meta[name='date']",
    "meta[name='pubdate']",
    "time[datetime]",
    ".published",
    ".post-date",
]

CATEGORY_SELECTORS = [
    "meta[property='article:section']",
    ".category",
    ".post-category",
    ".entry-category",
]

TAG_SELECTORS = ".tag, .tags a, .post-tags a"

SKIPPED_LINK_PREFIXES = ("javascript:", "mailto:", "tel:", "#")

_YOUTUBE_ID = re.compile(
    r"(?:youtube(?:-nocookie)?\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/|v/)|youtu\.be/)([A-Za-z0-9_-]{6,})"
)
_VIMEO_ID = re.compile(r"vimeo\.com/(?:video/|channels/[^/]+/)?(\d+)")
_AUDIO_FILE = re.compile(r"\.(mp3|m4a|aac|ogg|oga|opus|wav|flac)(?:$|\?)", re.IGNORECASE)
_AUDIO_HOSTS = ("soundcloud.com", "spotify.com", "podcasts.apple.com", "anchor.fm", "mixcloud.com", "bandcamp.com")
_MAIN_IMAGE_HINT = re.compile(r"\b(main|featured|hero)\b", re.IGNORECASE)


def count_words(text: str) -> int:
    """以空白分隔计数"""
    return len(str(text or "").split())


def reading_time(word_count: int) -> int:
    """阅读时间 (分钟), 至少 1 分钟"""
    return max(1, int(word_count or 0) // READING_WORDS_PER_MINUTE)


def youtube_video_id(url: str) -> Optional[str]:
    match = _YOUTUBE_ID.search(str(url or ""))
    return match.group(1) if match else None


def youtube_thumbnail(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def _host(url: str) -> str:
    try:
        return (urlparse(str(url or "")).hostname or "").lower()
    except ValueError:
        return ""


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def classify_video(url: str) -> Tuple[MediaPlatform, str, str, Optional[str]]:
    """
    识别视频平台

    Returns:
        (platform, platform_name, canonical_url, thumbnail)
    """
    video_id = youtube_video_id(url)
    if video_id:
        return (
            MediaPlatform.YOUTUBE,
            "YouTube",
            f"https://www.youtube.com/watch?v={video_id}",
            youtube_thumbnail(video_id),
        )

    match = _VIMEO_ID.search(str(url or ""))
    if match and _host_matches(_host(url), "vimeo.com"):
        return MediaPlatform.VIMEO, "Vimeo", f"https://vimeo.com/{match.group(1)}", None

    return MediaPlatform.OTHER, _host(url) or "unknown", url, None


def classify_audio(url: str) -> Tuple[MediaPlatform, str]:
    host = _host(url)
    if _host_matches(host, "soundcloud.com"):
        return MediaPlatform.SOUNDCLOUD, "SoundCloud"
    if _host_matches(host, "spotify.com"):
        return MediaPlatform.SPOTIFY, "Spotify"
    if _AUDIO_FILE.search(url):
        return MediaPlatform.DIRECT, host or "direct"
    return MediaPlatform.OTHER, host or "unknown"


def _is_audio_embed(url: str) -> bool:
    host = _host(url)
    return any(_host_matches(host, domain) for domain in _AUDIO_HOSTS)


def _int_attr(value: Any) -> Optional[int]:
    text = str(value or "").strip().lower()
    if text.endswith("px"):
        text = text[:-2].strip()
    return int(text) if text.isdigit() else None


def _attr(element: Optional[Tag], name: str) -> str:
    if element is None:
        return ""
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return str(value or "").strip()


def _element_value(element: Tag) -> str:
    """meta 取 content, time 取 datetime, 其余取文本"""
    if element.name == "meta":
        return _attr(element, "content")
    if element.name == "time" and element.get("datetime"):
        return _attr(element, "datetime")
    return clean_inline(element.get_text(" "))


def _dedupe(items: Iterable[Any], key: Callable[[Any], str]) -> List[Any]:
    seen = set()
    result = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        result.append(item)
    return result


class ContentExtractor:
    """
    HTML 内容抽取器

    extract() 对相同输入的输出确定; 对畸形 HTML 尽力而为,
    只有空页面会抛出 NoContentError.
    """

    def __init__(self, parser: str = "lxml", cleaner: Optional[TextCleaner] = None):
        self.parser = parser
        self.cleaner = cleaner or TextCleaner()

    def extract(self, page_body: Union[str, bytes, None], base_url: str) -> ExtractedContent:
        """
        抽取结构化内容

        Args:
            page_body: 页面 HTML
            base_url: 用于解析相对链接的页面地址

        Returns:
            ExtractedContent
        """
        if page_body is None or not page_body.strip():
            raise NoContentError("Page body is empty", url=base_url)

        try:
            soup = BeautifulSoup(page_body, self.parser)
        except Exception as e:
            logger.warning(f"Failed to parse markup from {base_url}: {e}")
            return ExtractedContent()

        title = self._safely("title", lambda: self._extract_title(soup), "")
        description = self._safely("description", lambda: self._extract_description(soup), "")
        images = self._safely("images", lambda: self._extract_images(soup, base_url), [])
        videos = self._safely("videos", lambda: self._extract_videos(soup, base_url), [])
        audios = self._safely("audios", lambda: self._extract_audios(soup, base_url), [])
        links = self._safely("links", lambda: self._extract_links(soup, base_url), [])
        metadata = self._safely("metadata", lambda: self._extract_metadata(soup), ContentMetadata())

        # 正文最后抽取: 会移除页面中的噪声节点
        main_text = self._safely("main_text", lambda: self._extract_main_text(soup), "")

        words = count_words(main_text)
        metadata.word_count = words
        metadata.reading_time = reading_time(words)

        logger.debug(
            f"Extracted {base_url}: {words} words, {len(links)} links, "
            f"{len(images)} images, {len(videos)} videos, {len(audios)} audios"
        )
        return ExtractedContent(
            title=title,
            description=description,
            main_text=main_text,
            links=links,
            videos=videos,
            audios=audios,
            images=images,
            metadata=metadata,
        )

    def _safely(self, section: str, func: Callable[[], Any], default: Any) -> Any:
        try:
            return func()
        except Exception as e:
            logger.warning(f"Extraction of {section} degraded: {e}")
            return default

    # ---- title / description -------------------------------------------------

    def _extract_title(self, soup: BeautifulSoup) -> str:
        og = soup.select_one("meta[property='og:title']")
        if _attr(og, "content"):
            return clean_inline(_attr(og, "content"))
        if soup.title and soup.title.get_text(strip=True):
            return clean_inline(soup.title.get_text(" "))
        h1 = soup.find("h1")
        if h1 is not None:
            return clean_inline(h1.get_text(" "))
        return ""

    def _extract_description(self, soup: BeautifulSoup) -> str:
        for selector in ("meta[name='description']", "meta[property='og:description']"):
            value = _attr(soup.select_one(selector), "content")
            if value:
                return clean_inline(value)
        return ""

    # ---- main text ---------------------------------------------------------

    def _extract_main_text(self, soup: BeautifulSoup) -> str:
        for element in soup.find_all(NOISE_TAGS):
            element.decompose()

        for selector in MAIN_CONTENT_SELECTORS:
            container = soup.select_one(selector)
            if container is None:
                continue
            text = self._element_text(container)
            if text:
                return text

        body = soup.body or soup
        return self._element_text(body)

    def _element_text(self, container: Tag) -> str:
        blocks: List[str] = []
        for element in container.find_all(list(BLOCK_TAGS)):
            nested = False
            for parent in element.parents:
                if parent is container:
                    break
                if parent.name in BLOCK_TAGS:
                    nested = True
                    break
            if not nested:
                blocks.append(element.get_text(" ", strip=True))

        text = self.cleaner.join_blocks(blocks)
        if text:
            return text
        return self.cleaner.clean(container.get_text("\n"))

    # ---- images ------------------------------------------------------------

    def _extract_images(self, soup: BeautifulSoup, base_url: str) -> List[ExtractedImage]:
        images: List[ExtractedImage] = []
        for img in soup.find_all("img"):
            src = _attr(img, "src") or _attr(img, "data-src") or _attr(img, "data-lazy-src")
            if not src:
                continue
            url = src if src.lower().startswith("data:") else urljoin(base_url, src)
            alt = clean_inline(_attr(img, "alt"))
            hint = f"{alt} {_attr(img, 'class')} {_attr(img, 'id')}"
            images.append(
                ExtractedImage(
                    url=url,
                    alt=alt,
                    caption=clean_inline(_attr(img, "title")),
                    width=_int_attr(img.get("width")),
                    height=_int_attr(img.get("height")),
                    is_main=not images or bool(_MAIN_IMAGE_HINT.search(hint)),
                )
            )

        og_image = _attr(soup.select_one("meta[property='og:image']"), "content")
        if og_image:
            url = urljoin(base_url, og_image)
            if all(image.url != url for image in images):
                images.append(ExtractedImage(url=url, caption="og:image", is_main=not images))

        return _dedupe(images, key=lambda image: image.url)

    # ---- videos / audios ---------------------------------------------------

    def _extract_videos(self, soup: BeautifulSoup, base_url: str) -> List[ExtractedVideo]:
        videos: List[ExtractedVideo] = []

        for frame in soup.find_all(["iframe", "embed"]):
            src = _attr(frame, "src") or _attr(frame, "data-src")
            if not src:
                continue
            url = urljoin(base_url, src)
            if _is_audio_embed(url):
                continue
            platform, name, canonical, thumbnail = classify_video(url)
            videos.append(
                ExtractedVideo(
                    url=canonical,
                    title=clean_inline(_attr(frame, "title")),
                    thumbnail=thumbnail,
                    platform=platform,
                    platform_name=name,
                )
            )

        for video in soup.find_all("video"):
            src = _attr(video, "src")
            if not src:
                source = video.find("source")
                src = _attr(source, "src")
            if not src:
                continue
            poster = _attr(video, "poster")
            videos.append(
                ExtractedVideo(
                    url=urljoin(base_url, src),
                    title=clean_inline(_attr(video, "title")),
                    thumbnail=urljoin(base_url, poster) if poster else None,
                    duration=_attr(video, "duration") or None,
                    platform=MediaPlatform.DIRECT,
                    platform_name=_host(urljoin(base_url, src)) or "direct",
                )
            )

        return _dedupe(videos, key=lambda video: video.url)

    def _extract_audios(self, soup: BeautifulSoup, base_url: str) -> List[ExtractedAudio]:
        audios: List[ExtractedAudio] = []

        for audio in soup.find_all("audio"):
            src = _attr(audio, "src")
            if not src:
                src = _attr(audio.find("source"), "src")
            if not src:
                continue
            url = urljoin(base_url, src)
            audios.append(
                ExtractedAudio(
                    url=url,
                    title=clean_inline(_attr(audio, "title")),
                    platform=MediaPlatform.DIRECT,
                    platform_name=_host(url) or "direct",
                )
            )

        for frame in soup.find_all(["iframe", "embed"]):
            src = _attr(frame, "src") or _attr(frame, "data-src")
            url = urljoin(base_url, src) if src else ""
            if not url or not _is_audio_embed(url):
                continue
            platform, name = classify_audio(url)
            audios.append(
                ExtractedAudio(url=url, title=clean_inline(_attr(frame, "title")), platform=platform, platform_name=name)
            )

        for anchor in soup.find_all("a", href=_AUDIO_FILE):
            url = urljoin(base_url, _attr(anchor, "href"))
            platform, name = classify_audio(url)
            audios.append(
                ExtractedAudio(url=url, title=clean_inline(anchor.get_text(" ")), platform=platform, platform_name=name)
            )

        return _dedupe(audios, key=lambda audio: audio.url)

    # ---- links -------------------------------------------------------------

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[ExtractedLink]:
        base_host = _host(base_url)
        links: List[ExtractedLink] = []
        for anchor in soup.find_all("a", href=True):
            href = _attr(anchor, "href")
            if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
                continue
            url = urljoin(base_url, href)
            if urlparse(url).scheme not in ("http", "https"):
                continue
            host = _host(url)
            links.append(
                ExtractedLink(
                    url=url,
                    title=clean_inline(anchor.get_text(" ")),
                    description=clean_inline(_attr(anchor, "title")),
                    is_external=bool(host) and host != base_host,
                )
            )
        return _dedupe(links, key=lambda link: link.url)

    # ---- metadata ----------------------------------------------------------

    def _extract_metadata(self, soup: BeautifulSoup) -> ContentMetadata:
        return ContentMetadata(
            author=self._first_value(soup, AUTHOR_SELECTORS),
            publish_date=self._extract_publish_date(soup),
            category=self._first_value(soup, CATEGORY_SELECTORS),
            tags=self._extract_tags(soup),
            language=self._extract_language(soup),
        )

    def _first_value(self, soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
        for selector in selectors:
            for element in soup.select(selector):
                value = _element_value(element)
                if value:
                    return value
        return None

    def _extract_publish_date(self, soup: BeautifulSoup):
        for selector in DATE_SELECTORS:
            for element in soup.select(selector):
                value = _element_value(element)
                if not value:
                    continue
                try:
                    return date_parser.parse(value)
                except (ValueError, OverflowError, TypeError):
                    logger.debug(f"Unparseable date {value!r} from {selector}")
        return None

    def _extract_tags(self, soup: BeautifulSoup) -> List[str]:
        tags: List[str] = []
        keywords = _attr(soup.select_one("meta[name='keywords']"), "content")
        if keywords:
            tags.extend(part.strip() for part in keywords.split(","))
        for element in soup.select(TAG_SELECTORS):
            tags.append(clean_inline(element.get_text(" ")))
        return _dedupe([tag for tag in tags if tag], key=lambda tag: tag.lower())

    def _extract_language(self, soup: BeautifulSoup) -> Optional[str]:
        html_tag = soup.find("html")
        lang = _attr(html_tag, "lang") if isinstance(html_tag, Tag) else ""
        if lang:
            return lang
        meta = soup.find("meta", attrs={"http-equiv": re.compile(r"^content-language$", re.IGNORECASE)})
        value = _attr(meta, "content")
        return value or None
