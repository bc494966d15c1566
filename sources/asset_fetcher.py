"""Asset fetcher: inline payloads, local files, then network.

``AssetFetcher.fetch`` never raises; every failure comes back as an
``AssetFailure`` which the executor records as an asset with no local path.
"""

from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
from urllib.parse import unquote, unquote_to_bytes, urljoin, urlparse

import httpx

from config import get_settings
from storage.cache import MemoryCache
from utils.exceptions import AssetFetchError
from utils.logger import get_fetch_logger

logger = get_fetch_logger()

DEFAULT_EXTENSION = "jpg"

_CONTENT_TYPE_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/pjpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "image/tiff": "tiff",
    "image/avif": "avif",
    "image/heic": "heic",
}

_KNOWN_SUFFIXES = {"jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico", "tiff", "avif", "heic"}


@dataclass
class AssetBytes:
    """Downloaded asset payload."""

    source_url: str
    data: bytes
    content_type: str = ""
    extension: str = DEFAULT_EXTENSION
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def byte_count(self) -> int:
        return len(self.data)


@dataclass
class AssetFailure:
    """Typed, non-fatal failure for one asset reference."""

    source_url: str
    error: AssetFetchError = field(default_factory=lambda: AssetFetchError("unknown"))

    @property
    def reason(self) -> str:
        return str(self.error.message)


AssetResult = Union[AssetBytes, AssetFailure]


def extension_for(content_type: Optional[str], url: str = "") -> str:
    """Pick a file suffix from the declared content type, then the URL path."""
    mime = str(content_type or "").split(";", 1)[0].strip().lower()
    if mime in _CONTENT_TYPE_EXTENSIONS:
        return _CONTENT_TYPE_EXTENSIONS[mime]

    path = urlparse(str(url or "")).path if "://" in str(url or "") else str(url or "")
    suffix = Path(unquote(path)).suffix.lstrip(".").lower()
    if suffix in _KNOWN_SUFFIXES:
        return "jpg" if suffix == "jpeg" else suffix
    return DEFAULT_EXTENSION


def sniff_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Read (width, height) from PNG, GIF or JPEG headers."""
    if len(data) >= 24 and data[:8] == b"\x89PNG\r\n\x1a\n" and data[12:16] == b"IHDR":
        width, height = struct.unpack(">II", data[16:24])
        return int(width), int(height)

    if len(data) >= 10 and data[:6] in (b"GIF87a", b"GIF89a"):
        width, height = struct.unpack("<HH", data[6:10])
        return int(width), int(height)

    if len(data) >= 4 and data[:2] == b"\xff\xd8":
        offset = 2
        while offset + 9 < len(data):
            if data[offset] != 0xFF:
                offset += 1
                continue
            marker = data[offset + 1]
            if marker in (0xD8, 0x01) or 0xD0 <= marker <= 0xD7:
                offset += 2
                continue
            (length,) = struct.unpack(">H", data[offset + 2:offset + 4])
            if 0xC0 <= marker <= 0xCF and marker not in (0xC4, 0xC8, 0xCC):
                height, width = struct.unpack(">HH", data[offset + 5:offset + 9])
                return int(width), int(height)
            offset += 2 + length
    return None


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Decode ``data:[<mime>][;base64],<payload>`` into (bytes, mime)."""
    header, sep, payload = str(uri).partition(",")
    if not sep or not header.lower().startswith("data:"):
        raise AssetFetchError("Malformed data URI", source=uri[:64])

    params = header[5:].split(";")
    mime = params[0].strip().lower() or "text/plain"
    is_base64 = any(p.strip().lower() == "base64" for p in params[1:])

    if is_base64:
        try:
            compact = "".join(unquote(payload).split())
            padded = compact + "=" * (-len(compact) % 4)
            return base64.b64decode(padded, validate=True), mime
        except (binascii.Error, ValueError) as e:
            raise AssetFetchError(f"Invalid base64 payload: {e}", source=uri[:64])
    return unquote_to_bytes(payload), mime


def resolve_asset_ref(source_ref: str, base_url: Optional[str] = None) -> str:
    """Turn protocol-relative and relative references into absolute URLs."""
    ref = str(source_ref or "").strip()
    if ref.startswith("//"):
        return f"https:{ref}"
    if "://" in ref or ref.lower().startswith("data:"):
        return ref
    if base_url:
        return urljoin(base_url, ref)
    return ref


def _local_path(ref: str) -> Optional[Path]:
    if ref.lower().startswith("file://"):
        return Path(unquote(urlparse(ref).path))
    if ref.startswith("/") and not ref.startswith("//"):
        candidate = Path(ref)
        if candidate.is_file():
            return candidate
    return None


def _allows_local(base_url: Optional[str]) -> bool:
    if not base_url:
        return True
    return urlparse(base_url).scheme.lower() == "file"


async def _http_get_bytes(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
    max_bytes: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[bytes, str]:
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    ) as client:
        async with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if max_bytes is not None and total > max_bytes:
                    raise AssetFetchError(f"Asset exceeds {max_bytes} bytes", source=url)
                chunks.append(chunk)
            return b"".join(chunks), str(response.headers.get("content-type") or "")


class AssetFetcher:
    """
    Resolve an asset reference to bytes.

    Resolution order: inline ``data:`` payload, local file, network fetch.
    Network payloads are cached by URL for the lifetime of the fetcher.
    """

    def __init__(
        self,
        cache: Optional[MemoryCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.settings = settings.fetch
        self._transport = transport
        self._cache = cache if cache is not None else MemoryCache(
            ttl=settings.storage.asset_cache_ttl,
            max_size=settings.storage.asset_cache_size,
            max_bytes=settings.storage.asset_cache_max_bytes,
        )
        self._cache_item_bytes = settings.storage.asset_cache_item_bytes

    @property
    def cache(self) -> MemoryCache:
        return self._cache

    async def fetch(self, source_ref: str, base_url: Optional[str] = None) -> AssetResult:
        ref = source_ref or ""
        try:
            ref = resolve_asset_ref(source_ref, base_url)
            return await self._fetch(ref, allow_local=_allows_local(base_url))
        except AssetFetchError as e:
            logger.warning(f"Asset fetch failed for {ref[:120]}: {e.message}")
            return AssetFailure(source_url=ref, error=e)
        except Exception as e:
            logger.warning(f"Asset fetch failed for {ref[:120]}: {type(e).__name__}: {e}")
            return AssetFailure(
                source_url=ref,
                error=AssetFetchError(f"Invalid asset reference: {type(e).__name__}: {e}", source=ref[:120]),
            )

    def cache_stats(self) -> Dict[str, int]:
        return {
            "entries": self._cache.size(),
            "bytes": self._cache.total_bytes,
            "hits": self._cache.hits,
            "misses": self._cache.misses,
        }

    async def _fetch(self, ref: str, allow_local: bool = True) -> AssetBytes:
        if not ref:
            raise AssetFetchError("Empty asset reference")

        if ref.lower().startswith("data:"):
            data, mime = decode_data_uri(ref)
            return self._build(ref, data, mime)

        local = _local_path(ref)
        if local is not None:
            if not allow_local:
                raise AssetFetchError("Local file reference from a remote page", source=ref)
            try:
                data = local.read_bytes()
            except OSError as e:
                raise AssetFetchError(f"Cannot read local file: {e}", source=ref)
            return self._build(ref, data, "", name_hint=local.name)

        if not ref.lower().startswith(("http://", "https://")):
            raise AssetFetchError(f"Unresolvable asset reference: {ref}", source=ref)

        cached = self._cache.get(ref)
        if cached is not None:
            logger.debug(f"Asset cache hit: {ref}")
            return cached

        try:
            data, content_type = await _http_get_bytes(
                ref,
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.asset_timeout,
                max_bytes=self.settings.max_asset_bytes,
                transport=self._transport,
            )
        except httpx.HTTPStatusError as e:
            raise AssetFetchError(f"HTTP {e.response.status_code}", source=ref)
        except httpx.HTTPError as e:
            raise AssetFetchError(f"Network error: {e}", source=ref)

        asset = self._build(ref, data, content_type)
        if asset.byte_count <= self._cache_item_bytes:
            self._cache.set(ref, asset, size=asset.byte_count)
        return asset

    def _build(self, ref: str, data: bytes, content_type: str, name_hint: str = "") -> AssetBytes:
        if self.settings.max_asset_bytes and len(data) > self.settings.max_asset_bytes:
            raise AssetFetchError(f"Asset exceeds {self.settings.max_asset_bytes} bytes", source=ref[:120])

        hint = name_hint or ("" if ref.lower().startswith("data:") else ref)
        dims = sniff_dimensions(data)
        return AssetBytes(
            source_url=ref,
            data=data,
            content_type=content_type,
            extension=extension_for(content_type, hint),
            width=dims[0] if dims else None,
            height=dims[1] if dims else None,
        )
