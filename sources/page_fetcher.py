"""Page body fetcher used by the ingestion executor."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from config import get_fetch_settings
from utils.exceptions import PageFetchError
from utils.logger import get_fetch_logger

logger = get_fetch_logger()


async def _http_get_text(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
    ) as client:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return str(response.text or "")


class PageFetcher:
    """Download a result page as text. Every failure becomes ``PageFetchError``."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_fetch_settings()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": self.settings.accept,
        }

    async def fetch(self, url: str) -> str:
        target = str(url or "").strip()
        if not target.lower().startswith(("http://", "https://")):
            raise PageFetchError(f"Unsupported URL: {target!r}", url=target)

        try:
            body = await _http_get_text(
                target,
                headers=self._headers(),
                timeout=self.settings.page_timeout,
                transport=self._transport,
            )
        except httpx.HTTPStatusError as e:
            raise PageFetchError(f"HTTP {e.response.status_code} for {target}", url=target)
        except httpx.HTTPError as e:
            raise PageFetchError(f"Network error for {target}: {e}", url=target)
        except (httpx.InvalidURL, UnicodeError, ValueError) as e:
            raise PageFetchError(f"Invalid URL {target}: {e}", url=target)

        logger.debug(f"Fetched {len(body)} chars from {target}")
        return body
