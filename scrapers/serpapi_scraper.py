"""
SerpAPI Search Client
Google 搜索结果 (organic results) 获取
API 文档: https://serpapi.com/search-api
"""
from typing import Any, Dict, List, Optional
import logging

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .base import RateLimitedSearchClient
from config import CredentialResolver, SERPAPI_API_KEY, get_search_settings, resolve_credential
from core import SearchRequest, SearchResult
from utils.exceptions import (
    EmptyResponseError,
    MalformedRequestError,
    MissingCredentialError,
    SearchDecodeError,
    SearchError,
    SearchTransportError,
)


logger = logging.getLogger(__name__)

PROVIDER = "serpapi"

# SearchRequest field -> SerpAPI query parameter (only sent when non-blank)
_OPTIONAL_PARAMS = {
    "location": "location",
    "safe": "safe",
    "result_type": "tbm",
    "time_range": "tbs",
    "as_qdr": "as_qdr",
    "nfpr": "nfpr",
    "filter": "filter",
}


def _is_retryable(error: BaseException) -> bool:
    if not isinstance(error, SearchTransportError):
        return False
    return error.status_code is None or error.status_code >= 500 or error.status_code == 429


class SerpApiSearchClient(RateLimitedSearchClient):
    """
    SerpAPI 搜索客户端

    特性:
    - 超过单页数量时自动分页 (start = page * page_size)
    - 传输错误按 tenacity 指数退避重试
    - 凭据通过 resolver 获取, 缺失时抛出 MissingCredentialError
    """

    def __init__(
        self,
        credential_resolver: Optional[CredentialResolver] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        requests_per_second: float = 5.0,
    ):
        super().__init__(requests_per_second=requests_per_second)
        self._search_settings = get_search_settings()
        self._resolve = credential_resolver or resolve_credential
        self._transport = transport
        self._max_retries = max(1, int(max_retries or self.settings.general.max_retries))

    @property
    def name(self) -> str:
        return "SerpAPI"

    def is_configured(self) -> bool:
        return bool(self._resolve(SERPAPI_API_KEY))

    async def _get_session(self) -> httpx.AsyncClient:
        """获取或创建 HTTP 会话"""
        if self._session is None:
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(self._search_settings.request_timeout),
                headers={"User-Agent": self._search_settings.user_agent},
                transport=self._transport,
                follow_redirects=True,
            )
        return self._session

    def _api_key(self) -> str:
        key = self._resolve(SERPAPI_API_KEY)
        if not key:
            raise MissingCredentialError(SERPAPI_API_KEY, provider=PROVIDER)
        return key

    def build_params(self, request: SearchRequest, *, api_key: str, count: int, start: int) -> Dict[str, str]:
        """构造查询参数"""
        query = str(request.query or "").strip()
        if not query:
            raise MalformedRequestError("Query text is empty", provider=PROVIDER)

        params = {
            "q": query,
            "engine": self._search_settings.engine,
            "api_key": api_key,
            "num": str(count),
            "start": str(start),
            "hl": request.language or self._search_settings.default_language,
            "gl": request.region or self._search_settings.default_region,
        }
        for field_name, param in _OPTIONAL_PARAMS.items():
            value = str(getattr(request, field_name, "") or "").strip()
            if value:
                params[param] = value
        return params

    def _endpoint(self, raw: str) -> httpx.URL:
        try:
            url = httpx.URL(raw)
        except Exception as e:
            raise MalformedRequestError(f"Invalid endpoint: {raw}", provider=PROVIDER, error=str(e))
        if url.scheme not in {"http", "https"} or not url.host:
            raise MalformedRequestError(f"Invalid endpoint: {raw}", provider=PROVIDER)
        return url

    async def _get_json(self, url: httpx.URL, params: Dict[str, str]) -> Dict[str, Any]:
        await self._wait_for_rate_limit()
        session = await self._get_session()

        try:
            response = await session.get(url, params=params)
        except httpx.HTTPError as e:
            raise SearchTransportError(f"Network error: {e}", provider=PROVIDER)

        if not 200 <= response.status_code < 300:
            raise SearchTransportError(
                f"HTTP error: {response.status_code}",
                provider=PROVIDER,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SearchDecodeError(f"Response could not be decoded: {e}", provider=PROVIDER)
        if not isinstance(data, dict):
            raise SearchDecodeError("Unexpected response shape", provider=PROVIDER)
        if data.get("error") and not data.get("organic_results"):
            message = str(data.get("error"))
            if "no results" in message.lower():
                return {"organic_results": []}
            raise SearchTransportError(f"Provider error: {message}", provider=PROVIDER)
        return data

    async def _get_json_with_retry(self, url: httpx.URL, params: Dict[str, str]) -> Dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self._get_json(url, params)
        raise SearchTransportError("Retry loop exhausted", provider=PROVIDER)

    async def fetch_page(self, request: SearchRequest, *, count: int, start: int) -> List[SearchResult]:
        """获取单页结果"""
        api_key = self._api_key()
        params = self.build_params(request, api_key=api_key, count=count, start=start)
        url = self._endpoint(self._search_settings.endpoint)
        data = await self._get_json_with_retry(url, params)

        organic = data.get("organic_results") or []
        if not isinstance(organic, list):
            raise SearchDecodeError("organic_results is not a list", provider=PROVIDER)
        return self._convert_results(organic, offset=start)

    async def search(self, request: SearchRequest) -> List[SearchResult]:
        """
        搜索并返回至多 request.max_results 条结果

        第一页失败中止整个搜索; 后续页失败时保留已获取的结果.
        """
        total = max(1, int(request.max_results or self._search_settings.max_results))
        page_size = max(1, int(self._search_settings.page_size))

        logger.info(f"[{self.name}] Searching: {request.query} (count={total})")

        results: List[SearchResult] = []
        page = 0
        while len(results) < total:
            count = min(page_size, total - len(results))
            start = page * page_size
            try:
                page_results = await self.fetch_page(request, count=count, start=start)
            except SearchError as e:
                if page == 0:
                    self._log_error("Search failed", e)
                    raise
                logger.warning(f"[{self.name}] Page {page + 1} failed, keeping {len(results)} results: {e}")
                break

            results.extend(page_results)
            if len(page_results) < count:
                break
            page += 1

        if not results:
            raise EmptyResponseError("No results returned", provider=PROVIDER, query=request.query)

        results = results[:total]
        self._log_search(request.query, len(results))
        return results

    async def account_info(self) -> Dict[str, Any]:
        """查询账户额度"""
        api_key = self._api_key()
        url = self._endpoint(self._search_settings.account_endpoint)
        data = await self._get_json_with_retry(url, {"api_key": api_key})
        return {
            "credits_remaining": data.get("total_searches_left", data.get("credits_remaining")),
            "credits_limit": data.get("searches_per_month", data.get("credits_limit")),
            "plan": data.get("plan_name", data.get("plan")),
        }

    def _convert_results(self, organic: List[Any], *, offset: int = 0) -> List[SearchResult]:
        """转换为 SearchResult, 丢弃缺少链接的条目"""
        results: List[SearchResult] = []
        for idx, item in enumerate(organic):
            if not isinstance(item, dict):
                continue
            url = str(item.get("link") or "").strip()
            if not url:
                continue
            results.append(
                SearchResult(
                    title=str(item.get("title") or "").strip(),
                    url=url,
                    snippet=str(item.get("snippet") or "").strip(),
                    position=int(item.get("position") or offset + idx + 1),
                )
            )
        return results
