"""Single-request transport: conditional GET, response classification and retries.

One `execute` call issues up to `max_retries + 1` attempts against one
endpoint. Throttling (429) and transient failures (5xx, network errors) are
retried with backoff from `core.rate_limiter.RateLimiter`; 401/403/other 4xx
fail immediately. When retries run out, a cached entry is served instead of
raising.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from core.cache import CacheStore
from core.errors import (
    ApiError,
    AuthError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TransientError,
)
from core.models import CacheEntry, FetchResult
from core.rate_limiter import RateLimiter

logger = logging.getLogger("wanikani.transport")

CacheTransform = Callable[[Any], Any]


class RetryingTransport:
    """Executes GETs against the WaniKani API and writes successes to the cache.

    Purpose:
      - execute(endpoint, cache_key=..., cached=..., allow_conditional=..., ttl_ms=...)
        -> FetchResult(data, from_cache)

    Key behavior:
      - Sends If-None-Match (preferred) or If-Modified-Since for cached entries.
      - 304 returns the cached payload without re-downloading it.
      - Honors Retry-After on 429, else backs off 1s, 2s, 4s, 8s.
      - Falls back to the cached payload when every attempt failed.
    """

    BASE_URL = "https://api.wanikani.com/v2"
    API_REVISION = "20170710"

    def __init__(
        self,
        *,
        token: str,
        store: CacheStore,
        base_url: str = BASE_URL,
        timeout: float = 20.0,
        verify: bool = True,
        max_retries: int = 4,
        rate_limiter: Optional[RateLimiter] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._store = store
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._timeout = float(timeout)
        self._verify = bool(verify)
        self._max_retries = max(0, int(max_retries))
        self._rate_limiter = rate_limiter or RateLimiter()
        self._http_transport = http_transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def execute(
        self,
        endpoint: str,
        *,
        cache_key: str,
        cached: Optional[CacheEntry[Any]] = None,
        allow_conditional: bool = True,
        ttl_ms: Optional[int] = None,
        cache_transform: Optional[CacheTransform] = None,
    ) -> FetchResult[Any]:
        headers = self._conditional_headers(cached if allow_conditional else None)
        attempts = self._max_retries + 1

        last_error: Optional[ExternalServiceError] = None
        last_cause: Optional[BaseException] = None

        async with self._create_client() as client:
            for attempt in range(attempts):
                is_final = attempt == attempts - 1

                try:
                    resp = await client.get(endpoint, headers=headers)
                except httpx.HTTPError as e:
                    last_error = TransientError(f"WaniKani request failed (GET {endpoint}): {e}")
                    last_cause = e
                    logger.warning(f"Network error on {endpoint} (attempt {attempt + 1}/{attempts}): {e}")
                    if not is_final:
                        await self._rate_limiter.sleep(self._rate_limiter.backoff_delay(attempt))
                    continue

                if resp.status_code == 304:
                    if cached is not None:
                        logger.debug(f"Not modified: {endpoint}")
                        return FetchResult(data=cached.data, from_cache=True)
                    raise ApiError(
                        f"WaniKani returned 304 for {endpoint} with nothing cached",
                        status_code=304,
                    )

                if resp.status_code == 429:
                    last_error = RateLimitError(
                        "Rate limit exceeded. Please wait a moment and try again.",
                        status_code=429,
                    )
                    last_cause = None
                    if is_final:
                        break
                    delay = self._rate_limiter.retry_delay(attempt, resp)
                    logger.warning(f"Rate limited on {endpoint}; retrying after {delay:.1f}s")
                    await self._rate_limiter.sleep(delay)
                    continue

                if resp.status_code >= 500:
                    last_error = TransientError(
                        f"WaniKani API error: {resp.status_code} {resp.reason_phrase}",
                        status_code=resp.status_code,
                    )
                    last_cause = None
                    logger.warning(f"Server error {resp.status_code} on {endpoint} (attempt {attempt + 1}/{attempts})")
                    if not is_final:
                        await self._rate_limiter.sleep(self._rate_limiter.backoff_delay(attempt))
                    continue

                if not resp.is_success:
                    raise self._classify(resp, endpoint)

                return self._store_success(resp, endpoint, cache_key, ttl_ms, cache_transform)

        if cached is not None:
            logger.warning(f"Retries exhausted for {endpoint}; serving cached data")
            return FetchResult(data=cached.data, from_cache=True)

        if last_error is None:
            last_error = TransientError(f"WaniKani request failed (GET {endpoint})")
        raise last_error from last_cause

    # --- HTTP helpers ---

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Wanikani-Revision": self.API_REVISION,
            "Accept": "application/json",
        }

    def _conditional_headers(self, cached: Optional[CacheEntry[Any]]) -> Dict[str, str]:
        if cached is None:
            return {}
        if cached.etag:
            return {"If-None-Match": cached.etag}
        if cached.last_modified:
            return {"If-Modified-Since": cached.last_modified}
        return {}

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._build_headers(),
            timeout=self._timeout,
            verify=self._verify,
            transport=self._http_transport,
        )

    def _classify(self, resp: httpx.Response, endpoint: str) -> ExternalServiceError:
        status = resp.status_code
        if status == 401:
            return AuthError("Invalid API token. Please check your token and try again.", status_code=status)
        if status == 403:
            return ForbiddenError("Access denied. Check your subscription level.", status_code=status)
        if status == 404:
            return NotFoundError(f"Not found: {endpoint}", status_code=status)
        return ApiError(f"WaniKani API error: {status} {resp.reason_phrase}", status_code=status)

    def _store_success(
        self,
        resp: httpx.Response,
        endpoint: str,
        cache_key: str,
        ttl_ms: Optional[int],
        cache_transform: Optional[CacheTransform],
    ) -> FetchResult[Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(f"WaniKani returned invalid JSON for {endpoint}", status_code=resp.status_code) from e

        cached_form = cache_transform(data) if cache_transform else data
        stored = self._store.put(
            cache_key,
            cached_form,
            etag=resp.headers.get("ETag"),
            last_modified=resp.headers.get("Last-Modified"),
            ttl_ms=ttl_ms,
        )
        if not stored:
            logger.info(f"Proceeding without caching {endpoint}")
        return FetchResult(data=data, from_cache=False)
