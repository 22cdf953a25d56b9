"""Pagination walker: follows `pages.next_url` until a collection is complete."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from core.errors import ApiError
from core.models import CollectionResult, FetchResult

from .inputs import with_query

logger = logging.getLogger("wanikani.pagination")

# (endpoint, ttl_ms, cache_transform) -> FetchResult of one page envelope
PageFetcher = Callable[[str, Optional[int], Optional[Callable[[Any], Any]]], Awaitable[FetchResult[Any]]]

PAGE_DELAY_SECONDS = 0.1


class PaginationWalker:
    def __init__(self, *, fetch_page: PageFetcher, base_url: str) -> None:
        self._fetch_page = fetch_page
        self._base_url = base_url.rstrip("/")

    async def collect_all(
        self,
        endpoint: str,
        updated_after: Optional[str] = None,
        ttl_ms: Optional[int] = None,
        cache_transform: Optional[Callable[[Any], Any]] = None,
    ) -> CollectionResult[Any]:
        next_endpoint: Optional[str] = endpoint
        if updated_after:
            next_endpoint = with_query(endpoint, "updated_after", updated_after)

        items: List[Any] = []
        any_from_cache = False
        pages = 0

        while next_endpoint:
            result = await self._fetch_page(next_endpoint, ttl_ms, cache_transform)
            envelope = result.data
            if not isinstance(envelope, Mapping) or not isinstance(envelope.get("data"), list):
                raise ApiError(f"Expected a collection page from {next_endpoint}")

            pages += 1
            any_from_cache = any_from_cache or result.from_cache
            items.extend(envelope["data"])

            next_endpoint = self._relative(((envelope.get("pages") or {}).get("next_url")))

            # Pause between pages that actually hit the network
            if next_endpoint and not result.from_cache:
                await asyncio.sleep(PAGE_DELAY_SECONDS)

        logger.debug(f"Collected {len(items)} items from {endpoint} over {pages} page(s)")
        return CollectionResult(items=items, from_cache=any_from_cache)

    def _relative(self, next_url: Optional[str]) -> Optional[str]:
        if not next_url:
            return None
        if next_url.startswith(self._base_url):
            return next_url[len(self._base_url):] or "/"
        return next_url
