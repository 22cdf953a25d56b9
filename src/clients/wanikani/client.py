"""WaniKani client facade: per-resource fetch methods over a shared cache.

This module composes the data-access engine: a persistent `core.cache.CacheStore`,
`core.inflight.InflightRegistry` for de-duplicating concurrent fetches,
`core.scheduler.RequestScheduler` for bounded concurrency, the
`RetryingTransport` for individual GETs and the `PaginationWalker` for
collections. Callers get decoded records plus a `from_cache` flag.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type, Union

import httpx

from core.backends import MemoryBackend
from core.cache import DEFAULT_MAX_ENTRY_BYTES, CacheStore
from core.errors import ValidationError
from core.inflight import InflightRegistry
from core.interfaces import KeyValueBackend
from core.models import CacheStats, CollectionResult, FetchResult
from core.rate_limiter import RateLimiter
from core.scheduler import RequestScheduler

from .inputs import (
    make_cache_key,
    normalize_levels,
    normalize_subject_id,
    normalize_token,
    normalize_updated_after,
    token_suffix,
    with_query,
)
from .pagination import PaginationWalker
from .policies import ENDPOINTS, ResourceKind, get_ttl_for_kind, parse_kind
from .resources import (
    Assignment,
    LevelProgression,
    Resource,
    Review,
    ReviewStatistic,
    SpacedRepetitionSystem,
    Subject,
    Summary,
    User,
    decode_many,
)
from .subjects import filter_by_subscription, slim_subject_page
from .sync import LastSyncStore
from .transport import RetryingTransport

logger = logging.getLogger("wanikani.client")

UpdatedAfter = Union[str, datetime, None]

_RECORD_TYPES: Dict[ResourceKind, Type[Resource]] = {
    ResourceKind.SUBJECTS: Subject,
    ResourceKind.USER: User,
    ResourceKind.ASSIGNMENTS: Assignment,
    ResourceKind.REVIEW_STATISTICS: ReviewStatistic,
    ResourceKind.REVIEWS: Review,
    ResourceKind.SUMMARY: Summary,
    ResourceKind.LEVEL_PROGRESSIONS: LevelProgression,
    ResourceKind.SPACED_REPETITION_SYSTEMS: SpacedRepetitionSystem,
}

# Kinds served as a single object rather than a paginated collection
_SINGLE_OBJECT_KINDS = frozenset({ResourceKind.USER, ResourceKind.SUMMARY})


class WaniKaniClient:
    """Async WaniKani API v2 client with persistent caching.

    Purpose:
      - get_user(), get_summary(), get_subject(id) -> FetchResult[record]
      - get_subjects(levels, updated_after), get_assignments(updated_after),
        get_review_statistics(...), get_reviews(...), get_level_progressions(...),
        get_spaced_repetition_systems(...) -> FetchResult[List[record]]
      - cache maintenance: clear_user_cache(), clear_all_cache(), cache_stats(),
        has_fresh_cache(kind), get_stale(kind), sweep_expired()

    Key behavior:
      - A fresh cache entry is returned without touching the network unless
        force_refresh=True, which revalidates with a conditional GET.
      - Concurrent calls for the same endpoint and account share one fetch.
      - At most `max_concurrent` requests are on the wire at once.
      - Failures fall back to cached data when there is any.
    """

    CACHE_PREFIX = "wanikani"

    def __init__(
        self,
        api_token: str,
        *,
        backend: Optional[KeyValueBackend] = None,
        base_url: str = RetryingTransport.BASE_URL,
        timeout: float = 20.0,
        verify: bool = True,
        max_concurrent: int = 3,
        max_retries: int = 4,
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
        rate_limiter: Optional[RateLimiter] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = normalize_token(api_token)
        self._backend = backend if backend is not None else MemoryBackend()

        self._store = CacheStore(self._backend, prefix=self.CACHE_PREFIX, max_entry_bytes=max_entry_bytes)
        self._inflight = InflightRegistry()
        self._scheduler = RequestScheduler(max_concurrent=max_concurrent)
        self._transport = RetryingTransport(
            token=self._token,
            store=self._store,
            base_url=base_url,
            timeout=timeout,
            verify=verify,
            max_retries=max_retries,
            rate_limiter=rate_limiter,
            http_transport=http_transport,
        )
        self._sync = LastSyncStore(self._backend, prefix=self.CACHE_PREFIX, token=self._token)

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def scheduler(self) -> RequestScheduler:
        return self._scheduler

    @property
    def inflight(self) -> InflightRegistry:
        return self._inflight

    def cache_key(self, endpoint: str) -> str:
        return make_cache_key(self.CACHE_PREFIX, endpoint, self._token)

    # --- Single objects ---

    async def get_user(self, *, force_refresh: bool = False) -> FetchResult[User]:
        result = await self._fetch_page("/user", get_ttl_for_kind(ResourceKind.USER), force_refresh=force_refresh)
        return FetchResult(data=User.from_api(result.data), from_cache=result.from_cache)

    async def get_summary(self, *, force_refresh: bool = False) -> FetchResult[Summary]:
        result = await self._fetch_page("/summary", get_ttl_for_kind(ResourceKind.SUMMARY), force_refresh=force_refresh)
        return FetchResult(data=Summary.from_api(result.data), from_cache=result.from_cache)

    async def get_subject(self, subject_id: int, *, force_refresh: bool = False) -> FetchResult[Subject]:
        # Detail fetches are cached in full; only collection pages are slimmed
        sid = normalize_subject_id(subject_id)
        result = await self._fetch_page(
            f"/subjects/{sid}",
            get_ttl_for_kind(ResourceKind.SUBJECTS),
            force_refresh=force_refresh,
        )
        return FetchResult(data=Subject.from_api(result.data), from_cache=result.from_cache)

    # --- Collections ---

    async def get_subjects(
        self,
        levels: Optional[Iterable[int]] = None,
        updated_after: UpdatedAfter = None,
        *,
        force_refresh: bool = False,
    ) -> FetchResult[List[Subject]]:
        return await self._collection(
            ResourceKind.SUBJECTS,
            self._base_endpoint(ResourceKind.SUBJECTS, levels),
            updated_after,
            force_refresh=force_refresh,
            cache_transform=slim_subject_page,
        )

    async def get_subjects_with_subscription_filter(
        self,
        user: User,
        levels: Optional[Iterable[int]] = None,
        updated_after: UpdatedAfter = None,
        *,
        force_refresh: bool = False,
    ) -> FetchResult[List[Subject]]:
        result = await self.get_subjects(levels, updated_after, force_refresh=force_refresh)
        return FetchResult(data=filter_by_subscription(result.data, user), from_cache=result.from_cache)

    async def get_assignments(
        self, updated_after: UpdatedAfter = None, *, force_refresh: bool = False
    ) -> FetchResult[List[Assignment]]:
        return await self._collection(ResourceKind.ASSIGNMENTS, None, updated_after, force_refresh=force_refresh)

    async def get_review_statistics(
        self, updated_after: UpdatedAfter = None, *, force_refresh: bool = False
    ) -> FetchResult[List[ReviewStatistic]]:
        return await self._collection(ResourceKind.REVIEW_STATISTICS, None, updated_after, force_refresh=force_refresh)

    async def get_reviews(
        self, updated_after: UpdatedAfter = None, *, force_refresh: bool = False
    ) -> FetchResult[List[Review]]:
        return await self._collection(ResourceKind.REVIEWS, None, updated_after, force_refresh=force_refresh)

    async def get_level_progressions(
        self, updated_after: UpdatedAfter = None, *, force_refresh: bool = False
    ) -> FetchResult[List[LevelProgression]]:
        return await self._collection(ResourceKind.LEVEL_PROGRESSIONS, None, updated_after, force_refresh=force_refresh)

    async def get_spaced_repetition_systems(
        self, updated_after: UpdatedAfter = None, *, force_refresh: bool = False
    ) -> FetchResult[List[SpacedRepetitionSystem]]:
        return await self._collection(
            ResourceKind.SPACED_REPETITION_SYSTEMS, None, updated_after, force_refresh=force_refresh
        )

    async def fetch(
        self,
        kind: Union[str, ResourceKind],
        updated_after: UpdatedAfter = None,
        *,
        force_refresh: bool = False,
    ) -> FetchResult[Any]:
        """Fetch any resource kind by name ("user", "assignments", "reviewStats", ...)."""
        k = parse_kind(kind)
        if k is ResourceKind.USER:
            return await self.get_user(force_refresh=force_refresh)
        if k is ResourceKind.SUMMARY:
            return await self.get_summary(force_refresh=force_refresh)
        if k is ResourceKind.SUBJECTS:
            return await self.get_subjects(None, updated_after, force_refresh=force_refresh)
        return await self._collection(k, None, updated_after, force_refresh=force_refresh)

    # --- Last-sync markers ---

    def get_last_sync(self, kind: Union[str, ResourceKind]) -> Optional[str]:
        return self._sync.get(kind)

    def set_last_sync(self, kind: Union[str, ResourceKind], timestamp: Optional[str] = None) -> str:
        return self._sync.set(kind, timestamp)

    # --- Maintenance ---

    def clear_user_cache(self) -> int:
        removed = self._store.delete_matching(f"-{token_suffix(self._token)}")
        logger.info(f"Cleared {removed} cache entries for the current account")
        return removed

    def clear_all_cache(self) -> int:
        removed = self._store.clear()
        logger.info(f"Cleared {removed} cache entries")
        return removed

    def cache_stats(self) -> CacheStats:
        return self._store.stats()

    def sweep_expired(self) -> int:
        return self._store.sweep_expired()

    def has_fresh_cache(
        self,
        kind: Union[str, ResourceKind],
        levels: Optional[Iterable[int]] = None,
        updated_after: UpdatedAfter = None,
    ) -> bool:
        """True when the first page (or object) for this exact query is cached and unexpired.

        `levels` and `updated_after` must match the fetch that filled the cache,
        since each query is cached under its own key.
        """
        return self._store.is_fresh(self.cache_key(self._first_page(parse_kind(kind), levels, updated_after)))

    def get_stale(
        self,
        kind: Union[str, ResourceKind],
        levels: Optional[Iterable[int]] = None,
        updated_after: UpdatedAfter = None,
    ) -> Optional[Any]:
        """Return whatever is cached for `kind`, expired or not, without any network.

        Collections are reassembled by following cached pages; a missing page
        means there is nothing complete to show and None is returned.
        `levels` and `updated_after` select the same cached query as the fetch.
        """
        k = parse_kind(kind)
        record_type = _RECORD_TYPES[k]
        first = self._first_page(k, levels, updated_after)

        if k in _SINGLE_OBJECT_KINDS:
            entry = self._store.peek(self.cache_key(first))
            return None if entry is None else record_type.from_api(entry.data)

        items: List[Any] = []
        endpoint: Optional[str] = first
        base = self._transport.base_url
        while endpoint:
            entry = self._store.peek(self.cache_key(endpoint))
            if entry is None or not isinstance(entry.data, Mapping):
                return None
            items.extend(entry.data.get("data") or [])
            next_url = (entry.data.get("pages") or {}).get("next_url")
            endpoint = next_url[len(base):] if next_url and next_url.startswith(base) else next_url
        return decode_many(record_type, items)

    # --- Internal plumbing ---

    def _base_endpoint(self, kind: ResourceKind, levels: Optional[Iterable[int]] = None) -> str:
        endpoint = ENDPOINTS[kind]
        levels_clean = normalize_levels(levels)
        if levels_clean:
            if kind is not ResourceKind.SUBJECTS:
                raise ValidationError(f"levels only apply to subjects, not {kind.value}")
            endpoint += "?levels=" + ",".join(str(level) for level in levels_clean)
        return endpoint

    def _first_page(
        self,
        kind: ResourceKind,
        levels: Optional[Iterable[int]] = None,
        updated_after: UpdatedAfter = None,
    ) -> str:
        endpoint = self._base_endpoint(kind, levels)
        if kind in _SINGLE_OBJECT_KINDS:
            return endpoint
        since = normalize_updated_after(updated_after)
        return with_query(endpoint, "updated_after", since) if since else endpoint

    async def _fetch_page(
        self,
        endpoint: str,
        ttl_ms: Optional[int],
        cache_transform: Optional[Callable[[Any], Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> FetchResult[Any]:
        key = self.cache_key(endpoint)
        cached = self._store.get(key)
        if cached is not None and not force_refresh:
            logger.debug(f"CACHE HIT: {key}")
            return FetchResult(data=cached.data, from_cache=True)

        async def _send() -> FetchResult[Any]:
            return await self._transport.execute(
                endpoint,
                cache_key=key,
                cached=cached,
                allow_conditional=True,
                ttl_ms=ttl_ms,
                cache_transform=cache_transform,
            )

        return await self._inflight.acquire_or_join(key, lambda: self._scheduler.enqueue(_send))

    async def _collection(
        self,
        kind: ResourceKind,
        endpoint: Optional[str],
        updated_after: UpdatedAfter,
        *,
        force_refresh: bool = False,
        cache_transform: Optional[Callable[[Any], Any]] = None,
    ) -> FetchResult[List[Any]]:
        endpoint = endpoint or ENDPOINTS[kind]
        since = normalize_updated_after(updated_after)
        walker = PaginationWalker(
            fetch_page=functools.partial(self._fetch_page, force_refresh=force_refresh),
            base_url=self._transport.base_url,
        )

        first_page = with_query(endpoint, "updated_after", since) if since else endpoint
        walk_key = f"collection:{self.cache_key(first_page)}"

        result: CollectionResult[Any] = await self._inflight.acquire_or_join(
            walk_key,
            lambda: walker.collect_all(endpoint, since, get_ttl_for_kind(kind), cache_transform),
        )
        return FetchResult(data=decode_many(_RECORD_TYPES[kind], result.items), from_cache=result.from_cache)
