"""Persistent TTL cache with least-recently-used eviction under quota pressure.

Entries are JSON-serialized CacheEntry objects stored on a KeyValueBackend
under a shared key prefix. Expired or unreadable entries are deleted as soon
as they are seen. When the backend rejects a write for lack of space, the
oldest entries (by last access) are removed until 1.5x the incoming entry's
size has been freed, then the write is retried once.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, List, Optional, Tuple

from core.errors import CacheCorruptionError, QuotaExceededError
from core.interfaces import KeyValueBackend
from core.models import CacheEntry, CacheStats

logger = logging.getLogger("wanikani.cache")

DEFAULT_MAX_ENTRY_BYTES = 500_000
EVICTION_HEADROOM = 1.5


def now_ms() -> int:
    return int(time.time() * 1000)


def _size(raw: str) -> int:
    return len(raw.encode("utf-8"))


def _decode(raw: str) -> CacheEntry[Any]:
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise CacheCorruptionError(f"Cache entry is not valid JSON: {e}") from e
    return CacheEntry.from_dict(parsed)


class CacheStore:
    """Durable key/value cache of API payloads.

    Purpose:
      - get(key) -> CacheEntry | None   (expired entries are removed)
      - set(key, entry) -> bool         (False when the entry was not stored)
      - delete(key), list_keys(), clear()

    Key behavior:
      - Entries above `max_entry_bytes` once serialized are rejected.
      - A QuotaExceededError from the backend triggers LRU eviction and a
        single retry; a second failure drops the write silently.
      - The full set/evict/retry sequence holds the store lock, so no other
        writer can interleave between eviction and the retried write.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        prefix: str = "wanikani",
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
    ) -> None:
        self._backend = backend
        self._prefix = prefix
        self._max_entry_bytes = int(max_entry_bytes)
        self._lock = threading.RLock()

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def is_marker_key(self, key: str) -> bool:
        # Last-sync markers share the prefix but are plain strings, not entries
        return key.startswith(f"{self._prefix}-last-sync-")

    def get(self, key: str) -> Optional[CacheEntry[Any]]:
        with self._lock:
            entry = self._read(key)
            if entry is None:
                return None

            now = now_ms()
            if entry.is_expired(now):
                logger.debug(f"Cache entry expired: {key}")
                self._backend.remove_item(key)
                return None

            entry.last_accessed = now
            try:
                self._backend.set_item(key, self._encode(entry))
            except QuotaExceededError:
                # Access time only orders eviction
                logger.debug(f"Could not persist access time for {key}")
            return entry

    def peek(self, key: str) -> Optional[CacheEntry[Any]]:
        """Read an entry even if expired, without touching its access time."""
        with self._lock:
            return self._read(key)

    def is_fresh(self, key: str) -> bool:
        """True when an unexpired entry exists; neither deletes nor touches it."""
        entry = self.peek(key)
        return entry is not None and not entry.is_expired(now_ms())

    def set(self, key: str, entry: CacheEntry[Any]) -> bool:
        raw = self._encode(entry)
        size = _size(raw)
        if size > self._max_entry_bytes:
            logger.warning(
                f"Cache entry too large ({size} bytes > {self._max_entry_bytes}), skipping: {key[:50]}"
            )
            return False

        with self._lock:
            try:
                self._backend.set_item(key, raw)
                return True
            except QuotaExceededError as e:
                logger.warning(f"Cache quota exceeded writing {key}: {e}")

            freed = self._evict_lru(bytes_needed=int(size * EVICTION_HEADROOM))
            logger.info(f"Evicted {freed} bytes to make room for {key}")

            try:
                self._backend.set_item(key, raw)
                return True
            except QuotaExceededError as e:
                logger.warning(f"Failed to cache {key} even after eviction: {e}")
                return False

    def put(
        self,
        key: str,
        data: Any,
        *,
        etag: Optional[str] = None,
        last_modified: Optional[str] = None,
        ttl_ms: Optional[int] = None,
    ) -> bool:
        now = now_ms()
        entry = CacheEntry(
            data=data,
            timestamp=now,
            last_accessed=now,
            etag=etag,
            last_modified=last_modified,
            expires_at=None if ttl_ms is None else now + int(ttl_ms),
        )
        return self.set(key, entry)

    def delete(self, key: str) -> None:
        with self._lock:
            self._backend.remove_item(key)

    def list_keys(self) -> List[str]:
        """Keys of cache entries under this store's prefix (markers excluded)."""
        head = f"{self._prefix}-"
        return [
            k for k in self._backend.keys()
            if k.startswith(head) and not self.is_marker_key(k)
        ]

    def clear(self) -> int:
        """Remove every key under the prefix, last-sync markers included."""
        head = f"{self._prefix}-"
        return self._remove_where(lambda k: k.startswith(head))

    def delete_matching(self, suffix: str) -> int:
        head = f"{self._prefix}-"
        return self._remove_where(lambda k: k.startswith(head) and k.endswith(suffix))

    def sweep_expired(self) -> int:
        """Delete expired and unreadable entries; returns how many were removed."""
        now = now_ms()
        removed = 0
        with self._lock:
            for key in self.list_keys():
                entry = self._read(key)
                if entry is None:
                    # _read already dropped it if it was corrupt
                    removed += 1
                    continue
                if entry.is_expired(now):
                    self._backend.remove_item(key)
                    removed += 1
        if removed:
            logger.info(f"Swept {removed} expired cache entries")
        return removed

    def stats(self) -> CacheStats:
        entries = 0
        total = 0
        oldest: Optional[int] = None
        with self._lock:
            for key in self.list_keys():
                raw = self._backend.get_item(key)
                if raw is None:
                    continue
                entries += 1
                total += _size(raw)
                try:
                    recency = _decode(raw).recency()
                except CacheCorruptionError:
                    continue
                oldest = recency if oldest is None else min(oldest, recency)
        return CacheStats(entries=entries, total_bytes=total, oldest_accessed=oldest)

    # --- Internals ---

    def _encode(self, entry: CacheEntry[Any]) -> str:
        return json.dumps(entry.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def _read(self, key: str) -> Optional[CacheEntry[Any]]:
        raw = self._backend.get_item(key)
        if raw is None:
            return None
        try:
            return _decode(raw)
        except CacheCorruptionError as e:
            logger.warning(f"Dropping corrupt cache entry {key}: {e}")
            self._backend.remove_item(key)
            return None

    def _remove_where(self, predicate) -> int:
        with self._lock:
            doomed = [k for k in self._backend.keys() if predicate(k)]
            for key in doomed:
                self._backend.remove_item(key)
        return len(doomed)

    def _evict_lru(self, *, bytes_needed: int) -> int:
        candidates: List[Tuple[int, str, int]] = []
        for key in self.list_keys():
            raw = self._backend.get_item(key)
            if raw is None:
                continue
            try:
                recency = _decode(raw).recency()
            except CacheCorruptionError:
                recency = 0  # unreadable entries go first
            candidates.append((recency, key, _size(raw)))

        # Oldest access first
        candidates.sort()

        freed = 0
        for _, key, size in candidates:
            if freed >= bytes_needed:
                break
            self._backend.remove_item(key)
            freed += size
        return freed
