"""Dataclasses shared by the cache, the transport and the client facade.

Includes the persisted cache entry (CacheEntry), the results handed back
to callers (FetchResult, CollectionResult) and cache statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

from core.errors import CacheCorruptionError

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached API payload plus revalidation and eviction metadata.

    Field groups:
    - Payload: data
    - Revalidation: etag, last_modified
    - Timing (epoch milliseconds): timestamp, expires_at, last_accessed

    `expires_at` of None means the entry never expires by time.
    `last_accessed` only orders LRU eviction.
    """

    data: T
    timestamp: int
    last_accessed: int
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    expires_at: Optional[int] = None

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now_ms

    def recency(self) -> int:
        return self.last_accessed or self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "data": self.data,
            "timestamp": self.timestamp,
            "lastAccessed": self.last_accessed,
        }
        if self.etag is not None:
            out["etag"] = self.etag
        if self.last_modified is not None:
            out["lastModified"] = self.last_modified
        if self.expires_at is not None:
            out["expiresAt"] = self.expires_at
        return out

    @classmethod
    def from_dict(cls, raw: Any) -> "CacheEntry[Any]":
        if not isinstance(raw, Mapping) or "data" not in raw:
            raise CacheCorruptionError("Cache entry is not an object with a data field")
        try:
            timestamp = int(raw["timestamp"])
            last_accessed = int(raw.get("lastAccessed") or timestamp)
            expires_at = raw.get("expiresAt")
            return cls(
                data=raw["data"],
                timestamp=timestamp,
                last_accessed=last_accessed,
                etag=raw.get("etag") or None,
                last_modified=raw.get("lastModified") or None,
                expires_at=None if expires_at is None else int(expires_at),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptionError(f"Malformed cache entry: {e}") from e


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    # data + whether it was served from the local cache
    data: T
    from_cache: bool = False


@dataclass(frozen=True)
class CollectionResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    from_cache: bool = False


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    oldest_accessed: Optional[int]
