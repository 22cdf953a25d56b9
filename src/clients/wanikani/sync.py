"""Last-sync markers and merging helpers for incremental (updated_after) fetches.

Markers are plain ISO8601 strings on the same backend as the cache, one per
resource kind and account. They carry no TTL and are not cache entries.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from core.interfaces import KeyValueBackend

from .inputs import make_marker_key, normalize_updated_after
from .policies import ResourceKind, parse_kind
from .resources import Resource

R = TypeVar("R", bound=Resource)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class LastSyncStore:
    def __init__(self, backend: KeyValueBackend, *, prefix: str, token: str) -> None:
        self._backend = backend
        self._prefix = prefix
        self._token = token

    def _key(self, kind: "str | ResourceKind") -> str:
        return make_marker_key(self._prefix, parse_kind(kind).value, self._token)

    def get(self, kind: "str | ResourceKind") -> Optional[str]:
        return self._backend.get_item(self._key(kind))

    def set(self, kind: "str | ResourceKind", timestamp: Optional[str] = None) -> str:
        value = normalize_updated_after(timestamp) or utc_now_iso()
        self._backend.set_item(self._key(kind), value)
        return value

    def clear(self, kind: "str | ResourceKind") -> None:
        self._backend.remove_item(self._key(kind))


def merge_by_id(existing: Sequence[R], updates: Iterable[R]) -> List[R]:
    """Apply incremental results: replace records with a known id, append the rest."""
    merged: List[R] = list(existing)
    index: Dict[Optional[int], int] = {
        item.id: i for i, item in enumerate(merged) if item.id is not None
    }
    for item in updates:
        pos = index.get(item.id) if item.id is not None else None
        if pos is None:
            if item.id is not None:
                index[item.id] = len(merged)
            merged.append(item)
        else:
            merged[pos] = item
    return merged
