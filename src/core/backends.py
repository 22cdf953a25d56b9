"""Key/value storage backends for the cache store.

MemoryBackend keeps everything in a dict; DirectoryBackend keeps one file
per key under a directory so the cache survives restarts. Both optionally
enforce a byte quota and raise QuotaExceededError when a write would not
fit, which is what drives LRU eviction in CacheStore.
"""

from __future__ import annotations

import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional

from core.errors import AccessDeniedError, QuotaExceededError, ValidationError

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_SUFFIX = ".entry"


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class MemoryBackend:
    # In-process storage with optional byte quota (values only)
    def __init__(self, *, quota_bytes: Optional[int] = None) -> None:
        self._quota = None if quota_bytes is None else max(0, int(quota_bytes))
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            if self._quota is not None:
                used = sum(_size(v) for k, v in self._items.items() if k != key)
                if used + _size(value) > self._quota:
                    raise QuotaExceededError(
                        f"Storing {_size(value)} bytes exceeds quota of {self._quota} bytes"
                    )
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)

    @property
    def used_bytes(self) -> int:
        with self._lock:
            return sum(_size(v) for v in self._items.values())


class DirectoryBackend:
    # One file per key under `directory`, with optional byte quota
    def __init__(self, *, directory: Path, quota_bytes: Optional[int] = None) -> None:
        self._dir = Path(directory).resolve()
        self._dir.mkdir(parents=True, exist_ok=True)
        self._quota = None if quota_bytes is None else max(0, int(quota_bytes))
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValidationError(f"Invalid storage key: {key!r}")

        p = (self._dir / f"{key}{_SUFFIX}").resolve()

        # Keys must never escape the storage directory
        try:
            p.relative_to(self._dir)
        except ValueError as e:
            raise AccessDeniedError("Storage key resolves outside the cache directory") from e

        return p

    def get_item(self, key: str) -> Optional[str]:
        p = self._path_for(key)
        with self._lock:
            try:
                return p.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

    def set_item(self, key: str, value: str) -> None:
        p = self._path_for(key)
        data = value.encode("utf-8")
        with self._lock:
            if self._quota is not None:
                used = sum(
                    f.stat().st_size for f in self._dir.glob(f"*{_SUFFIX}") if f != p
                )
                if used + len(data) > self._quota:
                    raise QuotaExceededError(
                        f"Storing {len(data)} bytes exceeds quota of {self._quota} bytes"
                    )

            # Write to a temp file first so readers never see a partial entry
            tmp = p.with_name(p.name + ".tmp")
            try:
                tmp.write_bytes(data)
                os.replace(tmp, p)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise QuotaExceededError(f"Failed to write cache file {p.name}: {e}") from e

    def remove_item(self, key: str) -> None:
        p = self._path_for(key)
        with self._lock:
            p.unlink(missing_ok=True)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(f.name[: -len(_SUFFIX)] for f in self._dir.glob(f"*{_SUFFIX}"))
