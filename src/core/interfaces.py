"""Core protocol and interface definitions.

Defines the KeyValueBackend protocol used by the cache store and the
last-sync markers so memory and on-disk storage share one API.
"""

from __future__ import annotations

from typing import List, Optional, Protocol


class KeyValueBackend(Protocol):
    """Contract for any string key/value storage (memory, directory, etc.).

    Backends serialize individual operations. `set_item` raises
    `core.errors.QuotaExceededError` when the value does not fit.
    """

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...
