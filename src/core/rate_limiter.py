"""Backoff arithmetic for throttled or failing requests.

This encapsulates the WaniKani-relevant retry timing:
- Honor Retry-After (seconds) on 429 responses.
- Otherwise back off exponentially: base_delay * 2**attempt.
- Bound every sleep to a configurable maximum to avoid long blocking.
"""

from __future__ import annotations

import asyncio
from typing import Mapping, Optional

import httpx


class RateLimiter:
    # Retry delay policy shared by every attempt loop of one client
    def __init__(self, *, base_delay: float = 1.0, max_sleep_seconds: int = 60) -> None:
        self._base_delay = float(base_delay)
        self._max_sleep_seconds = int(max_sleep_seconds)

    def backoff_delay(self, attempt: int) -> float:
        return self._base_delay * (2 ** int(attempt))

    def retry_delay(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        # Server-provided Retry-After wins over the exponential schedule
        if response is not None and response.status_code == 429:
            retry_after = self._parse_int_header(response.headers, "Retry-After")
            if retry_after is not None:
                return float(retry_after)
        return self.backoff_delay(attempt)

    async def sleep(self, seconds: float) -> None:
        # Sleep for at most _max_sleep_seconds to avoid blocking too long
        await asyncio.sleep(min(float(seconds), float(self._max_sleep_seconds)))

    def _parse_int_header(self, headers: Mapping[str, str], name: str) -> Optional[int]:
        value = headers.get(name)
        if not value:
            return None
        value = value.strip()
        if not value.isdigit():
            return None
        try:
            return int(value)
        except ValueError:
            return None
