from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union
from urllib.parse import quote

from core.errors import ValidationError


_UNSAFE_KEY_CHARS_RE = re.compile(r"[^a-zA-Z0-9]")
_TOKEN_RE = re.compile(r"^[A-Za-z0-9-]+$")


def normalize_token(token: str) -> str:
    token_clean = (token or "").strip()
    if not token_clean:
        raise ValidationError("API token must be non-empty")
    if not _TOKEN_RE.match(token_clean):
        raise ValidationError("API token contains invalid characters")
    return token_clean


def token_suffix(token: str) -> str:
    # Last 8 characters isolate accounts that share one store
    return token[-8:]


def sanitize_endpoint(endpoint: str) -> str:
    return _UNSAFE_KEY_CHARS_RE.sub("_", endpoint or "")


def make_cache_key(prefix: str, endpoint: str, token: str) -> str:
    return f"{prefix}-{sanitize_endpoint(endpoint)}-{token_suffix(token)}"


def make_marker_key(prefix: str, kind: str, token: str) -> str:
    return f"{prefix}-last-sync-{kind}-{token_suffix(token)}"


def normalize_levels(levels: Optional[Iterable[int]]) -> List[int]:
    # Unique, ascending, each within 1..60
    if not levels:
        return []
    out = set()
    for raw in levels:
        try:
            level = int(raw)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid level: {raw!r}") from e
        if not 1 <= level <= 60:
            raise ValidationError(f"Level out of range: {level}")
        out.add(level)
    return sorted(out)


def normalize_subject_id(subject_id: Union[int, str]) -> int:
    try:
        n = int(subject_id)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid subject id: {subject_id!r}") from e
    if n <= 0:
        raise ValidationError("subject id must be positive")
    return n


def normalize_updated_after(updated_after: Union[str, datetime, None]) -> Optional[str]:
    """Return an ISO8601 timestamp string, or None when no filter is wanted."""
    if updated_after is None:
        return None
    if isinstance(updated_after, datetime):
        dt = updated_after
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    raw = updated_after.strip()
    if not raw:
        return None
    try:
        datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"updated_after is not an ISO8601 timestamp: {raw!r}") from e
    return raw


def with_query(endpoint: str, name: str, value: str) -> str:
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{name}={quote(value, safe='')}"
