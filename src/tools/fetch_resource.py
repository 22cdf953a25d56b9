"""MCP tools that fetch WaniKani resources through the caching client.

Registers 'wanikani_fetch' (any resource kind by name) and
'wanikani_subject' (one subject by id). Results are plain JSON-ready dicts
with the decoded records and a from_cache flag.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from clients.wanikani import WaniKaniClient
from core.errors import ValidationError
from core.models import FetchResult


def _require(client: Optional[WaniKaniClient]) -> WaniKaniClient:
    if client is None:
        raise ValidationError("WANIKANI_API_TOKEN is not configured")
    return client


def to_payload(result: FetchResult[Any]) -> Dict[str, Any]:
    data = result.data
    if isinstance(data, list):
        body: Any = [item.to_api() for item in data]
        count: Optional[int] = len(data)
    else:
        body = data.to_api()
        count = None

    out: Dict[str, Any] = {"from_cache": result.from_cache, "data": body}
    if count is not None:
        out["total_count"] = count
    return out


def register(mcp: FastMCP, *, client: Optional[WaniKaniClient] = None) -> None:
    @mcp.tool(name="wanikani_fetch")
    async def wanikani_fetch(
        resource: str,
        updated_after: Optional[str] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Fetch a WaniKani resource collection (or the user/summary object).

        Params:
          - resource: one of "user", "summary", "subjects", "assignments",
            "review_statistics", "reviews", "level_progressions",
            "spaced_repetition_systems".
          - updated_after: optional ISO8601 timestamp for incremental fetches.
          - force_refresh: revalidate with the API even if cached data is fresh.

        Returns:
          {"from_cache": bool, "data": record-or-records, "total_count"?: int}

        Raises:
          ValidationError for unknown resources or malformed timestamps;
          AuthError / ForbiddenError for token or subscription problems;
          other ExternalServiceError subclasses when nothing cached can stand in.
        """
        wk = _require(client)
        if not resource or not resource.strip():
            raise ValidationError("Missing resource name")

        result = await wk.fetch(resource, updated_after, force_refresh=force_refresh)
        return to_payload(result)

    @mcp.tool(name="wanikani_subject")
    async def wanikani_subject(subject_id: int, force_refresh: bool = False) -> Dict[str, Any]:
        """Fetch a single subject (radical, kanji or vocabulary) by id."""
        wk = _require(client)
        result = await wk.get_subject(subject_id, force_refresh=force_refresh)
        return to_payload(result)
