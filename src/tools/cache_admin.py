"""MCP tools for inspecting and maintaining the WaniKani response cache."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Literal, Optional

from mcp.server.fastmcp import FastMCP

from clients.wanikani import WaniKaniClient
from core.errors import ValidationError

ClearScope = Literal["user", "all"]


def register(mcp: FastMCP, *, client: Optional[WaniKaniClient] = None) -> None:
    def _require() -> WaniKaniClient:
        if client is None:
            raise ValidationError("WANIKANI_API_TOKEN is not configured")
        return client

    @mcp.tool(name="wanikani_cache_stats")
    async def wanikani_cache_stats() -> Dict[str, Any]:
        """Report cache entry count, total bytes and the oldest access time (epoch ms)."""
        return asdict(_require().cache_stats())

    @mcp.tool(name="wanikani_clear_cache")
    async def wanikani_clear_cache(scope: ClearScope = "user") -> Dict[str, Any]:
        """Clear cached responses.

        Params:
          - scope: "user" clears entries and sync markers of the configured
            token only; "all" clears every WaniKani entry in the store.
        """
        wk = _require()
        if scope == "user":
            removed = wk.clear_user_cache()
        elif scope == "all":
            removed = wk.clear_all_cache()
        else:
            raise ValidationError(f"Unknown scope: {scope!r}")
        return {"scope": scope, "removed": removed}

    @mcp.tool(name="wanikani_sweep_cache")
    async def wanikani_sweep_cache() -> Dict[str, Any]:
        """Delete expired or unreadable cache entries."""
        return {"removed": _require().sweep_expired()}
