"""Server bootstrap for the WaniKani MCP service.

Creates the FastMCP instance, builds the caching WaniKani client from
environment configuration, registers the tools and starts the MCP server
(stdio transport).
"""

import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from clients.wanikani import WaniKaniClient
from core.backends import DirectoryBackend, MemoryBackend
from config import (
    CACHE_DIR,
    CACHE_MAX_ENTRY_BYTES,
    CACHE_QUOTA_BYTES,
    HTTP_VERIFY,
    LOG_LEVEL,
    MAX_CONCURRENT_REQUESTS,
    MAX_RETRIES,
    WANIKANI_API_TOKEN,
    WANIKANI_BASE_URL,
    WANIKANI_TIMEOUT,
)

from tools.cache_admin import register as register_cache_admin
from tools.fetch_resource import register as register_fetch_resource

logger = logging.getLogger("wanikani.server")

mcp = FastMCP("wanikani-mcp")


def build_client() -> Optional[WaniKaniClient]:
    if not WANIKANI_API_TOKEN:
        logger.warning("WANIKANI_API_TOKEN is not set; WaniKani tools will refuse to run")
        return None

    if CACHE_DIR:
        backend = DirectoryBackend(directory=Path(CACHE_DIR), quota_bytes=CACHE_QUOTA_BYTES)
    else:
        backend = MemoryBackend(quota_bytes=CACHE_QUOTA_BYTES)

    return WaniKaniClient(
        WANIKANI_API_TOKEN,
        backend=backend,
        base_url=WANIKANI_BASE_URL,
        timeout=WANIKANI_TIMEOUT,
        verify=HTTP_VERIFY,
        max_concurrent=MAX_CONCURRENT_REQUESTS,
        max_retries=MAX_RETRIES,
        max_entry_bytes=CACHE_MAX_ENTRY_BYTES,
    )


def register_tools() -> None:
    client = build_client()

    register_fetch_resource(mcp, client=client)
    register_cache_admin(mcp, client=client)


register_tools()


def main() -> None:
    # stdout carries the MCP stdio protocol, so logs go to stderr
    logging.basicConfig(level=LOG_LEVEL)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
