"""
threadmind MCP Server

Exposes knowledge base search to MCP clients (stdio transport).

Expected MCP Tool Return Format:
{
    "ok": bool,
    "results": Any,          # search_knowledge, present if ok is True
    "stats": Any,            # knowledge_stats, present if ok is True
    "error": str             # Present if ok is False
}
"""

import argparse
import asyncio
import logging
import os
import signal
from typing import Annotated, Any, Dict, Optional

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..common.config import load_config
from ..common.embedding_service import EmbeddingError, EmbeddingService, get_embedding_service, verify_dimensions
from ..common.logging_config import setup_logging
from ..store import KnowledgeStore, StoreError, create_store
from .searcher import SEARCH_SCOPES, Searcher

logger = logging.getLogger("threadmind.retriever.mcp")


class SearchMCPServer:
    """
    MCP server over a Searcher.

    The store is initialized lazily on the first tool call.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embedding_service: EmbeddingService,
        searcher: Optional[Searcher] = None,
        mcp_server_name: str = "threadmind",
    ) -> None:
        self.store = store
        self.embedding = embedding_service
        self.searcher = searcher or Searcher(store, embedding_service)
        self._ready = False
        self._init_lock = asyncio.Lock()
        self.mcp = FastMCP(name=mcp_server_name)

        @self.mcp.tool(
            name="search_knowledge",
            description=(
                "Semantic search over captured Slack channels and threads. "
                "scope is 'all' (channels and threads together), 'channels' or 'threads'; "
                "channel_id restricts a thread search to one channel."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_search_knowledge(
            query: Annotated[str, Field(description="natural language query")],
            scope: Annotated[str, Field(description="'all', 'channels' or 'threads'")] = "all",
            channel_id: Annotated[Optional[str], Field(description="restrict thread search to this channel")] = None,
            limit: Annotated[Optional[int], Field(description="max results (scope default when omitted)", ge=1)] = None,
        ) -> Dict[str, Any]:
            if scope not in SEARCH_SCOPES:
                return {"ok": False, "error": f"Invalid scope '{scope}'. Use one of: {', '.join(SEARCH_SCOPES)}"}
            if not query or not query.strip():
                return {"ok": False, "error": "Query must not be empty"}

            try:
                await self._ensure_ready()
                results = await self.searcher.search(query, scope=scope, channel_id=channel_id, limit=limit)
            except (StoreError, EmbeddingError) as e:
                logger.error("search_knowledge failed: %s", e)
                return {"ok": False, "error": str(e)}

            return {
                "ok": True,
                "results": [r.to_dict() for r in results],
                "count": len(results),
            }

        @self.mcp.tool(
            name="knowledge_stats",
            description="Counts of captured channels and threads, with and without embeddings, and threads per category.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def tool_knowledge_stats() -> Dict[str, Any]:
            try:
                await self._ensure_ready()
                stats = await self.store.get_stats()
            except StoreError as e:
                logger.error("knowledge_stats failed: %s", e)
                return {"ok": False, "error": str(e)}

            return {
                "ok": True,
                "stats": stats.to_dict(),
                "embedding_mode": self.embedding.mode,
            }

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        async with self._init_lock:
            if not self._ready:
                await self.store.initialize()
                self._ready = True

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the threadmind MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "threadmind"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--store",
        choices=("postgres", "memory"),
        default=None,
        help="Override the configured store backend.",
    )
    args = parser.parse_args()

    config = load_config()
    setup_logging(config.log_level)
    if args.store:
        config.database.backend = args.store

    embedding_service = get_embedding_service(config.embedding)
    store = create_store(config.database, dimension=config.embedding.dimension)
    verify_dimensions(embedding_service, store)

    app = SearchMCPServer(
        store=store,
        embedding_service=embedding_service,
        searcher=Searcher(store, embedding_service, config.retriever),
        mcp_server_name=args.server_name,
    )
    logger.info(
        "MCP server ready (store=%s, embedding=%s)",
        store.backend_name, embedding_service.mode,
    )

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
