"""
Retriever - Knowledge Base Search

Searches captured channels and threads by embedding similarity.

Key Components:
- Searcher: Scope routing (channels / threads / all) with configured limits
- SearchMCPServer: MCP tools over the Searcher (see mcp_server)

Pipeline:
1. Embed the query text
2. Query the store (threshold 0.3; 30/70 budget split for combined search)
3. Return results ordered by similarity
"""

from .searcher import Searcher, SEARCH_SCOPES

__all__ = [
    "Searcher",
    "SEARCH_SCOPES",
]
