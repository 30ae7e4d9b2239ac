"""
Searcher

Routes a query vector (or query text) to the knowledge store's channel,
thread, or combined search, applying the configured result limits and
similarity threshold. Ranking is whatever the store returns.
"""

import logging
from typing import List, Optional, Sequence

from ..common.config import RetrieverConfig
from ..common.embedding_service import EmbeddingService
from ..common.schemas import SearchResult
from ..store.base import KnowledgeStore

logger = logging.getLogger("threadmind.retriever.searcher")

SEARCH_SCOPES = ("all", "channels", "threads")


class Searcher:
    """
    Searches captured channels and threads.

    Defaults (from RetrieverConfig): 5 channels or 10 threads standalone,
    15 combined, similarity threshold 0.3.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embedding_service: EmbeddingService,
        config: Optional[RetrieverConfig] = None,
    ):
        """
        Initialize searcher.

        Args:
            store: Knowledge store to query
            embedding_service: For embedding query text
            config: Limits and threshold; defaults when omitted
        """
        self._store = store
        self._embedding = embedding_service
        self._config = config or RetrieverConfig()

    def default_limit(self, scope: str) -> int:
        if scope == "channels":
            return self._config.channel_limit
        if scope == "threads":
            return self._config.thread_limit
        return self._config.combined_limit

    async def search_by_vector(
        self,
        query_vector: Sequence[float],
        scope: str = "all",
        channel_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Search with a precomputed query vector.

        Args:
            query_vector: Embedding of the query
            scope: "all", "channels" or "threads"
            channel_id: Restrict thread search to one channel (threads scope)
            limit: Max results; scope default when None

        Returns:
            Results ordered by descending similarity

        Raises:
            ValueError: Unknown scope
            StoreError: Store query failed
        """
        if scope not in SEARCH_SCOPES:
            raise ValueError(f"Unknown search scope: {scope!r} (expected one of {SEARCH_SCOPES})")

        if limit is None:
            limit = self.default_limit(scope)
        threshold = self._config.similarity_threshold

        if scope == "channels":
            return await self._store.search_channels(query_vector, limit=limit, threshold=threshold)
        if scope == "threads":
            return await self._store.search_threads(
                query_vector, channel_id=channel_id, limit=limit, threshold=threshold
            )
        if channel_id:
            logger.debug("channel_id ignored for combined search")
        return await self._store.search_all(query_vector, limit=limit, threshold=threshold)

    async def search(
        self,
        query_text: str,
        scope: str = "all",
        channel_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Embed the query text, then search.

        Returns an empty list when no query embedding could be produced.
        """
        if scope not in SEARCH_SCOPES:
            raise ValueError(f"Unknown search scope: {scope!r} (expected one of {SEARCH_SCOPES})")

        query_vector = await self._embedding.generate_embedding(query_text)
        if query_vector is None:
            logger.info("No embedding for query (mode=%s); returning no results", self._embedding.mode)
            return []

        results = await self.search_by_vector(query_vector, scope=scope, channel_id=channel_id, limit=limit)
        logger.info("Search (%s) returned %d results", scope, len(results))
        return results
