"""
Knowledge Store base

Contract shared by all backends. Backends implement the per-table
operations; the combined channel+thread search lives here so both backends
merge results the same way.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..common.schemas import Channel, Thread, SearchResult, KnowledgeStats

logger = logging.getLogger("threadmind.store")

DEFAULT_SIMILARITY_THRESHOLD = 0.3
DEFAULT_CHANNEL_LIMIT = 5
DEFAULT_THREAD_LIMIT = 10
DEFAULT_COMBINED_LIMIT = 15

# search_all budget split (channels / threads), each rounded down
CHANNEL_SHARE = 0.3
THREAD_SHARE = 0.7


class StoreError(Exception):
    """A knowledge store query or connection failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Knowledge store operation '{operation}' failed{detail}")


def split_budget(limit: int) -> tuple:
    """Per-type sub-limits for search_all: (floor(limit*0.3), floor(limit*0.7))"""
    return int(limit * CHANNEL_SHARE), int(limit * THREAD_SHARE)


class KnowledgeStore(ABC):
    """
    Owns the channel and thread tables.

    All operations are independent and safe to call concurrently.
    Existence checks only observe committed rows.
    """

    def __init__(self, dimension: int):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        """Length of every stored embedding"""
        return self._dimension

    @property
    def backend_name(self) -> str:
        return "base"

    def _check_vector(self, vector: Optional[Sequence[float]], what: str) -> None:
        if vector is not None and len(vector) != self._dimension:
            raise ValueError(
                f"{what} has {len(vector)} components, expected {self._dimension}"
            )

    async def initialize(self) -> None:
        """Create tables and indexes if needed"""
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def upsert_channel(self, channel: Channel) -> int:
        """Insert, or fully replace the row with the same channel_id. Returns row id."""
        pass

    @abstractmethod
    async def upsert_thread(self, thread: Thread) -> int:
        """Insert, or fully replace the row with the same (channel_id, thread_ts)."""
        pass

    @abstractmethod
    async def has_channel_embedding(self, channel_id: str) -> bool:
        pass

    @abstractmethod
    async def has_thread_embedding(self, channel_id: str, thread_ts: str) -> bool:
        pass

    @abstractmethod
    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        pass

    @abstractmethod
    async def get_thread(self, channel_id: str, thread_ts: str) -> Optional[Thread]:
        pass

    @abstractmethod
    async def search_channels(
        self,
        query_vector: Sequence[float],
        limit: int = DEFAULT_CHANNEL_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        """Embedded channels with similarity > threshold, most similar first."""
        pass

    @abstractmethod
    async def search_threads(
        self,
        query_vector: Sequence[float],
        channel_id: Optional[str] = None,
        limit: int = DEFAULT_THREAD_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        """Embedded threads with similarity > threshold, optionally in one channel."""
        pass

    @abstractmethod
    async def get_stats(self) -> KnowledgeStats:
        pass

    async def search_all(
        self,
        query_vector: Sequence[float],
        limit: int = DEFAULT_COMBINED_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        """
        Search channels and threads together.

        The budget is split 30/70 before querying, and the two result sets
        are then merged and re-sorted. This is not a top-K over the union:
        a channel ranked beyond its share is dropped even when it beats
        every returned thread.
        """
        channel_limit, thread_limit = split_budget(limit)

        channel_results, thread_results = await asyncio.gather(
            self.search_channels(query_vector, limit=channel_limit, threshold=threshold),
            self.search_threads(query_vector, limit=thread_limit, threshold=threshold),
        )

        merged = list(channel_results) + list(thread_results)
        merged.sort(key=lambda r: r.similarity, reverse=True)
        return merged[:limit]
