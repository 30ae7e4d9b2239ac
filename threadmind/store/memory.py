"""
In-process Knowledge Store

Same contract as the Postgres backend, held in dictionaries. Used for local
runs without a database and by the test suite. Similarity is exact cosine
(no approximate index).
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..common.schemas import Channel, Thread, SearchResult, KnowledgeStats
from .base import (
    KnowledgeStore,
    StoreError,
    DEFAULT_CHANNEL_LIMIT,
    DEFAULT_THREAD_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
)

logger = logging.getLogger("threadmind.store.memory")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    """1 - cosine distance; None when either vector has zero norm"""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return None
    return float(np.dot(va, vb) / denom)


class MemoryKnowledgeStore(KnowledgeStore):
    """Dictionary-backed store keyed like the Postgres unique constraints."""

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self._channels: Dict[str, Channel] = {}
        self._threads: Dict[Tuple[str, str], Thread] = {}
        self._next_channel_id = 1
        self._next_thread_id = 1

    @property
    def backend_name(self) -> str:
        return "memory"

    async def initialize(self) -> None:
        logger.info("MemoryKnowledgeStore ready (dimension=%d)", self._dimension)

    async def upsert_channel(self, channel: Channel) -> int:
        self._check_vector(channel.channel_embedding, "channel_embedding")

        existing = self._channels.get(channel.channel_id)
        row_id = existing.id if existing else self._next_channel_id
        if existing is None:
            self._next_channel_id += 1

        self._channels[channel.channel_id] = channel.model_copy(deep=True, update={"id": row_id})
        return row_id

    async def upsert_thread(self, thread: Thread) -> int:
        self._check_vector(thread.thread_embedding, "thread_embedding")

        if thread.channel_id not in self._channels:
            raise StoreError(
                "upsert_thread",
                LookupError(f"channel {thread.channel_id} does not exist (foreign key)"),
            )

        key = (thread.channel_id, thread.thread_ts)
        existing = self._threads.get(key)
        row_id = existing.id if existing else self._next_thread_id
        if existing is None:
            self._next_thread_id += 1

        self._threads[key] = thread.model_copy(deep=True, update={"id": row_id})
        return row_id

    async def delete_channel(self, channel_id: str) -> bool:
        """Remove a channel and, by cascade, its threads"""
        if self._channels.pop(channel_id, None) is None:
            return False
        for key in [k for k in self._threads if k[0] == channel_id]:
            del self._threads[key]
        return True

    async def has_channel_embedding(self, channel_id: str) -> bool:
        channel = self._channels.get(channel_id)
        return channel is not None and channel.has_embedding

    async def has_thread_embedding(self, channel_id: str, thread_ts: str) -> bool:
        thread = self._threads.get((channel_id, thread_ts))
        return thread is not None and thread.has_embedding

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        channel = self._channels.get(channel_id)
        return channel.model_copy(deep=True) if channel else None

    async def get_thread(self, channel_id: str, thread_ts: str) -> Optional[Thread]:
        thread = self._threads.get((channel_id, thread_ts))
        return thread.model_copy(deep=True) if thread else None

    async def search_channels(
        self,
        query_vector: Sequence[float],
        limit: int = DEFAULT_CHANNEL_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, "query_vector")

        results = []
        for channel in self._channels.values():
            if channel.channel_embedding is None:
                continue
            similarity = cosine_similarity(channel.channel_embedding, query_vector)
            if similarity is not None and similarity > threshold:
                results.append(SearchResult(
                    type="channel",
                    similarity=similarity,
                    data=channel.model_copy(deep=True),
                ))

        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:max(limit, 0)]

    async def search_threads(
        self,
        query_vector: Sequence[float],
        channel_id: Optional[str] = None,
        limit: int = DEFAULT_THREAD_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, "query_vector")

        results = []
        for (thread_channel, _), thread in self._threads.items():
            if thread.thread_embedding is None:
                continue
            if channel_id and thread_channel != channel_id:
                continue
            similarity = cosine_similarity(thread.thread_embedding, query_vector)
            if similarity is not None and similarity > threshold:
                results.append(SearchResult(
                    type="thread",
                    similarity=similarity,
                    data=thread.model_copy(deep=True),
                ))

        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:max(limit, 0)]

    async def get_stats(self) -> KnowledgeStats:
        categories = Counter(
            t.category for t in self._threads.values() if t.category is not None
        )
        return KnowledgeStats(
            total_channels=len(self._channels),
            channels_with_embedding=sum(1 for c in self._channels.values() if c.has_embedding),
            total_threads=len(self._threads),
            threads_with_embedding=sum(1 for t in self._threads.values() if t.has_embedding),
            threads_by_category=dict(categories),
        )
