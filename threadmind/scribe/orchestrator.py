"""
Capture Orchestrator

Drives one capture request through

    UNINDEXED -> COLLECTING -> EMBEDDING -> STORED
                     \\            \\          \\
                      +------------+-----------+--> FAILED

An entity that already has a stored embedding short-circuits straight to a
single "already indexed" reply. Otherwise a progress reply is posted, the
conversation is collected and summarized, the summary embedded, and the
entity upserted. Any failure after the progress reply (collection,
embedding, write, or an unexpected error) ends in FAILED with one failure
reply. Errors from the initial existence check are not caught here.

Two concurrent captures of the same unindexed entity both run the cold
path; their upserts converge on a single row (last writer wins).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..common.embedding_service import EmbeddingError, EmbeddingService
from ..common.schemas import Channel, Thread
from ..store.base import KnowledgeStore, StoreError
from .collector import CollectionError, ConversationCollector
from .notifications import (
    already_indexed_message,
    complete_message,
    failed_message,
    progress_message,
)
from .transport import ChatTransport, TransportError

logger = logging.getLogger("threadmind.scribe.orchestrator")


class CaptureState(str, Enum):
    UNINDEXED = "unindexed"
    COLLECTING = "collecting"
    EMBEDDING = "embedding"
    STORED = "stored"
    FAILED = "failed"


@dataclass
class CaptureRequest:
    """
    A request to index a channel or a thread.

    ``thread_ts`` selects the thread workflow; ``event_ts`` is the mention
    message, used as the reply thread when ``thread_ts`` is absent.
    """
    channel_id: str
    thread_ts: Optional[str] = None
    event_ts: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_thread(self) -> bool:
        return bool(self.thread_ts)

    @property
    def reply_ts(self) -> Optional[str]:
        return self.thread_ts or self.event_ts


@dataclass
class CaptureResult:
    """Terminal outcome of a capture"""
    state: CaptureState
    cache_hit: bool
    message: str
    entity: Optional[Union[Channel, Thread]] = None


class CaptureOrchestrator:
    """Runs the capture workflow for channels and threads"""

    def __init__(
        self,
        store: KnowledgeStore,
        embedding_service: EmbeddingService,
        collector: ConversationCollector,
        notifier: ChatTransport,
    ):
        self._store = store
        self._embedding = embedding_service
        self._collector = collector
        self._notifier = notifier

    async def _notify(self, request: CaptureRequest, text: str) -> None:
        try:
            await self._notifier.post_message(request.channel_id, text, thread_ts=request.reply_ts)
        except TransportError as e:
            logger.error("Failed to post reply in %s: %s", request.channel_id, e)

    async def _fail(self, request: CaptureRequest) -> CaptureResult:
        message = failed_message(request.is_thread)
        await self._notify(request, message)
        return CaptureResult(CaptureState.FAILED, False, message)

    async def _is_indexed(self, request: CaptureRequest) -> bool:
        if request.is_thread:
            return await self._store.has_thread_embedding(request.channel_id, request.thread_ts)
        return await self._store.has_channel_embedding(request.channel_id)

    async def _get_indexed(self, request: CaptureRequest):
        if request.is_thread:
            return await self._store.get_thread(request.channel_id, request.thread_ts)
        return await self._store.get_channel(request.channel_id)

    async def capture(self, request: CaptureRequest) -> CaptureResult:
        """
        Capture one channel or thread.

        Args:
            request: Target entity and reply context

        Returns:
            CaptureResult with STORED or FAILED state

        Raises:
            StoreError: The existence check (or cached-row read) failed
        """
        target = (
            f"thread {request.channel_id}/{request.thread_ts}"
            if request.is_thread else f"channel {request.channel_id}"
        )

        if await self._is_indexed(request):
            entity = await self._get_indexed(request)
            message = already_indexed_message(entity)
            logger.info("%s already indexed, skipping", target)
            await self._notify(request, message)
            return CaptureResult(CaptureState.STORED, True, message, entity)

        await self._notify(request, progress_message(request.is_thread))

        state = CaptureState.COLLECTING
        try:
            logger.info("Collecting %s", target)
            if request.is_thread:
                entity = await self._collector.collect_thread(request.channel_id, request.thread_ts)
                summary = entity.thread_summary
            else:
                entity = await self._collector.collect_channel(request.channel_id)
                summary = entity.channel_summary

            state = CaptureState.EMBEDDING
            vector = await self._embedding.generate_embedding(summary or "")
            if vector is None:
                logger.warning("No embedding produced for %s; storing without one", target)

            field = "thread_embedding" if request.is_thread else "channel_embedding"
            entity = entity.model_copy(update={field: vector})

            if request.is_thread:
                row_id = await self._store.upsert_thread(entity)
            else:
                row_id = await self._store.upsert_channel(entity)
            entity = entity.model_copy(update={"id": row_id})
        except (CollectionError, EmbeddingError, StoreError) as e:
            logger.exception("Capture of %s failed during %s: %s", target, state.value, e)
            return await self._fail(request)
        except Exception as e:
            # A progress reply is already out; it must be followed by a terminal one
            logger.exception("Unexpected error capturing %s during %s: %s", target, state.value, e)
            return await self._fail(request)

        message = complete_message(entity)
        logger.info("Indexed %s (row %s)", target, row_id)
        await self._notify(request, message)
        return CaptureResult(CaptureState.STORED, False, message, entity)
