"""Shared fakes for the threadmind test suite."""

import asyncio
from typing import Dict, List, Optional

import pytest

from threadmind.common.embedding_service import EmbeddingService
from threadmind.scribe.transport import MessagePage, TransportError
from threadmind.store.memory import MemoryKnowledgeStore

DIM = 4


class FakeEmbeddingService(EmbeddingService):
    """
    Deterministic embeddings: texts containing a key of ``vectors`` get that
    vector, everything else gets ``default``.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None,
                 default: Optional[List[float]] = None, dimension: int = DIM):
        super().__init__(dimension)
        self.vectors = vectors or {}
        self.default = default if default is not None else [1.0, 0.0, 0.0, 0.0]
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.return_none = False

    @property
    def mode(self) -> str:
        return "fake"

    async def _embed(self, texts):
        self.calls.extend(texts)
        if self.error is not None:
            raise self.error
        if self.return_none:
            return [None] * len(texts)
        out = []
        for text in texts:
            match = next((v for k, v in self.vectors.items() if k in text), self.default)
            out.append(list(match))
        return out


class FakeTransport:
    """In-memory ChatTransport recording every call"""

    def __init__(self):
        self.channel_info: Dict[str, Dict] = {}
        self.history_pages: Dict[str, List[MessagePage]] = {}
        self.reply_pages: Dict[tuple, List[MessagePage]] = {}
        self.posts: List[Dict] = []
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.fail_posts = False

    def add_channel(self, channel_id: str, messages: List[Dict], **info):
        self.channel_info[channel_id] = {"id": channel_id, **info}
        self.history_pages[channel_id] = [MessagePage(messages=messages)]

    def add_thread(self, channel_id: str, thread_ts: str, messages: List[Dict]):
        self.reply_pages[(channel_id, thread_ts)] = [MessagePage(messages=messages)]

    def _page(self, pages: List[MessagePage], cursor: Optional[str]) -> MessagePage:
        index = int(cursor) if cursor else 0
        return pages[index] if index < len(pages) else MessagePage()

    async def get_channel_info(self, channel_id):
        self.calls.append(("info", channel_id))
        if self.fail_with:
            raise self.fail_with
        return self.channel_info.get(channel_id, {"id": channel_id})

    async def get_channel_history(self, channel_id, cursor=None, limit=200):
        self.calls.append(("history", channel_id, cursor))
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        return self._page(self.history_pages.get(channel_id, []), cursor)

    async def get_thread_replies(self, channel_id, thread_ts, cursor=None, limit=200):
        self.calls.append(("replies", channel_id, thread_ts, cursor))
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        return self._page(self.reply_pages.get((channel_id, thread_ts), []), cursor)

    async def post_message(self, channel_id, text, thread_ts=None):
        if self.fail_posts:
            raise TransportError("chat.postMessage failed")
        self.posts.append({"channel": channel_id, "text": text, "thread_ts": thread_ts})

    @property
    def collection_calls(self) -> int:
        return len(self.calls)


def msg(ts: str, text: str = "", user: Optional[str] = "U1", **extra) -> Dict:
    message = {"ts": ts, "text": text, **extra}
    if user:
        message["user"] = user
    return message


@pytest.fixture
def store():
    return MemoryKnowledgeStore(dimension=DIM)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def embedder():
    return FakeEmbeddingService()
