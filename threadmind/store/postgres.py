"""
PostgreSQL Knowledge Store

asyncpg connection pool + pgvector. Each operation acquires one pooled
connection for its duration and releases it on every exit path.

Vectors travel as pgvector text literals (``[0.1,0.2,...]``) cast with
``::vector``, so no client-side codec registration is needed.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import asyncpg

from ..common.schemas import Channel, Thread, SearchResult, KnowledgeStats
from .base import (
    KnowledgeStore,
    StoreError,
    DEFAULT_CHANNEL_LIMIT,
    DEFAULT_THREAD_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
)

logger = logging.getLogger("threadmind.store.postgres")

_CHANNEL_COLUMNS = """
    id, channel_id, name, topic, purpose, is_private, channel_summary,
    message_count, participant_count, last_activity_at
"""

_THREAD_COLUMNS = """
    id, channel_id, thread_ts, root_user_id, root_username, root_message,
    thread_summary, reply_count, participant_count, last_reply_at,
    category, status
"""

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def schema_statements(dimension: int) -> List[str]:
    """DDL for the knowledge base, idempotent"""
    return [
        "CREATE EXTENSION IF NOT EXISTS vector",
        f"""
        CREATE TABLE IF NOT EXISTS channels (
            id SERIAL PRIMARY KEY,
            channel_id VARCHAR(50) UNIQUE NOT NULL,
            name VARCHAR(255),
            topic TEXT,
            purpose TEXT,
            is_private BOOLEAN DEFAULT FALSE,
            channel_summary TEXT,
            channel_embedding VECTOR({dimension}),
            message_count INTEGER DEFAULT 0,
            participant_count INTEGER DEFAULT 0,
            last_activity_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS threads (
            id SERIAL PRIMARY KEY,
            channel_id VARCHAR(50) NOT NULL REFERENCES channels(channel_id) ON DELETE CASCADE,
            thread_ts VARCHAR(30) NOT NULL,
            root_user_id VARCHAR(50),
            root_username VARCHAR(255),
            root_message TEXT,
            thread_summary TEXT,
            thread_embedding VECTOR({dimension}),
            reply_count INTEGER DEFAULT 0,
            participant_count INTEGER DEFAULT 0,
            last_reply_at TIMESTAMP,
            category VARCHAR(100),
            status VARCHAR(50) DEFAULT 'active',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (channel_id, thread_ts)
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_channels_embedding
        ON channels USING ivfflat (channel_embedding vector_cosine_ops)
        WITH (lists = 50)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_threads_embedding
        ON threads USING ivfflat (thread_embedding vector_cosine_ops)
        WITH (lists = 100)
        """,
    ]


def to_vector_literal(vector: Optional[Sequence[float]]) -> Optional[str]:
    """Encode a vector as a pgvector text literal"""
    if vector is None:
        return None
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def parse_vector_literal(text: Optional[str]) -> Optional[List[float]]:
    """Decode a pgvector text literal"""
    if text is None:
        return None
    return [float(v) for v in json.loads(text)]


def _to_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """TIMESTAMP columns hold naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _row_to_channel(row: Any) -> Channel:
    return Channel(
        id=row["id"],
        channel_id=row["channel_id"],
        name=row["name"],
        topic=row["topic"],
        purpose=row["purpose"],
        is_private=bool(row["is_private"]),
        channel_summary=row["channel_summary"],
        channel_embedding=parse_vector_literal(row.get("embedding_text")),
        message_count=row["message_count"] or 0,
        participant_count=row["participant_count"] or 0,
        last_activity_at=_from_db_timestamp(row["last_activity_at"]),
    )


def _row_to_thread(row: Any) -> Thread:
    return Thread(
        id=row["id"],
        channel_id=row["channel_id"],
        thread_ts=row["thread_ts"],
        root_user_id=row["root_user_id"],
        root_username=row["root_username"],
        root_message=row["root_message"],
        thread_summary=row["thread_summary"],
        thread_embedding=parse_vector_literal(row.get("embedding_text")),
        reply_count=row["reply_count"] or 0,
        participant_count=row["participant_count"] or 0,
        last_reply_at=_from_db_timestamp(row["last_reply_at"]),
        category=row["category"],
        status=row["status"] or "active",
    )


class PostgresKnowledgeStore(KnowledgeStore):
    """
    Knowledge store on PostgreSQL with the pgvector extension.

    Similarity is ``1 - (embedding <=> query)`` (cosine distance); the
    ivfflat indexes make nearest-neighbor search approximate.
    """

    def __init__(
        self,
        dsn: str = "",
        dimension: int = 1536,
        min_size: int = 1,
        max_size: int = 10,
        ssl: bool = False,
        pool=None,
    ):
        """
        Initialize the store.

        Args:
            dsn: postgresql:// connection string
            dimension: Length of the VECTOR columns
            min_size: Minimum pool connections
            max_size: Maximum pool connections (the only admission control)
            ssl: Require TLS without certificate verification
            pool: Pre-built pool (tests, shared pools); skips pool creation
        """
        super().__init__(dimension)
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._ssl = ssl
        self._pool = pool
        self._pool_lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "postgres"

    async def _ensure_pool(self):
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        dsn=self._dsn,
                        min_size=self._min_size,
                        max_size=self._max_size,
                        ssl="require" if self._ssl else None,
                        command_timeout=30.0,
                    )
        return self._pool

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection; driver failures become StoreError"""
        try:
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                yield conn
        except _DB_ERRORS as e:
            logger.error("Store operation %s failed: %s", operation, e)
            raise StoreError(operation, e) from e

    async def initialize(self) -> None:
        async with self._connection("initialize") as conn:
            for statement in schema_statements(self._dimension):
                await conn.execute(statement)
        logger.info("PostgresKnowledgeStore: tables and indexes ready (dimension=%d)", self._dimension)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def upsert_channel(self, channel: Channel) -> int:
        self._check_vector(channel.channel_embedding, "channel_embedding")

        async with self._connection("upsert_channel") as conn:
            return await conn.fetchval(
                """
                INSERT INTO channels (
                    channel_id, name, topic, purpose, is_private,
                    channel_summary, channel_embedding, message_count,
                    participant_count, last_activity_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7::vector, $8, $9, $10)
                ON CONFLICT (channel_id)
                DO UPDATE SET
                    name = EXCLUDED.name,
                    topic = EXCLUDED.topic,
                    purpose = EXCLUDED.purpose,
                    is_private = EXCLUDED.is_private,
                    channel_summary = EXCLUDED.channel_summary,
                    channel_embedding = EXCLUDED.channel_embedding,
                    message_count = EXCLUDED.message_count,
                    participant_count = EXCLUDED.participant_count,
                    last_activity_at = EXCLUDED.last_activity_at,
                    updated_at = CURRENT_TIMESTAMP
                RETURNING id
                """,
                channel.channel_id,
                channel.name or None,
                channel.topic or None,
                channel.purpose or None,
                bool(channel.is_private),
                channel.channel_summary or None,
                to_vector_literal(channel.channel_embedding),
                channel.message_count or 0,
                channel.participant_count or 0,
                _to_db_timestamp(channel.last_activity_at),
            )

    async def upsert_thread(self, thread: Thread) -> int:
        self._check_vector(thread.thread_embedding, "thread_embedding")

        async with self._connection("upsert_thread") as conn:
            return await conn.fetchval(
                """
                INSERT INTO threads (
                    channel_id, thread_ts, root_user_id, root_username, root_message,
                    thread_summary, thread_embedding, reply_count, participant_count,
                    last_reply_at, category, status
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7::vector, $8, $9, $10, $11, $12)
                ON CONFLICT (channel_id, thread_ts)
                DO UPDATE SET
                    root_user_id = EXCLUDED.root_user_id,
                    root_username = EXCLUDED.root_username,
                    root_message = EXCLUDED.root_message,
                    thread_summary = EXCLUDED.thread_summary,
                    thread_embedding = EXCLUDED.thread_embedding,
                    reply_count = EXCLUDED.reply_count,
                    participant_count = EXCLUDED.participant_count,
                    last_reply_at = EXCLUDED.last_reply_at,
                    category = EXCLUDED.category,
                    status = EXCLUDED.status,
                    updated_at = CURRENT_TIMESTAMP
                RETURNING id
                """,
                thread.channel_id,
                thread.thread_ts,
                thread.root_user_id or None,
                thread.root_username or None,
                thread.root_message or None,
                thread.thread_summary or None,
                to_vector_literal(thread.thread_embedding),
                thread.reply_count or 0,
                thread.participant_count or 0,
                _to_db_timestamp(thread.last_reply_at),
                thread.category or None,
                (thread.status.value if thread.status else "active"),
            )

    async def has_channel_embedding(self, channel_id: str) -> bool:
        async with self._connection("has_channel_embedding") as conn:
            row = await conn.fetchrow(
                "SELECT 1 FROM channels WHERE channel_id = $1 AND channel_embedding IS NOT NULL",
                channel_id,
            )
            return row is not None

    async def has_thread_embedding(self, channel_id: str, thread_ts: str) -> bool:
        async with self._connection("has_thread_embedding") as conn:
            row = await conn.fetchrow(
                "SELECT 1 FROM threads WHERE channel_id = $1 AND thread_ts = $2 "
                "AND thread_embedding IS NOT NULL",
                channel_id,
                thread_ts,
            )
            return row is not None

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        async with self._connection("get_channel") as conn:
            row = await conn.fetchrow(
                f"SELECT {_CHANNEL_COLUMNS}, channel_embedding::text AS embedding_text "
                "FROM channels WHERE channel_id = $1",
                channel_id,
            )
        return _row_to_channel(row) if row is not None else None

    async def get_thread(self, channel_id: str, thread_ts: str) -> Optional[Thread]:
        async with self._connection("get_thread") as conn:
            row = await conn.fetchrow(
                f"SELECT {_THREAD_COLUMNS}, thread_embedding::text AS embedding_text "
                "FROM threads WHERE channel_id = $1 AND thread_ts = $2",
                channel_id,
                thread_ts,
            )
        return _row_to_thread(row) if row is not None else None

    async def search_channels(
        self,
        query_vector: Sequence[float],
        limit: int = DEFAULT_CHANNEL_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, "query_vector")

        async with self._connection("search_channels") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_CHANNEL_COLUMNS}, 1 - (channel_embedding <=> $1::vector) AS similarity
                FROM channels
                WHERE channel_embedding IS NOT NULL
                AND 1 - (channel_embedding <=> $1::vector) > $2
                ORDER BY channel_embedding <=> $1::vector
                LIMIT $3
                """,
                to_vector_literal(query_vector),
                threshold,
                limit,
            )

        return [
            SearchResult(type="channel", similarity=float(row["similarity"]), data=_row_to_channel(row))
            for row in rows
        ]

    async def search_threads(
        self,
        query_vector: Sequence[float],
        channel_id: Optional[str] = None,
        limit: int = DEFAULT_THREAD_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, "query_vector")

        query = f"""
            SELECT {_THREAD_COLUMNS}, 1 - (thread_embedding <=> $1::vector) AS similarity
            FROM threads
            WHERE thread_embedding IS NOT NULL
            AND 1 - (thread_embedding <=> $1::vector) > $2
        """
        params: List[Any] = [to_vector_literal(query_vector), threshold]

        if channel_id:
            query += " AND channel_id = $3 ORDER BY thread_embedding <=> $1::vector LIMIT $4"
            params.extend([channel_id, limit])
        else:
            query += " ORDER BY thread_embedding <=> $1::vector LIMIT $3"
            params.append(limit)

        async with self._connection("search_threads") as conn:
            rows = await conn.fetch(query, *params)

        return [
            SearchResult(type="thread", similarity=float(row["similarity"]), data=_row_to_thread(row))
            for row in rows
        ]

    async def get_stats(self) -> KnowledgeStats:
        async with self._connection("get_stats") as conn:
            total_channels = await conn.fetchval("SELECT COUNT(*) FROM channels")
            channels_with_embedding = await conn.fetchval(
                "SELECT COUNT(*) FROM channels WHERE channel_embedding IS NOT NULL"
            )
            total_threads = await conn.fetchval("SELECT COUNT(*) FROM threads")
            threads_with_embedding = await conn.fetchval(
                "SELECT COUNT(*) FROM threads WHERE thread_embedding IS NOT NULL"
            )
            category_rows = await conn.fetch(
                "SELECT category, COUNT(*) AS count FROM threads "
                "WHERE category IS NOT NULL GROUP BY category"
            )

        return KnowledgeStats(
            total_channels=int(total_channels or 0),
            channels_with_embedding=int(channels_with_embedding or 0),
            total_threads=int(total_threads or 0),
            threads_with_embedding=int(threads_with_embedding or 0),
            threads_by_category={row["category"]: int(row["count"]) for row in category_rows},
        )
