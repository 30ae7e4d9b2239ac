"""
Knowledge Store

Sole reader and writer of persisted channels and threads.

Backends:
- PostgresKnowledgeStore: PostgreSQL + pgvector over an asyncpg pool
- MemoryKnowledgeStore: in-process dictionaries (local runs, tests)
"""

from ..common.config import DatabaseConfig
from .base import KnowledgeStore, StoreError, split_budget
from .memory import MemoryKnowledgeStore
from .postgres import PostgresKnowledgeStore


def create_store(config: DatabaseConfig, dimension: int) -> KnowledgeStore:
    """
    Build the store selected by ``config.backend``.

    Args:
        config: Database section of the loaded configuration
        dimension: Embedding dimension shared with the embedding service

    Raises:
        ValueError: Unknown backend
    """
    backend = (config.backend or "postgres").lower()

    if backend == "postgres":
        return PostgresKnowledgeStore(
            dsn=config.dsn,
            dimension=dimension,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            ssl=config.ssl,
        )
    if backend == "memory":
        return MemoryKnowledgeStore(dimension=dimension)

    raise ValueError(f"Unknown store backend: {config.backend}")


__all__ = [
    "KnowledgeStore",
    "StoreError",
    "split_budget",
    "MemoryKnowledgeStore",
    "PostgresKnowledgeStore",
    "create_store",
]
