"""
threadmind Common Module

Shared infrastructure for the scribe (capture) and retriever (search) sides.
"""

from .config import ThreadmindConfig, load_config
from .embedding_service import (
    EmbeddingError,
    EmbeddingService,
    SimulatedEmbeddingService,
    FastEmbedService,
    OpenAIEmbeddingService,
    create_embedding_service,
    get_embedding_service,
    verify_dimensions,
)
from .logging_config import setup_logging
from .schemas import Channel, Thread, ThreadStatus, SearchResult, KnowledgeStats

__all__ = [
    "ThreadmindConfig",
    "load_config",
    "EmbeddingError",
    "EmbeddingService",
    "SimulatedEmbeddingService",
    "FastEmbedService",
    "OpenAIEmbeddingService",
    "create_embedding_service",
    "get_embedding_service",
    "verify_dimensions",
    "setup_logging",
    "Channel",
    "Thread",
    "ThreadStatus",
    "SearchResult",
    "KnowledgeStats",
]
