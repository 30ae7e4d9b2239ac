"""
threadmind

Slack knowledge base: captures channels and threads on mention, embeds and
categorizes them, and serves similarity search over what was captured.

Philosophy:
- One row per channel and per thread, always fully replaced on re-capture
- Capture at most once per missing embedding (existence check first)
- "No embedding" is a valid outcome: the row is stored but not searchable
- Search never writes

Usage:
    from threadmind.common import load_config, get_embedding_service
    from threadmind.store import create_store
    from threadmind.scribe import CaptureOrchestrator, classify_thread
    from threadmind.retriever import Searcher
"""

__version__ = "0.1.0"
