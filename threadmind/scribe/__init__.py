"""
Scribe - Channel and Thread Capture

Captures a Slack channel or thread when the bot is mentioned: collects the
conversation, builds a bounded summary, categorizes threads, embeds the
summary, and upserts the result into the knowledge store.

Key Components:
- ConversationCollector: Paginated history/replies and summary building
- classify_thread: Keyword-based thread categorization
- CaptureOrchestrator: Capture state machine and thread replies
- Handlers: Source-specific event processing (Slack)
"""

from .categorizer import THREAD_CATEGORIES, FALLBACK_CATEGORY, classify_thread, score_categories
from .collector import CollectionError, ConversationCollector
from .orchestrator import CaptureOrchestrator, CaptureRequest, CaptureResult, CaptureState
from .transport import ChatTransport, SlackTransport, TransportError

__all__ = [
    "THREAD_CATEGORIES",
    "FALLBACK_CATEGORY",
    "classify_thread",
    "score_categories",
    "CollectionError",
    "ConversationCollector",
    "CaptureOrchestrator",
    "CaptureRequest",
    "CaptureResult",
    "CaptureState",
    "ChatTransport",
    "SlackTransport",
    "TransportError",
]
