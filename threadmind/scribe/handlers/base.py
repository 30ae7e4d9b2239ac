"""
Base Handler

Abstract base class for source-specific event handlers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any

from ..orchestrator import CaptureRequest


@dataclass
class Mention:
    """
    A bot mention, normalized across sources.

    ``thread_ts`` is set when the mention was posted inside a thread.
    """
    channel: str
    user: str
    timestamp: str
    text: str = ""
    thread_ts: Optional[str] = None
    source: str = "slack"
    is_bot: bool = False

    def to_capture_request(self) -> CaptureRequest:
        return CaptureRequest(
            channel_id=self.channel,
            thread_ts=self.thread_ts,
            event_ts=self.timestamp,
            user_id=self.user or None,
        )


class BaseHandler(ABC):
    """
    Abstract base class for source handlers.

    Each handler must implement:
    - parse_event: Convert raw event to Mention
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Mention]:
        """
        Parse raw event data into a Mention.

        Returns:
            Mention or None if the event should be ignored
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str, timestamp: str) -> bool:
        pass

    def parse_mention(self, raw_data: Dict[str, Any]) -> Optional[CaptureRequest]:
        """
        Map a raw event to a capture request.

        Returns:
            CaptureRequest, or None for ignored events and bot messages
        """
        mention = self.parse_event(raw_data)
        if mention is None or mention.is_bot or not mention.channel:
            return None
        return mention.to_capture_request()
