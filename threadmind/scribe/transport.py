"""
Chat Transport

The capture workflow talks to Slack only through this interface: channel
metadata, paginated history and replies, and posting replies.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

logger = logging.getLogger("threadmind.scribe.transport")

# Slack API limit per page
SLACK_PAGE_LIMIT = 200


class TransportError(Exception):
    """A chat platform API call failed."""
    pass


@dataclass
class MessagePage:
    """One page of messages plus the continuation cursor ("" or None when done)"""
    messages: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None


class ChatTransport(Protocol):
    """Operations the capture workflow needs from the chat platform"""

    async def get_channel_info(self, channel_id: str) -> Dict[str, Any]:
        ...

    async def get_channel_history(
        self, channel_id: str, cursor: Optional[str] = None, limit: int = SLACK_PAGE_LIMIT
    ) -> MessagePage:
        ...

    async def get_thread_replies(
        self, channel_id: str, thread_ts: str, cursor: Optional[str] = None, limit: int = SLACK_PAGE_LIMIT
    ) -> MessagePage:
        ...

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> None:
        ...


def _next_cursor(response) -> Optional[str]:
    metadata = response.get("response_metadata") or {}
    return metadata.get("next_cursor") or None


class SlackTransport:
    """ChatTransport over slack_sdk's AsyncWebClient"""

    def __init__(self, bot_token: str = "", client: Optional[AsyncWebClient] = None):
        """
        Initialize Slack transport.

        Args:
            bot_token: Slack bot OAuth token
            client: Pre-built client (tests); overrides bot_token
        """
        if client is None and not bot_token:
            raise ValueError("Slack bot token is not set")
        self._client = client or AsyncWebClient(token=bot_token)

    async def get_channel_info(self, channel_id: str) -> Dict[str, Any]:
        try:
            response = await self._client.conversations_info(channel=channel_id)
        except SlackApiError as e:
            raise TransportError(f"conversations.info failed for {channel_id}: {e}") from e
        return response.get("channel") or {}

    async def get_channel_history(
        self, channel_id: str, cursor: Optional[str] = None, limit: int = SLACK_PAGE_LIMIT
    ) -> MessagePage:
        try:
            response = await self._client.conversations_history(
                channel=channel_id,
                limit=limit,
                cursor=cursor,
                include_all_metadata=True,
            )
        except SlackApiError as e:
            raise TransportError(f"conversations.history failed for {channel_id}: {e}") from e
        return MessagePage(
            messages=list(response.get("messages") or []),
            next_cursor=_next_cursor(response),
        )

    async def get_thread_replies(
        self, channel_id: str, thread_ts: str, cursor: Optional[str] = None, limit: int = SLACK_PAGE_LIMIT
    ) -> MessagePage:
        try:
            response = await self._client.conversations_replies(
                channel=channel_id,
                ts=thread_ts,
                limit=limit,
                cursor=cursor,
                include_all_metadata=True,
            )
        except SlackApiError as e:
            raise TransportError(
                f"conversations.replies failed for {channel_id}/{thread_ts}: {e}"
            ) from e
        return MessagePage(
            messages=list(response.get("messages") or []),
            next_cursor=_next_cursor(response),
        )

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> None:
        try:
            await self._client.chat_postMessage(channel=channel_id, text=text, thread_ts=thread_ts)
        except SlackApiError as e:
            raise TransportError(f"chat.postMessage failed for {channel_id}: {e}") from e
