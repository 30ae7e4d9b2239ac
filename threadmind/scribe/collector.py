"""
Conversation Collector

Gathers raw conversation data for one channel or thread, derives counts,
and builds the bounded plain-text summary that gets embedded.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..common.schemas import Channel, Thread, ThreadStatus
from .categorizer import classify_thread
from .transport import ChatTransport, MessagePage, TransportError, SLACK_PAGE_LIMIT

logger = logging.getLogger("threadmind.scribe.collector")

NO_TEXT_PLACEHOLDER = "[attachment or non-text message]"
UNKNOWN = "unknown"


class CollectionError(Exception):
    """Fetching or interpreting conversation data failed."""
    pass


def slack_ts_to_datetime(ts: Optional[str]) -> Optional[datetime]:
    """Slack "1700000000.000100" timestamps to aware UTC datetimes"""
    if not ts:
        return None
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)


def _message_text(message: Dict[str, Any]) -> str:
    text = message.get("text")
    if isinstance(text, str) and text.strip():
        return text
    return NO_TEXT_PLACEHOLDER


def _field_value(value: Any) -> Optional[str]:
    """Slack topic/purpose arrive as {"value": ...}; plain strings are accepted too"""
    if isinstance(value, dict):
        value = value.get("value")
    return value or None


def count_participants(messages: List[Dict[str, Any]]) -> int:
    """Distinct user ids among messages"""
    return len({m["user"] for m in messages if m.get("user")})


class ConversationCollector:
    """
    Collects channel history or thread replies through a ChatTransport.

    Pagination follows the continuation cursor until it is exhausted,
    stopping early after ``max_pages`` pages. Both ``max_pages`` and
    ``page_size`` must be positive.
    """

    def __init__(
        self,
        transport: ChatTransport,
        summary_message_limit: int = 10,
        page_size: int = SLACK_PAGE_LIMIT,
        max_pages: int = 50,
    ):
        if max_pages < 1:
            raise ValueError(f"max_pages must be at least 1, got {max_pages}")
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self._transport = transport
        self._summary_limit = summary_message_limit
        self._page_size = page_size
        self._max_pages = max_pages

    async def _paginate(
        self,
        fetch_page: Callable[[Optional[str]], Any],
        label: str,
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        for page_number in range(1, self._max_pages + 1):
            page: MessagePage = await fetch_page(cursor)
            messages.extend(page.messages)
            cursor = page.next_cursor
            if not cursor:
                break
        else:
            logger.warning(
                "Stopped paginating %s after %d pages (%d messages); history truncated",
                label, page_number, len(messages),
            )

        return messages

    async def fetch_channel_messages(self, channel_id: str) -> List[Dict[str, Any]]:
        """Full channel history, newest first"""
        return await self._paginate(
            lambda cursor: self._transport.get_channel_history(
                channel_id, cursor=cursor, limit=self._page_size
            ),
            label=f"channel {channel_id}",
        )

    async def fetch_thread_messages(self, channel_id: str, thread_ts: str) -> List[Dict[str, Any]]:
        """Root message followed by all replies, oldest first"""
        messages = await self._paginate(
            lambda cursor: self._transport.get_thread_replies(
                channel_id, thread_ts, cursor=cursor, limit=self._page_size
            ),
            label=f"thread {channel_id}/{thread_ts}",
        )

        # conversations.replies repeats the parent message at the top of every page
        seen = set()
        unique: List[Dict[str, Any]] = []
        for message in messages:
            ts = message.get("ts")
            if ts is not None:
                if ts in seen:
                    continue
                seen.add(ts)
            unique.append(message)
        return unique

    async def collect_channel(self, channel_id: str) -> Channel:
        """
        Collect a channel and summarize its most recent messages.

        Raises:
            CollectionError: Transport failure or malformed data
        """
        try:
            info = await self._transport.get_channel_info(channel_id)
            messages = await self.fetch_channel_messages(channel_id)

            name = info.get("name")
            topic = _field_value(info.get("topic"))
            purpose = _field_value(info.get("purpose"))
            participant_count = count_participants(messages)

            lines = [
                f"Channel: {name or UNKNOWN}",
                f"Topic: {topic}" if topic else "",
                f"Purpose: {purpose}" if purpose else "",
                f"Messages: {len(messages)}",
                f"Members: {participant_count}",
                "Recent messages:",
            ]
            lines.extend(f"- {_message_text(m)}" for m in messages[:self._summary_limit])
            summary = "\n".join(line for line in lines if line)

            last_activity = slack_ts_to_datetime(messages[0].get("ts")) if messages else None

            return Channel(
                channel_id=channel_id,
                name=name,
                topic=topic,
                purpose=purpose,
                is_private=bool(info.get("is_private", False)),
                channel_summary=summary,
                message_count=len(messages),
                participant_count=participant_count,
                last_activity_at=last_activity or datetime.now(timezone.utc),
            )
        except (TransportError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise CollectionError(f"Failed to collect channel {channel_id}: {e}") from e

    async def collect_thread(self, channel_id: str, thread_ts: str) -> Thread:
        """
        Collect a thread, summarize its first replies, and categorize it.

        Raises:
            CollectionError: Transport failure or malformed data
        """
        try:
            messages = await self.fetch_thread_messages(channel_id, thread_ts)

            root = messages[0] if messages else {}
            replies = messages[1:]
            participant_count = count_participants(messages)

            lines = [
                f"Root message: {_message_text(root)}",
                f"Replies: {len(replies)}",
                f"Members: {participant_count}",
                "Thread:",
            ]
            lines.extend(f"- {_message_text(m)}" for m in replies[:self._summary_limit])
            summary = "\n".join(lines)

            profile = root.get("user_profile") or {}
            username = root.get("username") or profile.get("real_name") or UNKNOWN
            last_reply = slack_ts_to_datetime(messages[-1].get("ts")) if messages else None

            return Thread(
                channel_id=channel_id,
                thread_ts=thread_ts,
                root_user_id=root.get("user"),
                root_username=username,
                root_message=root.get("text") or None,
                thread_summary=summary,
                reply_count=len(replies),
                participant_count=participant_count,
                last_reply_at=last_reply or datetime.now(timezone.utc),
                category=classify_thread(summary),
                status=ThreadStatus.ACTIVE,
            )
        except (TransportError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise CollectionError(
                f"Failed to collect thread {channel_id}/{thread_ts}: {e}"
            ) from e
