"""
Capture notifications

Plain-text replies posted into the requesting thread. Every terminal
capture outcome produces exactly one of the completion-class messages.
"""

from typing import Optional

from ..common.schemas import Channel, Thread

PREFIX_PROGRESS = "🔄 Indexing"
PREFIX_ALREADY_INDEXED = "✅ Already indexed"
PREFIX_COMPLETE = "✅ Indexing complete"
PREFIX_FAILED = "❌ Indexing failed"

UNCATEGORIZED = "uncategorized"


def _kind(is_thread: bool) -> str:
    return "thread" if is_thread else "channel"


def progress_message(is_thread: bool) -> str:
    return f"{PREFIX_PROGRESS} {_kind(is_thread)}... this may take a moment."


def already_indexed_message(entity) -> str:
    """Cache-hit reply built from the stored row (which may be missing)"""
    if isinstance(entity, Thread):
        return (
            f"{PREFIX_ALREADY_INDEXED}: thread\n"
            f"📊 {entity.reply_count} messages, {entity.participant_count} participants\n"
            f"🏷️ Category: {entity.category or UNCATEGORIZED}"
        )
    if isinstance(entity, Channel):
        return (
            f"{PREFIX_ALREADY_INDEXED}: channel\n"
            f"📋 Channel: {entity.name or 'unknown'}\n"
            f"📊 {entity.message_count} messages, {entity.participant_count} participants"
        )
    return f"{PREFIX_ALREADY_INDEXED}."


def complete_message(entity) -> str:
    note = "" if entity.has_embedding else "\n(no embedding generated; not searchable yet)"
    if isinstance(entity, Thread):
        return (
            f"{PREFIX_COMPLETE}: thread\n"
            f"📊 {entity.reply_count} messages, {entity.participant_count} participants\n"
            f"🏷️ Category: {entity.category or UNCATEGORIZED}"
            f"{note}"
        )
    return (
        f"{PREFIX_COMPLETE}: channel\n"
        f"📋 Channel: {entity.name or 'unknown'}\n"
        f"📊 {entity.message_count} messages, {entity.participant_count} participants"
        f"{note}"
    )


def failed_message(is_thread: Optional[bool] = None) -> str:
    """Failure reply; ``None`` gives the generic form used outside the capture workflow"""
    if is_thread is None:
        return f"{PREFIX_FAILED}: an error occurred while processing the request. Please try again."
    return f"{PREFIX_FAILED}: an error occurred while indexing the {_kind(is_thread)}. Please try again."
