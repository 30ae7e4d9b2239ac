"""
Knowledge Base Schemas

Channel and Thread are the two persisted entity types. Embeddings and
summaries are produced upstream and carried here as opaque values; the
store enforces the embedding dimension on write.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ThreadStatus(str, Enum):
    """Thread lifecycle status (not transitioned by capture)"""
    ACTIVE = "active"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class Channel(BaseModel):
    """A captured Slack channel"""
    id: Optional[int] = None
    channel_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    topic: Optional[str] = None
    purpose: Optional[str] = None
    is_private: bool = False
    channel_summary: Optional[str] = None
    channel_embedding: Optional[List[float]] = None
    message_count: int = Field(default=0, ge=0)
    participant_count: int = Field(default=0, ge=0)
    last_activity_at: Optional[datetime] = None

    @property
    def has_embedding(self) -> bool:
        return self.channel_embedding is not None


class Thread(BaseModel):
    """A captured Slack thread, keyed by (channel_id, thread_ts)"""
    id: Optional[int] = None
    channel_id: str = Field(..., min_length=1)
    thread_ts: str = Field(..., min_length=1)
    root_user_id: Optional[str] = None
    root_username: Optional[str] = None
    root_message: Optional[str] = None
    thread_summary: Optional[str] = None
    thread_embedding: Optional[List[float]] = None
    reply_count: int = Field(default=0, ge=0)
    participant_count: int = Field(default=0, ge=0)
    last_reply_at: Optional[datetime] = None
    category: Optional[str] = None
    status: ThreadStatus = ThreadStatus.ACTIVE

    @property
    def has_embedding(self) -> bool:
        return self.thread_embedding is not None


@dataclass
class SearchResult:
    """A single similarity match (not persisted)"""
    type: Literal["channel", "thread"]
    similarity: float
    data: Union[Channel, Thread]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe rendering without the raw embedding"""
        exclude = {"channel_embedding"} if self.type == "channel" else {"thread_embedding"}
        return {
            "type": self.type,
            "similarity": self.similarity,
            "data": self.data.model_dump(mode="json", exclude=exclude),
        }


@dataclass
class KnowledgeStats:
    """Row counts per entity type"""
    total_channels: int = 0
    channels_with_embedding: int = 0
    total_threads: int = 0
    threads_with_embedding: int = 0
    threads_by_category: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_channels": self.total_channels,
            "channels_with_embedding": self.channels_with_embedding,
            "total_threads": self.total_threads,
            "threads_with_embedding": self.threads_with_embedding,
            "threads_by_category": dict(self.threads_by_category),
        }
