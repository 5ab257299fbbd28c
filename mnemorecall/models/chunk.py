"""
Chunk metadata models: temporal state, access history and aggregate stats.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


class ChunkType(str, Enum):
    """Kinds of knowledge a chunk can hold."""

    DOCUMENTATION = "documentation"
    CODE = "code"
    SOLUTION = "solution"
    PATTERN = "pattern"
    DECISION = "decision"
    STANDARD = "standard"
    PREFERENCE = "preference"
    CATEGORY_SUMMARY = "category_summary"


class ChunkMetadata(BaseModel):
    """
    Durable temporal and access state of one chunk.

    Exactly one record exists per chunk_id. Archived chunks are hidden from
    default reads but are only removed by an explicit delete.
    """

    chunk_id: str = Field(..., description="Chunk identifier (primary key)")
    source: str = Field(default="unknown", description="Origin of the chunk")
    chunk_type: ChunkType = Field(default=ChunkType.DOCUMENTATION)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime | None = None
    access_count: int = Field(default=0, ge=0)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    decay_score: float = Field(default=1.0, ge=0.0, le=1.0)
    is_archived: bool = False
    source_conversation_id: str | None = None
    source_message_index: int | None = None


class ChunkMetadataPatch(BaseModel):
    """
    Partial update of a ChunkMetadata record.

    Only fields that are explicitly set overwrite stored values; unset fields
    leave the stored value unchanged. Defaults of ChunkMetadata are applied
    only when the record is first inserted.
    """

    chunk_id: str
    source: str | None = None
    chunk_type: ChunkType | None = None
    created_at: datetime | None = None
    last_accessed_at: datetime | None = None
    access_count: int | None = Field(default=None, ge=0)
    importance: float | None = Field(default=None, ge=0.0, le=1.0)
    decay_score: float | None = Field(default=None, ge=0.0, le=1.0)
    is_archived: bool | None = None
    source_conversation_id: str | None = None
    source_message_index: int | None = None


class AccessLogEntry(BaseModel):
    """Append-only record of a chunk being returned to a caller."""

    chunk_id: str
    accessed_at: datetime = Field(default_factory=utcnow)
    query_text: str | None = None
    result_rank: int | None = None


class AccessStat(BaseModel):
    """Access count of one chunk within a reporting window."""

    chunk_id: str
    count: int
    last_access: datetime | None = None


class ProcessedConversation(BaseModel):
    """Idempotency marker for a conversation whose knowledge was extracted."""

    id: str
    conversation_id: str
    processed_at: datetime = Field(default_factory=utcnow)
    message_count: int = 0
    chunks_created: int = 0
    knowledge_extracted: int = 0


class MemoryStats(BaseModel):
    """Aggregate figures over the metadata store."""

    total_chunks: int = 0
    active_chunks: int = 0
    archived_chunks: int = 0
    avg_decay_score: float = 0.0
    avg_importance: float = 0.0
    total_accesses: int = 0
    chunks_by_type: dict[str, int] = Field(default_factory=dict)
    relationship_count: int = 0
    category_count: int = 0


class DecayBreakdown(BaseModel):
    """The factors that produced one decay score."""

    chunk_id: str
    age_days: float
    age_factor: float
    frequency_factor: float
    recency_boost: float
    decay_score: float


class DecayUpdateResult(BaseModel):
    """Outcome of a bulk decay recomputation."""

    updated: int = 0
    archived: int = 0
    archived_ids: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    persisted: bool = True
    scores: dict[str, float] = Field(default_factory=dict)


class Chunk(BaseModel):
    """A retrievable text unit handed to the enhanced vector store."""

    id: str
    content: str
    embedding: list[float] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
