"""
Base interface for the durable chunk-metadata store.

Holds per-chunk temporal/access state, the relationship table, categories,
the access log and processed-conversation markers.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from mnemorecall.models.categories import Category, CategoryItem
from mnemorecall.models.chunk import (
    AccessStat,
    ChunkMetadata,
    ChunkMetadataPatch,
    ChunkType,
    MemoryStats,
    ProcessedConversation,
)
from mnemorecall.models.relationships import Direction, Relationship, RelationshipType


class MetadataStore(ABC):
    """Abstract base class for metadata storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (create tables and indexes)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
        pass

    # ═══════════════════════════════════════════════════════════
    # CHUNK METADATA
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_chunk_metadata(self, patch: ChunkMetadataPatch) -> None:
        """
        Insert or partially update a chunk's metadata.

        Only fields set on the patch overwrite stored values. Defaults are
        applied on first insert only.

        Args:
            patch: Partial metadata keyed by chunk_id
        """
        pass

    @abstractmethod
    async def get_chunk_metadata(self, chunk_id: str) -> ChunkMetadata | None:
        """
        Retrieve metadata for one chunk.

        Returns:
            ChunkMetadata, or None if missing or unreadable
        """
        pass

    @abstractmethod
    async def get_all_chunk_metadata(
        self,
        include_archived: bool = False,
        min_decay_score: float | None = None,
        chunk_types: list[ChunkType] | None = None,
    ) -> list[ChunkMetadata]:
        """
        List chunk metadata matching all given filters.

        Args:
            include_archived: Include archived chunks (excluded by default)
            min_decay_score: Lower bound on decay score
            chunk_types: Restrict to these chunk types

        Returns:
            Records ordered by decay score, highest first
        """
        pass

    @abstractmethod
    async def record_access(
        self, chunk_id: str, query: str | None = None, result_rank: int | None = None
    ) -> bool:
        """
        Atomically bump the access count and append an access-log row.

        Returns:
            True if the chunk exists
        """
        pass

    @abstractmethod
    async def update_decay_score(self, chunk_id: str, decay_score: float) -> None:
        pass

    @abstractmethod
    async def bulk_update_decay_scores(self, scores: dict[str, float]) -> int:
        """
        Update many decay scores in one transaction.

        Returns:
            Number of rows updated
        """
        pass

    @abstractmethod
    async def update_importance(self, chunk_id: str, importance: float) -> bool:
        pass

    @abstractmethod
    async def promote_importance(self, chunk_id: str, boost: float) -> bool:
        """Raise a chunk's importance by boost, capped at 1.0."""
        pass

    @abstractmethod
    async def archive_chunk(self, chunk_id: str) -> bool:
        pass

    @abstractmethod
    async def unarchive_chunk(self, chunk_id: str) -> bool:
        pass

    @abstractmethod
    async def archive_stale_chunks(self, threshold: float) -> list[str]:
        """
        Archive every active chunk whose decay score is below threshold.

        Returns:
            IDs archived by this call (already archived chunks are excluded)
        """
        pass

    @abstractmethod
    async def archive_unused_chunks(self, created_before: datetime) -> list[str]:
        """
        Archive every active chunk created before the cutoff that was never accessed.

        Returns:
            IDs archived by this call
        """
        pass

    @abstractmethod
    async def delete_chunk_metadata(self, chunk_id: str) -> None:
        """Delete a chunk and its access log, category items and relationships."""
        pass

    # ═══════════════════════════════════════════════════════════
    # RELATIONSHIPS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def add_relationship(self, relationship: Relationship) -> bool:
        """
        Insert a relationship, or update strength and metadata if it exists.

        Returns:
            True if a new row was created
        """
        pass

    @abstractmethod
    async def get_relationships(
        self, chunk_id: str, direction: Direction = "both"
    ) -> list[Relationship]:
        """
        Get relationships touching a chunk.

        Args:
            chunk_id: Chunk identifier
            direction: "from" (outgoing), "to" (incoming) or "both"
        """
        pass

    @abstractmethod
    async def get_related_chunk_ids(
        self, chunk_id: str, relationship_type: RelationshipType | None = None
    ) -> list[str]:
        pass

    @abstractmethod
    async def find_contradictions(self, chunk_id: str) -> list[Relationship]:
        pass

    @abstractmethod
    async def delete_relationship(
        self,
        from_chunk_id: str,
        to_chunk_id: str,
        relationship_type: RelationshipType | None = None,
    ) -> int:
        pass

    @abstractmethod
    async def get_all_relationships(self) -> list[Relationship]:
        pass

    @abstractmethod
    async def count_relationships(self) -> int:
        pass

    # ═══════════════════════════════════════════════════════════
    # CATEGORIES
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_category(self, category: Category) -> None:
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Category | None:
        pass

    @abstractmethod
    async def get_category_by_name(self, name: str) -> Category | None:
        pass

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass

    @abstractmethod
    async def update_category_summary(self, category_id: str, summary: str | None) -> bool:
        pass

    @abstractmethod
    async def assign_chunk_to_category(
        self, chunk_id: str, category_id: str, relevance_score: float
    ) -> None:
        """Assign a chunk to a category and recount the category's chunks."""
        pass

    @abstractmethod
    async def get_chunk_categories(self, chunk_id: str) -> list[CategoryItem]:
        pass

    @abstractmethod
    async def get_category_chunks(self, category_id: str) -> list[CategoryItem]:
        pass

    # ═══════════════════════════════════════════════════════════
    # PROCESSED CONVERSATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def mark_conversation_processed(
        self,
        conversation_id: str,
        message_count: int,
        chunks_created: int,
        knowledge_extracted: int = 0,
    ) -> None:
        pass

    @abstractmethod
    async def is_conversation_processed(self, conversation_id: str) -> bool:
        pass

    @abstractmethod
    async def get_processed_conversation(
        self, conversation_id: str
    ) -> ProcessedConversation | None:
        pass

    # ═══════════════════════════════════════════════════════════
    # REPORTING
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_memory_stats(self) -> MemoryStats:
        pass

    @abstractmethod
    async def get_access_stats(self, since: datetime | None = None) -> list[AccessStat]:
        """
        Count accesses per chunk.

        Args:
            since: Only count accesses at or after this time

        Returns:
            Up to 100 entries, most accessed first
        """
        pass

    @abstractmethod
    async def vacuum(self) -> None:
        """Compact storage after bulk archival or deletion."""
        pass
