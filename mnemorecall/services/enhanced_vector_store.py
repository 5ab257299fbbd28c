"""
Enhanced Vector Store - vector search with temporal memory.

Wraps a VectorStore and a MetadataStore:
1. Keeps temporal metadata (creation time, access pattern) for every chunk
2. Re-ranks candidates by similarity, decay and importance
3. Records every returned chunk as an access for future decay
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from mnemorecall.config import VectorSearchConfig
from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.core.vector_store.base import VectorStore
from mnemorecall.models.chunk import (
    Chunk,
    ChunkMetadata,
    ChunkMetadataPatch,
    ChunkType,
    DecayUpdateResult,
    MemoryStats,
)
from mnemorecall.models.retrieval import EnhancedChunk, VectorDocument, VectorSearchHit
from mnemorecall.services.decay_calculator import DecayCalculator
from mnemorecall.utils.exceptions import ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


def _metadata_patch(chunk: Chunk) -> ChunkMetadataPatch:
    """Initial metadata of a new chunk. Raises ValidationError for out-of-range values."""
    importance = chunk.metadata.get("importance")
    if importance is not None and (
        isinstance(importance, bool)
        or not isinstance(importance, (int, float))
        or not 0.0 <= importance <= 1.0
    ):
        raise ValidationError(
            "Importance must be a number between 0.0 and 1.0",
            {"chunk_id": chunk.id, "importance": importance},
        )

    try:
        return ChunkMetadataPatch(
            chunk_id=chunk.id,
            source=chunk.metadata.get("source") or "unknown",
            chunk_type=_chunk_type_of(chunk.metadata),
            importance=0.5 if importance is None else importance,
            decay_score=1.0,
        )
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid metadata for chunk {chunk.id}", {"chunk_id": chunk.id, "error": str(e)}
        ) from e


def _chunk_type_of(metadata: dict[str, Any]) -> ChunkType:
    raw = metadata.get("chunk_type") or metadata.get("chunkType")
    try:
        return ChunkType(raw) if raw else ChunkType.DOCUMENTATION
    except ValueError:
        logger.warning(f"Unknown chunk type '{raw}', using documentation")
        return ChunkType.DOCUMENTATION


class EnhancedVectorStore:
    """
    Vector store with decay-aware hybrid ranking.

    final = similarity_weight * similarity + decay_weight * decay
          + importance_weight * importance
    """

    def __init__(
        self,
        vector_store: VectorStore,
        metadata_store: MetadataStore,
        decay_calculator: DecayCalculator | None = None,
        embedder: Embedder | None = None,
        config: VectorSearchConfig | None = None,
    ):
        """
        Args:
            vector_store: Similarity search backend
            metadata_store: Durable chunk metadata
            decay_calculator: Decay model used by update_decay_scores
            embedder: Embeds chunks added without an embedding
            config: Over-fetch factors and ranking weights
        """
        self.vector_store = vector_store
        self.metadata_store = metadata_store
        self.decay_calculator = decay_calculator or DecayCalculator()
        self.embedder = embedder
        self.config = config or VectorSearchConfig()

    # ═══════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════

    async def add(self, chunks: list[Chunk]) -> None:
        """
        Store chunks in the vector store and create their metadata.

        Chunk type and importance come from the chunk metadata when present
        (default documentation / 0.5); decay starts at 1.0. Metadata is
        validated for every chunk before anything is written.

        Raises:
            ValidationError: If a chunk carries invalid metadata or needs an
                embedding and no embedder is configured
        """
        if not chunks:
            return

        patches = [_metadata_patch(c) for c in chunks]

        missing = [c for c in chunks if not c.embedding]
        if missing:
            if self.embedder is None:
                raise ValidationError(
                    "Chunks without embeddings need an embedder",
                    {"chunk_ids": [c.id for c in missing]},
                )
            embeddings = await self.embedder.batch_embed([c.content for c in missing])
            for chunk, embedding in zip(missing, embeddings):
                chunk.embedding = embedding

        await self.vector_store.add(
            [
                VectorDocument(
                    id=c.id, embedding=c.embedding, content=c.content, metadata=c.metadata
                )
                for c in chunks
            ]
        )

        for patch in patches:
            await self.metadata_store.upsert_chunk_metadata(patch)

        logger.debug(f"Added {len(chunks)} chunks", extra={"count": len(chunks)})

    async def delete(self, ids: list[str]) -> None:
        """Delete from the vector store, then cascade to the metadata."""
        await self.vector_store.delete(ids)
        for chunk_id in ids:
            await self.metadata_store.delete_chunk_metadata(chunk_id)

    async def update_importance(self, chunk_id: str, importance: float) -> bool:
        return await self.metadata_store.update_importance(chunk_id, importance)

    async def update_decay_scores(
        self, persist: bool = True, auto_archive: bool = False
    ) -> DecayUpdateResult:
        """Recompute decay for all active chunks. persist=False is a dry run."""
        return await self.decay_calculator.update_all_decay_scores(
            self.metadata_store, persist=persist, auto_archive=auto_archive
        )

    # ═══════════════════════════════════════════════════════════
    # SEARCH
    # ═══════════════════════════════════════════════════════════

    async def search(
        self,
        embedding: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
        query_text: str | None = None,
    ) -> list[EnhancedChunk]:
        """
        Hybrid-ranked search.

        Over-fetches top_k * search_multiplier candidates, re-ranks and
        records access for the returned chunks.
        """
        hits = await self.vector_store.search(
            embedding, top_k=top_k * self.config.search_multiplier, filters=filters
        )
        enriched = await self._enrich(hits)
        return await self._finish([c for c, _ in enriched], top_k, query_text)

    async def enhanced_search(
        self,
        embedding: list[float],
        top_k: int = 10,
        include_archived: bool = False,
        min_decay_score: float | None = None,
        chunk_types: list[ChunkType] | None = None,
        filters: dict[str, Any] | None = None,
        query_text: str | None = None,
    ) -> list[EnhancedChunk]:
        """
        Search with metadata pre-filters applied before ranking.

        Args:
            embedding: Query vector
            top_k: Maximum results
            include_archived: Keep archived chunks (excluded by default)
            min_decay_score: Drop chunks decayed below this score
            chunk_types: Keep only these chunk types
            filters: Vector store metadata filters
            query_text: Logged with each recorded access

        Returns:
            Chunks ordered by final score descending
        """
        hits = await self.vector_store.search(
            embedding, top_k=top_k * self.config.enhanced_search_multiplier, filters=filters
        )
        enriched = await self._enrich(hits)

        wanted_types = {ChunkType(t) for t in chunk_types} if chunk_types else None
        kept = []
        for chunk, metadata in enriched:
            if min_decay_score is not None and chunk.decay_score < min_decay_score:
                continue
            if wanted_types is not None and (
                metadata is None or metadata.chunk_type not in wanted_types
            ):
                continue
            if not include_archived and (metadata is None or metadata.is_archived):
                continue
            kept.append(chunk)

        return await self._finish(kept, top_k, query_text)

    async def _enrich(
        self, hits: list[VectorSearchHit]
    ) -> list[tuple[EnhancedChunk, ChunkMetadata | None]]:
        enriched = []
        for hit in hits:
            metadata = await self.metadata_store.get_chunk_metadata(hit.id)
            chunk = EnhancedChunk(
                id=hit.id,
                content=hit.content,
                metadata=hit.metadata,
                source=hit.metadata.get("source") or "unknown",
                similarity=hit.score,
                decay_score=metadata.decay_score if metadata else 1.0,
                importance=metadata.importance if metadata else 0.5,
                chunk_type=metadata.chunk_type if metadata else _chunk_type_of(hit.metadata),
                access_count=metadata.access_count if metadata else 0,
                last_accessed_at=metadata.last_accessed_at if metadata else None,
                created_at=metadata.created_at if metadata else None,
                is_archived=metadata.is_archived if metadata else False,
            )
            chunk.final_score = self._final_score(chunk)
            enriched.append((chunk, metadata))
        return enriched

    def _final_score(self, chunk: EnhancedChunk) -> float:
        return (
            chunk.similarity * self.config.similarity_weight
            + chunk.decay_score * self.config.decay_weight
            + chunk.importance * self.config.importance_weight
        )

    async def _finish(
        self, chunks: list[EnhancedChunk], top_k: int, query_text: str | None
    ) -> list[EnhancedChunk]:
        ranked = sorted(chunks, key=lambda c: (-c.final_score, c.id))[:top_k]
        for rank, chunk in enumerate(ranked, start=1):
            await self.metadata_store.record_access(chunk.id, query_text, rank)
        return ranked

    # ═══════════════════════════════════════════════════════════
    # STATS
    # ═══════════════════════════════════════════════════════════

    async def count(self) -> int:
        return await self.vector_store.count()

    async def get_memory_stats(self) -> MemoryStats:
        return await self.metadata_store.get_memory_stats()

    async def get_chunk_metadata(self, chunk_id: str) -> ChunkMetadata | None:
        return await self.metadata_store.get_chunk_metadata(chunk_id)

    async def close(self) -> None:
        await self.vector_store.close()
        await self.metadata_store.close()
