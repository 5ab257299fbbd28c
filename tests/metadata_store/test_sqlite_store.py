"""
Tests for the SQLite metadata store.

Tests cover:
1. Partial upsert semantics
2. Access recording
3. Decay and archival updates
4. Relationships
5. Categories and conversation markers
6. Delete cascade and statistics
"""

import asyncio
from datetime import timedelta

import pytest

from mnemorecall.models import (
    Category,
    ChunkMetadataPatch,
    ChunkType,
    Relationship,
    RelationshipType,
)
from mnemorecall.models.chunk import utcnow
from mnemorecall.utils.exceptions import ValidationError


def _rel(a, b, rel_type=RelationshipType.RELATES_TO, strength=0.5, **metadata):
    return Relationship(
        from_chunk_id=a,
        to_chunk_id=b,
        relationship_type=rel_type,
        strength=strength,
        metadata=metadata,
    )


@pytest.mark.unit
@pytest.mark.asyncio
class TestChunkMetadata:
    """Chunk metadata upsert, read and update."""

    async def test_insert_applies_defaults(self, metadata_store):
        await metadata_store.upsert_chunk_metadata(ChunkMetadataPatch(chunk_id="c1"))

        metadata = await metadata_store.get_chunk_metadata("c1")

        assert metadata.source == "unknown"
        assert metadata.chunk_type == ChunkType.DOCUMENTATION
        assert metadata.importance == 0.5
        assert metadata.decay_score == 1.0
        assert metadata.is_archived is False

    async def test_partial_update_keeps_unset_fields(self, metadata_store):
        await metadata_store.upsert_chunk_metadata(
            ChunkMetadataPatch(
                chunk_id="c1", source="slack", chunk_type=ChunkType.SOLUTION, importance=0.9
            )
        )
        await metadata_store.upsert_chunk_metadata(
            ChunkMetadataPatch(chunk_id="c1", decay_score=0.4)
        )

        metadata = await metadata_store.get_chunk_metadata("c1")

        assert metadata.source == "slack"
        assert metadata.chunk_type == ChunkType.SOLUTION
        assert metadata.importance == 0.9
        assert metadata.decay_score == 0.4

    async def test_missing_chunk(self, metadata_store):
        assert await metadata_store.get_chunk_metadata("nope") is None

    async def test_empty_id_rejected(self, metadata_store):
        with pytest.raises(ValidationError):
            await metadata_store.upsert_chunk_metadata(ChunkMetadataPatch(chunk_id=" "))

    async def test_list_filters(self, add_chunk, metadata_store):
        await add_chunk("a", chunk_type=ChunkType.CODE, decay_score=0.9)
        await add_chunk("b", chunk_type=ChunkType.SOLUTION, decay_score=0.5)
        await add_chunk("c", chunk_type=ChunkType.CODE, decay_score=0.1)
        await metadata_store.archive_chunk("c")

        active = await metadata_store.get_all_chunk_metadata()
        everything = await metadata_store.get_all_chunk_metadata(include_archived=True)
        fresh_code = await metadata_store.get_all_chunk_metadata(
            min_decay_score=0.6, chunk_types=[ChunkType.CODE]
        )

        assert [m.chunk_id for m in active] == ["a", "b"]
        assert len(everything) == 3
        assert [m.chunk_id for m in fresh_code] == ["a"]

    async def test_importance_bounds(self, add_chunk, metadata_store):
        await add_chunk("c1")

        assert await metadata_store.update_importance("c1", 0.8) is True
        assert await metadata_store.update_importance("missing", 0.8) is False
        with pytest.raises(ValidationError):
            await metadata_store.update_importance("c1", 1.2)

    async def test_corrupt_row_is_skipped(self, add_chunk, metadata_store):
        await add_chunk("good")
        await add_chunk("bad")
        await metadata_store.connection.execute(
            "UPDATE chunks_metadata SET chunk_type = 'weird{type}' WHERE chunk_id = 'bad'"
        )
        await metadata_store.connection.commit()

        records = await metadata_store.get_all_chunk_metadata()

        assert [m.chunk_id for m in records] == ["good"]
        assert await metadata_store.get_chunk_metadata("bad") is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestAccessRecording:
    """Access bumps count, sets the timestamp and writes the log."""

    async def test_record_access(self, add_chunk, metadata_store):
        await add_chunk("c1")

        assert await metadata_store.record_access("c1", query="auth", result_rank=1)

        metadata = await metadata_store.get_chunk_metadata("c1")
        assert metadata.access_count == 1
        assert metadata.last_accessed_at is not None

        stats = await metadata_store.get_access_stats()
        assert stats[0].chunk_id == "c1"
        assert stats[0].count == 1

    async def test_concurrent_accesses_are_not_lost(self, add_chunk, metadata_store):
        await add_chunk("c1")

        await asyncio.gather(*(metadata_store.record_access("c1") for _ in range(20)))

        metadata = await metadata_store.get_chunk_metadata("c1")
        assert metadata.access_count == 20

    async def test_unknown_chunk(self, metadata_store):
        assert await metadata_store.record_access("ghost") is False

    async def test_access_stats_since(self, add_chunk, metadata_store):
        await add_chunk("c1")
        await metadata_store.record_access("c1")

        assert await metadata_store.get_access_stats(since=utcnow() + timedelta(days=1)) == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestDecayAndArchival:
    """Decay persistence and reversible archival."""

    async def test_bulk_update(self, add_chunk, metadata_store):
        await add_chunk("a")
        await add_chunk("b")

        updated = await metadata_store.bulk_update_decay_scores({"a": 0.3, "b": 0.7})

        assert updated == 2
        assert (await metadata_store.get_chunk_metadata("a")).decay_score == 0.3

    async def test_bulk_update_validates(self, add_chunk, metadata_store):
        await add_chunk("a")

        with pytest.raises(ValidationError):
            await metadata_store.bulk_update_decay_scores({"a": 1.5})

    async def test_archive_stale_is_idempotent(self, add_chunk, metadata_store):
        await add_chunk("stale", decay_score=0.1)
        await add_chunk("fresh", decay_score=0.9)

        first = await metadata_store.archive_stale_chunks(0.2)
        second = await metadata_store.archive_stale_chunks(0.2)

        assert first == ["stale"]
        assert second == []
        assert (await metadata_store.get_chunk_metadata("stale")).is_archived

    async def test_unarchive(self, add_chunk, metadata_store):
        await add_chunk("c1")

        assert await metadata_store.archive_chunk("c1") is True
        assert await metadata_store.archive_chunk("c1") is False
        assert await metadata_store.unarchive_chunk("c1") is True
        assert not (await metadata_store.get_chunk_metadata("c1")).is_archived

    async def test_promote_importance_is_capped(self, add_chunk, metadata_store):
        await add_chunk("warm", importance=0.5)
        await add_chunk("hot", importance=0.98)

        assert await metadata_store.promote_importance("warm", 0.05) is True
        assert await metadata_store.promote_importance("hot", 0.05) is True
        assert await metadata_store.promote_importance("missing", 0.05) is False

        assert (await metadata_store.get_chunk_metadata("warm")).importance == pytest.approx(0.55)
        assert (await metadata_store.get_chunk_metadata("hot")).importance == 1.0

    async def test_archive_unused_chunks(self, add_chunk, metadata_store):
        await add_chunk("old_unused", age_days=200)
        await add_chunk("old_used", age_days=200, access_count=3)
        await add_chunk("recent", age_days=10)
        await add_chunk("old_archived", age_days=300)
        await metadata_store.archive_chunk("old_archived")
        cutoff = utcnow() - timedelta(days=180)

        first = await metadata_store.archive_unused_chunks(cutoff)
        second = await metadata_store.archive_unused_chunks(cutoff)

        assert first == ["old_unused"]
        assert second == []
        assert (await metadata_store.get_chunk_metadata("old_unused")).is_archived
        assert not (await metadata_store.get_chunk_metadata("old_used")).is_archived


@pytest.mark.unit
@pytest.mark.asyncio
class TestRelationships:
    """Typed, weighted edges between chunks."""

    async def test_add_and_read(self, metadata_store):
        created = await metadata_store.add_relationship(
            _rel("a", "b", RelationshipType.SOLVES, 0.8, source="review")
        )

        outgoing = await metadata_store.get_relationships("a", direction="from")
        incoming = await metadata_store.get_relationships("b", direction="to")

        assert created is True
        assert outgoing[0].relationship_type == RelationshipType.SOLVES
        assert outgoing[0].strength == 0.8
        assert outgoing[0].metadata == {"source": "review"}
        assert incoming[0].from_chunk_id == "a"

    async def test_duplicate_updates_strength(self, metadata_store):
        await metadata_store.add_relationship(_rel("a", "b", strength=0.3))
        created = await metadata_store.add_relationship(_rel("a", "b", strength=0.9))

        relationships = await metadata_store.get_relationships("a")

        assert created is False
        assert len(relationships) == 1
        assert relationships[0].strength == 0.9

    async def test_self_loop_rejected(self, metadata_store):
        with pytest.raises(ValidationError):
            await metadata_store.add_relationship(_rel("a", "a"))

    async def test_invalid_direction(self, metadata_store):
        with pytest.raises(ValidationError):
            await metadata_store.get_relationships("a", direction="sideways")

    async def test_related_ids_and_contradictions(self, metadata_store):
        await metadata_store.add_relationship(_rel("a", "b"))
        await metadata_store.add_relationship(_rel("c", "a", RelationshipType.CONTRADICTS, 0.7))

        assert await metadata_store.get_related_chunk_ids("a") == ["b", "c"]
        contradictions = await metadata_store.find_contradictions("a")
        assert [r.from_chunk_id for r in contradictions] == ["c"]

    async def test_delete_relationship(self, metadata_store):
        await metadata_store.add_relationship(_rel("a", "b"))
        await metadata_store.add_relationship(_rel("a", "b", RelationshipType.EXTENDS))

        removed = await metadata_store.delete_relationship(
            "a", "b", RelationshipType.EXTENDS
        )

        assert removed == 1
        assert await metadata_store.count_relationships() == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestCategoriesAndConversations:
    """Categories, assignments and processed-conversation markers."""

    async def test_assignment_maintains_count(self, add_chunk, metadata_store):
        await metadata_store.upsert_category(Category(id="cat:work", name="work"))
        await add_chunk("c1")
        await add_chunk("c2")

        await metadata_store.assign_chunk_to_category("c1", "cat:work", 0.9)
        await metadata_store.assign_chunk_to_category("c2", "cat:work", 0.6)
        await metadata_store.assign_chunk_to_category("c1", "cat:work", 0.7)

        category = await metadata_store.get_category_by_name("work")
        items = await metadata_store.get_category_chunks("cat:work")

        assert category.chunk_count == 2
        assert [i.chunk_id for i in items] == ["c1", "c2"]
        assert items[0].relevance_score == 0.7

    async def test_summary_update_and_clear(self, metadata_store):
        await metadata_store.upsert_category(Category(id="cat:work", name="work"))

        assert await metadata_store.update_category_summary("cat:work", "## work")
        assert (await metadata_store.get_category("cat:work")).summary == "## work"

        await metadata_store.update_category_summary("cat:work", None)
        assert (await metadata_store.get_category("cat:work")).summary is None

    async def test_redefining_category_keeps_summary(self, metadata_store):
        await metadata_store.upsert_category(Category(id="cat:work", name="work"))
        await metadata_store.update_category_summary("cat:work", "## work")

        await metadata_store.upsert_category(
            Category(id="cat:work", name="work", description="Day job")
        )

        category = await metadata_store.get_category("cat:work")
        assert category.summary == "## work"
        assert category.description == "Day job"

    async def test_conversation_marker(self, metadata_store):
        assert not await metadata_store.is_conversation_processed("conv-1")

        await metadata_store.mark_conversation_processed("conv-1", 12, 3)
        await metadata_store.mark_conversation_processed("conv-1", 14, 4)

        marker = await metadata_store.get_processed_conversation("conv-1")
        assert await metadata_store.is_conversation_processed("conv-1")
        assert marker.id == "conv:conv-1"
        assert marker.message_count == 14


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeleteAndStats:
    """Explicit delete cascades; stats aggregate active chunks."""

    async def test_delete_cascades(self, add_chunk, metadata_store):
        await metadata_store.upsert_category(Category(id="cat:work", name="work"))
        await add_chunk("a")
        await add_chunk("b")
        await metadata_store.add_relationship(_rel("a", "b"))
        await metadata_store.assign_chunk_to_category("a", "cat:work", 0.8)
        await metadata_store.record_access("a")

        await metadata_store.delete_chunk_metadata("a")

        assert await metadata_store.get_chunk_metadata("a") is None
        assert await metadata_store.get_relationships("b") == []
        assert (await metadata_store.get_category("cat:work")).chunk_count == 0
        assert await metadata_store.get_access_stats() == []

    async def test_memory_stats(self, add_chunk, metadata_store):
        await add_chunk("a", chunk_type=ChunkType.CODE, decay_score=0.8, importance=0.6)
        await add_chunk("b", chunk_type=ChunkType.CODE, decay_score=0.4, importance=0.4)
        await add_chunk("c", decay_score=0.1)
        await metadata_store.archive_chunk("c")
        await metadata_store.record_access("a")

        stats = await metadata_store.get_memory_stats()

        assert stats.total_chunks == 3
        assert stats.active_chunks == 2
        assert stats.archived_chunks == 1
        assert stats.avg_decay_score == pytest.approx(0.6)
        assert stats.avg_importance == pytest.approx(0.5)
        assert stats.total_accesses == 1
        assert stats.chunks_by_type == {"code": 2}

    async def test_empty_stats(self, metadata_store):
        stats = await metadata_store.get_memory_stats()

        assert stats.total_chunks == 0
        assert stats.avg_decay_score == 0.0
