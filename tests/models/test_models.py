"""
Tests for data models.
"""

import pytest
from pydantic import TypeAdapter, ValidationError

from mnemorecall.models import (
    AnswerAction,
    ChunkMetadata,
    ChunkMetadataPatch,
    ChunkType,
    EnhancedChunk,
    ParsedAction,
    Relationship,
    RelationshipType,
    SearchAction,
    TerminationReason,
)
from mnemorecall.models.relationships import (
    get_relationships_by_category,
    get_reverse_type,
    is_bidirectional,
)


@pytest.mark.unit
class TestChunkMetadata:
    """Tests for chunk metadata models."""

    def test_defaults(self):
        metadata = ChunkMetadata(chunk_id="c1")

        assert metadata.source == "unknown"
        assert metadata.chunk_type == ChunkType.DOCUMENTATION
        assert metadata.importance == 0.5
        assert metadata.decay_score == 1.0
        assert metadata.access_count == 0
        assert metadata.is_archived is False
        assert metadata.created_at.tzinfo is not None

    def test_scores_are_bounded(self):
        with pytest.raises(ValidationError):
            ChunkMetadata(chunk_id="c1", importance=1.5)
        with pytest.raises(ValidationError):
            ChunkMetadata(chunk_id="c1", decay_score=-0.1)

    def test_patch_tracks_explicit_fields(self):
        patch = ChunkMetadataPatch(chunk_id="c1", importance=0.9)

        assert patch.model_dump(exclude_unset=True) == {"chunk_id": "c1", "importance": 0.9}

    def test_chunk_type_values(self):
        assert ChunkType("solution") == ChunkType.SOLUTION
        assert ChunkType.CATEGORY_SUMMARY.value == "category_summary"


@pytest.mark.unit
class TestRelationshipModels:
    """Tests for relationship models and type helpers."""

    def test_relationship_strength_bounds(self):
        with pytest.raises(ValidationError):
            Relationship(
                from_chunk_id="a",
                to_chunk_id="b",
                relationship_type=RelationshipType.RELATES_TO,
                strength=2.0,
            )

    def test_other_end(self):
        rel = Relationship(
            from_chunk_id="a", to_chunk_id="b", relationship_type=RelationshipType.LEADS_TO
        )

        assert rel.other_end("a") == "b"
        assert rel.other_end("b") == "a"

    def test_bidirectional_types(self):
        assert is_bidirectional(RelationshipType.SIMILAR_TO)
        assert is_bidirectional(RelationshipType.CONTRADICTS)
        assert not is_bidirectional(RelationshipType.SUPERSEDES)

    def test_reverse_types(self):
        assert get_reverse_type(RelationshipType.LEADS_TO) == RelationshipType.DERIVES_FROM
        assert get_reverse_type(RelationshipType.IMPLEMENTS) == RelationshipType.EXEMPLIFIES
        assert get_reverse_type(RelationshipType.RELATES_TO) == RelationshipType.RELATES_TO

    def test_relationships_by_category(self):
        assert RelationshipType.SUPERSEDES in get_relationships_by_category("temporal")
        assert get_relationships_by_category("unknown") == []


@pytest.mark.unit
class TestRetrievalModels:
    """Tests for retrieval models and actions."""

    def test_enhanced_chunk_defaults(self):
        chunk = EnhancedChunk(id="c1", content="text")

        assert chunk.decay_score == 1.0
        assert chunk.importance == 0.5
        assert chunk.final_score == 0.0

    def test_termination_reason_messages(self):
        assert TerminationReason.MAX_ITERATIONS.value == "Max iterations reached"
        assert TerminationReason.BUDGET_EXCEEDED.value == "Budget exceeded"

    def test_action_discriminator(self):
        adapter = TypeAdapter(ParsedAction)

        answer = adapter.validate_python({"type": "answer", "value": "42"})
        search = adapter.validate_python({"type": "search", "query": "auth", "topK": 5})

        assert isinstance(answer, AnswerAction)
        assert isinstance(search, SearchAction)
        assert search.top_k == 5

    def test_action_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            TypeAdapter(ParsedAction).validate_python({"type": "dance"})
