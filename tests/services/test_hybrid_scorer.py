"""
Tests for HybridScorer.
"""

from datetime import timedelta

import pytest

from mnemorecall.config import ScoringConfig, ScoringWeights
from mnemorecall.models import ChunkType, RelationshipType
from mnemorecall.models.chunk import utcnow
from mnemorecall.services.hybrid_scorer import HybridScorer
from mnemorecall.services.relationship_graph import RelationshipGraph
from mnemorecall.utils.exceptions import ValidationError


def _similarity_only() -> ScoringConfig:
    return ScoringConfig(
        weights=ScoringWeights(
            similarity=1.0, decay=0, importance=0, recency=0, graph_boost=0, type_boost=0
        )
    )


@pytest.mark.unit
class TestWeights:
    """Weight validation."""

    def test_defaults_accepted(self):
        assert HybridScorer().config.weights.total() == pytest.approx(1.0)

    def test_within_tolerance(self):
        weights = ScoringWeights(similarity=0.38)  # total 1.03
        HybridScorer(config=ScoringConfig(weights=weights))

    def test_outside_tolerance(self):
        weights = ScoringWeights(similarity=0.5)  # total 1.15
        with pytest.raises(ValidationError, match="must sum to 1.0"):
            HybridScorer(config=ScoringConfig(weights=weights))


@pytest.mark.unit
class TestSignals:
    """Individual signals."""

    def test_recency(self):
        scorer = HybridScorer()
        now = utcnow()

        assert scorer.recency_factor(None, now) == 0.0
        assert scorer.recency_factor(now, now) == pytest.approx(1.0)
        assert scorer.recency_factor(now - timedelta(days=7), now) == pytest.approx(0.5)

    def test_type_boost_normalised(self):
        scorer = HybridScorer()

        assert scorer.type_boost(ChunkType.CATEGORY_SUMMARY) == pytest.approx(1.0)
        assert scorer.type_boost(ChunkType.DOCUMENTATION) == pytest.approx(1.0 / 1.3)

    def test_preferred_type_capped(self):
        scorer = HybridScorer()

        preferred = scorer.type_boost(ChunkType.SOLUTION, [ChunkType.SOLUTION])
        top = scorer.type_boost(ChunkType.CATEGORY_SUMMARY, [ChunkType.CATEGORY_SUMMARY])

        assert preferred == pytest.approx(1.2 / 1.3 * 1.1)
        assert top == 1.0


@pytest.mark.unit
@pytest.mark.asyncio
class TestScoring:
    """Ranking behaviour."""

    async def test_all_signals_maxed_scores_one(self, metadata_store, make_chunk):
        graph = RelationshipGraph(metadata_store)
        await graph.add_relationship("seed", "c1", RelationshipType.RELATES_TO, 1.0)
        scorer = HybridScorer(graph=graph)
        now = utcnow()
        chunk = make_chunk(
            "c1",
            chunk_type=ChunkType.CATEGORY_SUMMARY,
            similarity=1.0,
            decay_score=1.0,
            importance=1.0,
            last_accessed_at=now,
        )

        [result] = await scorer.score([chunk], seed_chunk_ids=["seed"], now=now)

        assert result.final_score == pytest.approx(1.0)
        assert result.components.graph_boost == pytest.approx(1.0)

    async def test_ties_broken_by_id(self, make_chunk):
        scorer = HybridScorer()
        chunks = [make_chunk(cid, similarity=0.5) for cid in ("c", "a", "b")]

        results = await scorer.score(chunks)

        assert [r.id for r in results] == ["a", "b", "c"]

    async def test_similarity_dominates(self, make_chunk):
        scorer = HybridScorer(config=_similarity_only())

        results = await scorer.score(
            [make_chunk("low", similarity=0.2), make_chunk("high", similarity=0.9)]
        )

        assert [r.id for r in results] == ["high", "low"]
        assert results[0].final_score == pytest.approx(0.9)

    async def test_graph_boost_lifts_neighbour(self, metadata_store, make_chunk):
        graph = RelationshipGraph(metadata_store)
        await graph.add_relationship("seed", "b", RelationshipType.SOLVES, 0.9)
        scorer = HybridScorer(graph=graph)

        results = await scorer.score(
            [make_chunk("a", similarity=0.5), make_chunk("b", similarity=0.5)],
            seed_chunk_ids=["seed"],
        )

        assert results[0].id == "b"
        assert results[0].components.graph_boost == pytest.approx(0.9)

    async def test_graph_boost_ignores_weak_edges(self, metadata_store):
        graph = RelationshipGraph(metadata_store)
        await graph.add_relationship("seed", "b", RelationshipType.SOLVES, 0.2)

        boosts = await HybridScorer(graph=graph).graph_boosts(["seed"])

        assert boosts == {}

    async def test_explain_score(self, make_chunk):
        scorer = HybridScorer()
        explanation = scorer.explain_score(scorer.score_one(make_chunk("c1", similarity=0.8)))

        assert explanation.startswith("Score Breakdown for c1:")
        assert "Final Score:" in explanation


@pytest.mark.unit
@pytest.mark.asyncio
class TestTieredRetrieval:
    """Summaries first, detail when needed."""

    async def test_overview_served_by_summaries(self, make_chunk):
        scorer = HybridScorer()
        summary = make_chunk(
            "s1", "## work\n" + "Team rituals and planning notes. " * 10,
            chunk_type=ChunkType.CATEGORY_SUMMARY,
        )
        detail = make_chunk("d1", "standup at 10")

        result = await scorer.tiered_retrieval("Give me an overview of work", [summary, detail])

        assert result.summaries_sufficient is True
        assert result.chunks == []

    async def test_specific_query_needs_detail(self, make_chunk):
        scorer = HybridScorer()
        summary = make_chunk("s1", "x" * 600, chunk_type=ChunkType.CATEGORY_SUMMARY)
        detail = make_chunk("d1", "stack trace")

        result = await scorer.tiered_retrieval("How do I fix this error?", [summary, detail])

        assert result.summaries_sufficient is False
        assert result.reason == "Query requires specific details"
        assert [r.id for r in result.chunks] == ["d1"]

    async def test_no_summaries(self, make_chunk):
        result = await HybridScorer().tiered_retrieval("anything", [make_chunk("d1")])

        assert result.summaries_sufficient is False
        assert result.reason == "No relevant category summaries found"
