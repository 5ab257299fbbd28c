"""
Hybrid scoring - combines retrieval signals into one deterministic ranking.

final = w_sim * similarity + w_decay * decay + w_imp * importance
      + w_rec * recency + w_graph * graph_boost + w_type * type_boost

Every signal lies in [0, 1], so with weights summing to 1 the final score
does too. Ties are broken by chunk id.
"""

import re
from datetime import datetime, timedelta

from mnemorecall.config import ScoringConfig
from mnemorecall.models.chunk import ChunkType, utcnow
from mnemorecall.models.retrieval import (
    EnhancedChunk,
    ScoreComponents,
    ScoredResult,
    TieredRetrievalResult,
)
from mnemorecall.services.decay_calculator import days_between
from mnemorecall.services.relationship_graph import RelationshipGraph
from mnemorecall.utils.exceptions import ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

WEIGHT_TOLERANCE = 0.05

# Queries that need concrete details rather than an overview
_SPECIFIC_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bhow\s+(do|to|can|should)\b",
        r"\bwhat\s+(is|are|was|were)\s+the\s+(exact|specific)\b",
        r"\berror\b",
        r"\bfix\b",
        r"\bbug\b",
        r"\bcode\s+(for|to|that)\b",
        r"\bexample\b",
        r"\bspecific\b",
        r"\bexact\b",
        r"\bwhere\s+(is|are|do)\b",
    )
]

_OVERVIEW_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bwhat\s+(is|are)\s+",
        r"\boverview\b",
        r"\bsummary\b",
        r"\bexplain\b",
        r"\bdescribe\b",
        r"\bgeneral\b",
        r"\babout\b",
    )
]


class HybridScorer:
    """
    Ranks candidate chunks by similarity, decay, importance, recency,
    graph proximity to seed chunks, and chunk type.
    """

    def __init__(
        self,
        graph: RelationshipGraph | None = None,
        config: ScoringConfig | None = None,
    ):
        """
        Args:
            graph: Relationship graph for graph boosts (no graph boost without one)
            config: Scoring configuration

        Raises:
            ValidationError: If the weights do not sum to 1.0 +/- 0.05
        """
        self.graph = graph
        self.config = config or ScoringConfig()

        total = self.config.weights.total()
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValidationError(
                f"Scoring weights must sum to 1.0 (+/- {WEIGHT_TOLERANCE}), got {total:.3f}",
                {"weights": self.config.weights.model_dump()},
            )

        self._max_type_multiplier = max(self.config.type_boosts.values(), default=1.0) or 1.0

    # ═══════════════════════════════════════════════════════════
    # SIGNALS
    # ═══════════════════════════════════════════════════════════

    def recency_factor(self, last_accessed_at: datetime | None, now: datetime) -> float:
        """1 / (1 + days_since_access / half_life); 0 if never accessed."""
        if last_accessed_at is None:
            return 0.0
        days = max(days_between(last_accessed_at, now), 0.0)
        return 1.0 / (1.0 + days / self.config.recency_half_life_days)

    def type_boost(
        self, chunk_type: ChunkType | str | None, preferred_types: list[ChunkType] | None = None
    ) -> float:
        """Configured multiplier normalised by the largest one, x1.1 for preferred types."""
        key = ChunkType(chunk_type).value if chunk_type else None
        multiplier = self.config.type_boosts.get(key, 1.0) if key else 1.0
        boost = multiplier / self._max_type_multiplier

        if key and preferred_types and key in {ChunkType(t).value for t in preferred_types}:
            boost *= self.config.preferred_type_multiplier

        return min(max(boost, 0.0), 1.0)

    async def graph_boosts(self, seed_chunk_ids: list[str] | None) -> dict[str, float]:
        """Strongest path strength from any seed to each reachable chunk."""
        boosts: dict[str, float] = {}
        if not seed_chunk_ids or self.graph is None:
            return boosts

        for seed in dict.fromkeys(seed_chunk_ids):
            reached = await self.graph.strongest_paths(
                seed,
                max_depth=self.config.graph_traversal_depth,
                min_strength=self.config.graph_min_strength,
            )
            for chunk_id, node in reached.items():
                boosts[chunk_id] = max(boosts.get(chunk_id, 0.0), node.combined_strength)

        return boosts

    def final_score(self, components: ScoreComponents) -> float:
        w = self.config.weights
        return (
            components.similarity * w.similarity
            + components.decay * w.decay
            + components.importance * w.importance
            + components.recency * w.recency
            + components.graph_boost * w.graph_boost
            + components.type_boost * w.type_boost
        )

    def _components(
        self,
        chunk: EnhancedChunk,
        graph_boost: float,
        preferred_types: list[ChunkType] | None,
        now: datetime,
    ) -> ScoreComponents:
        return ScoreComponents(
            similarity=min(max(chunk.similarity, 0.0), 1.0),
            decay=chunk.decay_score,
            importance=chunk.importance,
            recency=self.recency_factor(chunk.last_accessed_at, now),
            graph_boost=graph_boost,
            type_boost=self.type_boost(chunk.chunk_type, preferred_types),
        )

    @staticmethod
    def _rank(results: list[ScoredResult]) -> list[ScoredResult]:
        return sorted(results, key=lambda r: (-r.final_score, r.chunk.id))

    # ═══════════════════════════════════════════════════════════
    # SCORING
    # ═══════════════════════════════════════════════════════════

    async def score(
        self,
        candidates: list[EnhancedChunk],
        seed_chunk_ids: list[str] | None = None,
        preferred_types: list[ChunkType] | None = None,
        now: datetime | None = None,
    ) -> list[ScoredResult]:
        """
        Score and rank candidates.

        Returns:
            ScoredResults ordered by final score descending, then chunk id ascending
        """
        now = now or utcnow()
        boosts = await self.graph_boosts(seed_chunk_ids)

        results = []
        for chunk in candidates:
            components = self._components(chunk, boosts.get(chunk.id, 0.0), preferred_types, now)
            results.append(
                ScoredResult(
                    chunk=chunk,
                    final_score=self.final_score(components),
                    components=components,
                )
            )

        logger.debug(
            f"Scored {len(results)} candidates ({len(boosts)} graph-boosted)",
            extra={"candidates": len(results), "seeds": len(seed_chunk_ids or [])},
        )
        return self._rank(results)

    def score_one(
        self,
        chunk: EnhancedChunk,
        preferred_types: list[ChunkType] | None = None,
        now: datetime | None = None,
    ) -> ScoredResult:
        """Score a single chunk without graph context."""
        components = self._components(chunk, 0.0, preferred_types, now or utcnow())
        return ScoredResult(
            chunk=chunk, final_score=self.final_score(components), components=components
        )

    async def rerank_with_context(
        self,
        results: list[ScoredResult],
        seed_chunk_ids: list[str] | None = None,
        preferred_types: list[ChunkType] | None = None,
        recent_window_hours: float = 24.0,
        now: datetime | None = None,
    ) -> list[ScoredResult]:
        """
        Re-rank already scored results with fresh graph and type context.

        Chunks accessed within recent_window_hours are added to the seeds.
        Other components are kept as scored.
        """
        now = now or utcnow()
        seeds = list(seed_chunk_ids or [])

        if self.graph is not None:
            recent = await self.graph.store.get_access_stats(
                since=now - timedelta(hours=recent_window_hours)
            )
            seeds.extend(stat.chunk_id for stat in recent)

        boosts = await self.graph_boosts(seeds)

        reranked = []
        for result in results:
            components = result.components.model_copy(
                update={
                    "graph_boost": boosts.get(result.chunk.id, result.components.graph_boost),
                    "type_boost": self.type_boost(result.chunk.chunk_type, preferred_types),
                }
            )
            reranked.append(
                ScoredResult(
                    chunk=result.chunk,
                    final_score=self.final_score(components),
                    components=components,
                )
            )

        return self._rank(reranked)

    def explain_score(self, result: ScoredResult) -> str:
        """Human-readable breakdown of a score."""
        c = result.components
        w = self.config.weights

        rows = [
            ("Similarity", c.similarity, w.similarity),
            ("Decay", c.decay, w.decay),
            ("Importance", c.importance, w.importance),
            ("Recency", c.recency, w.recency),
            ("Graph Boost", c.graph_boost, w.graph_boost),
            ("Type Boost", c.type_boost, w.type_boost),
        ]

        lines = [f"Score Breakdown for {result.chunk.id}:"]
        lines += [
            f"  {label}: {value:.3f} x {weight} = {value * weight:.3f}"
            for label, value, weight in rows
        ]
        lines += ["  " + "-" * 25, f"  Final Score: {result.final_score:.3f}"]
        return "\n".join(lines)

    # ═══════════════════════════════════════════════════════════
    # TIERED RETRIEVAL
    # ═══════════════════════════════════════════════════════════

    async def tiered_retrieval(
        self,
        query: str,
        candidates: list[EnhancedChunk],
        max_summaries: int = 3,
        max_items: int = 10,
        require_specific_items: bool = False,
        seed_chunk_ids: list[str] | None = None,
    ) -> TieredRetrievalResult:
        """
        Category summaries first; detail chunks only when the summaries fall short.
        """
        ranked = await self.score(candidates, seed_chunk_ids=seed_chunk_ids)

        summaries = [
            r for r in ranked if r.chunk.chunk_type == ChunkType.CATEGORY_SUMMARY
        ][:max_summaries]
        items = [r for r in ranked if r.chunk.chunk_type != ChunkType.CATEGORY_SUMMARY]

        sufficient, reason = self._check_sufficiency(query, summaries)

        if sufficient and not require_specific_items:
            return TieredRetrievalResult(
                summaries=summaries, summaries_sufficient=True, reason=reason
            )

        return TieredRetrievalResult(
            summaries=summaries,
            chunks=items[:max_items],
            summaries_sufficient=False,
            reason=reason,
        )

    def _check_sufficiency(self, query: str, summaries: list[ScoredResult]) -> tuple[bool, str]:
        if not summaries:
            return False, "No relevant category summaries found"

        if any(p.search(query) for p in _SPECIFIC_PATTERNS):
            return False, "Query requires specific details"

        if any(p.search(query) for p in _OVERVIEW_PATTERNS) and any(
            len(s.chunk.content) > 100 for s in summaries
        ):
            return True, "Overview query matches category summaries"

        if sum(len(s.chunk.content) for s in summaries) > 500:
            return True, "Substantial category summaries available"

        return False, "More detail may be needed"
