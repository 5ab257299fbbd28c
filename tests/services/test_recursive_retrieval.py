"""
Tests for RecursiveRetrievalController.

Tests cover:
1. Complexity assessment
2. Direct retrieval
3. The iterative action loop
4. Budget termination
"""

import pytest

from mnemorecall.config import EnvironmentConfig, RetrievalConfig, ScoringConfig, ScoringWeights
from mnemorecall.models import Chunk
from mnemorecall.models.retrieval import ComplexityLevel, RetrievalStrategy, TerminationReason
from mnemorecall.services.enhanced_vector_store import EnhancedVectorStore
from mnemorecall.services.hybrid_scorer import HybridScorer
from mnemorecall.services.recursive_retrieval import RecursiveRetrievalController, assess_complexity
from mnemorecall.utils.exceptions import LLMError

ANSWER = '{"type": "answer", "params": {"value": "42"}, "reasoning": "found it"}'
SUB_QUERY = '{"type": "subQuery", "params": {"query": "What changed?"}}'


@pytest.fixture
async def store(vector_store, metadata_store, embedder):
    store = EnhancedVectorStore(vector_store, metadata_store, embedder=embedder)
    await store.add(
        [
            Chunk(id="deploy", content="deploy pipeline runs on merge"),
            Chunk(id="rollback", content="rollback procedure for failed releases"),
            Chunk(id="errors", content="timeout error in the release job"),
        ]
    )
    return store


@pytest.fixture
def controller_for(store, embedder):
    """Factory: controller_for(llm, **kwargs)."""

    def _make(llm, **kwargs):
        return RecursiveRetrievalController(store, embedder, llm, **kwargs)

    return _make


@pytest.mark.unit
class TestComplexity:
    """Rule-based complexity assessment."""

    def test_aggregation_over_small_context(self, make_chunk):
        chunks = [make_chunk(f"c{i}", "x" * 500) for i in range(10)]

        assert assess_complexity("How many files were changed?", chunks) == ComplexityLevel.MODERATE

    def test_plain_small_query(self, make_chunk):
        assert assess_complexity("where is the deploy script", [make_chunk("c1")]) == (
            ComplexityLevel.SIMPLE
        )

    def test_medium_context(self, make_chunk):
        chunks = [make_chunk("c1", "x" * 60_000)]

        assert assess_complexity("where is it", chunks) == ComplexityLevel.MODERATE
        assert assess_complexity("analyze the failures", chunks) == ComplexityLevel.COMPLEX

    def test_large_context(self, make_chunk):
        chunks = [make_chunk("c1", "x" * 250_000)]

        assert assess_complexity("where is it", chunks) == ComplexityLevel.COMPLEX

    def test_custom_thresholds(self, make_chunk):
        chunks = [make_chunk("c1", "x" * 200)]

        assert assess_complexity("where", chunks, simple_max_context=100) == (
            ComplexityLevel.MODERATE
        )


@pytest.mark.unit
@pytest.mark.asyncio
class TestDirectRetrieval:
    """Ranked results without the action loop."""

    async def test_simple_query_is_direct(self, controller_for, scripted_llm):
        llm = scripted_llm([ANSWER])

        result = await controller_for(llm).retrieve("deploy pipeline")

        assert result.strategy == RetrievalStrategy.DIRECT
        assert result.complexity == ComplexityLevel.SIMPLE
        assert result.iterations == 1
        assert result.cost == 0.0
        assert result.chunks[0].id == "deploy"
        assert llm.prompts == []

    async def test_forced_direct(self, controller_for, scripted_llm):
        result = await controller_for(scripted_llm()).retrieve(
            "compare deploy and rollback", force_strategy="direct"
        )

        assert result.strategy == RetrievalStrategy.DIRECT
        assert result.complexity == ComplexityLevel.MODERATE

    async def test_scorer_reranks(self, controller_for, scripted_llm):
        scorer = HybridScorer(
            config=ScoringConfig(
                weights=ScoringWeights(
                    similarity=1.0, decay=0, importance=0, recency=0, graph_boost=0, type_boost=0
                )
            )
        )

        result = await controller_for(scripted_llm(), scorer=scorer).retrieve("release job")

        assert all(c.final_score == pytest.approx(c.similarity) for c in result.chunks)
        scores = [c.final_score for c in result.chunks]
        assert scores == sorted(scores, reverse=True)


@pytest.mark.unit
@pytest.mark.asyncio
class TestRecursiveRetrieval:
    """The iterative action loop."""

    async def test_answer_found(self, controller_for, scripted_llm):
        llm = scripted_llm([ANSWER])

        result = await controller_for(llm).retrieve("compare deploy and rollback")

        assert result.strategy == RetrievalStrategy.RECURSIVE
        assert result.complexity == ComplexityLevel.MODERATE
        assert result.termination_reason == TerminationReason.ANSWER_FOUND
        assert result.answer == "42"
        assert result.iterations == 1
        assert {c.id for c in result.chunks} == {"deploy", "rollback", "errors"}
        assert llm.calls[0]["temperature"] == 0.2
        assert llm.calls[0]["max_tokens"] == 1000
        assert "## Query\ncompare deploy and rollback" in llm.prompts[0]

    async def test_unparsable_output_runs_to_max_iterations(self, controller_for, scripted_llm):
        llm = scripted_llm(["I am not sure what to do"])

        result = await controller_for(llm).retrieve(
            "How many files were changed?", max_iterations=3
        )

        assert result.termination_reason == TerminationReason.MAX_ITERATIONS
        assert result.iterations == 3
        assert result.answer == "I am not sure what to do"
        assert len(llm.prompts) == 3

    async def test_filter_and_chunk_actions(self, controller_for, scripted_llm):
        llm = scripted_llm(
            [
                '{"type": "filter", "params": {"pattern": "release", "output": "releases"}}',
                '{"type": "chunk", "params": {"variable": "releases", "size": 1}}',
                ANSWER,
            ]
        )

        result = await controller_for(llm).retrieve("summarize release work")

        step_types = [step.type for step in result.execution_log]
        assert result.iterations == 3
        assert "filter" in step_types
        assert "chunk" in step_types
        assert "- `batch_1`: 1 chunks" in llm.prompts[2]

    async def test_sub_query_uses_sub_llm(self, controller_for, scripted_llm):
        llm = scripted_llm([SUB_QUERY, ANSWER])
        sub_llm = scripted_llm(["the deploy step changed"])

        result = await controller_for(llm, sub_llm=sub_llm).retrieve("compare what changed")

        assert sub_llm.prompts[0].startswith("What changed?\n\nContext:\n")
        assert result.cost > 0
        assert "`_last_sub_query`" in llm.prompts[1]

    async def test_search_action_adds_results(self, controller_for, scripted_llm):
        llm = scripted_llm(
            ['{"type": "search", "params": {"query": "rollback procedure", "output": "more"}}', ANSWER]
        )

        result = await controller_for(llm).retrieve("compare deploy speed", top_k=1)

        assert result.iterations == 2
        assert "rollback" in {c.id for c in result.chunks}

    async def test_llm_failure_propagates(self, controller_for, scripted_llm):
        with pytest.raises(LLMError):
            await controller_for(scripted_llm([LLMError("down")])).retrieve(
                "compare deploy and rollback"
            )


@pytest.mark.unit
@pytest.mark.asyncio
class TestBudgets:
    """Budget and limit termination."""

    async def test_zero_budget(self, controller_for, scripted_llm):
        llm = scripted_llm([ANSWER])

        result = await controller_for(llm).retrieve(
            "compare deploy and rollback", cost_budget=0.0
        )

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED
        assert result.iterations == 0
        assert result.answer is None
        assert llm.prompts == []

    async def test_sub_query_over_budget(self, controller_for, scripted_llm):
        sub_llm = scripted_llm()

        result = await controller_for(scripted_llm([SUB_QUERY]), sub_llm=sub_llm).retrieve(
            "compare deploy and rollback", cost_budget=0.005
        )

        assert result.termination_reason == TerminationReason.BUDGET_EXCEEDED
        assert result.iterations == 1
        assert sub_llm.prompts == []

    async def test_sub_call_limit(self, controller_for, scripted_llm):
        controller = controller_for(
            scripted_llm([SUB_QUERY]),
            sub_llm=scripted_llm(),
            environment_config=EnvironmentConfig(max_sub_calls=1),
        )

        result = await controller.retrieve("compare deploy and rollback")

        assert result.termination_reason == TerminationReason.SUB_CALL_LIMIT
        assert result.iterations == 1

    async def test_timeout(self, controller_for, scripted_llm):
        # any elapsed time exceeds a negative timeout
        result = await controller_for(scripted_llm([ANSWER])).retrieve(
            "compare deploy and rollback", timeout_ms=-1
        )

        assert result.termination_reason == TerminationReason.TIMEOUT

    async def test_configured_iteration_budget(self, controller_for, scripted_llm):
        controller = controller_for(
            scripted_llm(['{"type": "peek"}']), config=RetrievalConfig(max_iterations=2)
        )

        result = await controller.retrieve("compare deploy and rollback")

        assert result.termination_reason == TerminationReason.MAX_ITERATIONS
        assert result.iterations == 2
        assert result.answer is None

    async def test_zero_iterations(self, controller_for, scripted_llm):
        llm = scripted_llm([ANSWER])

        result = await controller_for(llm).retrieve("compare deploy and rollback", max_iterations=0)

        assert result.termination_reason == TerminationReason.MAX_ITERATIONS
        assert result.iterations == 0
        assert llm.prompts == []
