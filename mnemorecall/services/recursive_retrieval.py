"""
Recursive Retrieval Controller - iterative retrieval over a context environment.

Simple queries get the ranked search results directly. Harder ones load the
results into a ContextEnvironment and let the LLM peek, filter, split,
sub-query and search until it answers or a budget runs out.
"""

import re

from pydantic import BaseModel

from mnemorecall.config import EnvironmentConfig, RetrievalConfig
from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.tokenizer.tokenizer import Tokenizer
from mnemorecall.models.actions import (
    AnswerAction,
    ChunkAction,
    FilterAction,
    PeekAction,
    RetrievalAction,
    SearchAction,
    StoreAction,
    SubQueryAction,
    UnparsedAction,
)
from mnemorecall.models.retrieval import (
    ComplexityLevel,
    EnhancedChunk,
    RetrievalResult,
    RetrievalStrategy,
    TerminationReason,
)
from mnemorecall.services.action_parser import parse_action
from mnemorecall.services.context_environment import ContextEnvironment
from mnemorecall.services.enhanced_vector_store import EnhancedVectorStore
from mnemorecall.services.hybrid_scorer import HybridScorer
from mnemorecall.utils.exceptions import RetrievalLimitError
from mnemorecall.utils.id_generator import generate_session_id
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

_AGGREGATION = re.compile(
    r"how many|count|list all|compare|summarize|aggregate|total|average", re.IGNORECASE
)
_MULTI_HOP = re.compile(
    r"because|therefore|which.*then|after.*when|relationship|connected|related", re.IGNORECASE
)
_ANALYSIS = re.compile(r"analyze|evaluate|assess|review|investigate|examine", re.IGNORECASE)

ACTION_TEMPERATURE = 0.2
CANDIDATE_ANSWER_VAR = "_candidate_answer"


class Continue(BaseModel):
    """The step completed; run the next iteration."""


class Terminate(BaseModel):
    """The step ended the session."""

    reason: TerminationReason
    answer: str | None = None


StepOutcome = Continue | Terminate


def assess_complexity(
    query: str,
    chunks: list[EnhancedChunk],
    simple_max_context: int = 50_000,
    moderate_max_context: int = 200_000,
) -> ComplexityLevel:
    """
    Rule-based complexity of a query over its candidate chunks.

    Below simple_max_context total characters a query is simple unless it
    asks for aggregation, multi-hop reasoning or analysis (then moderate).
    Below moderate_max_context it is moderate, or complex with such phrasing.
    Anything larger is complex.
    """
    total_length = sum(len(c.content) for c in chunks)
    has_keywords = bool(
        _AGGREGATION.search(query) or _MULTI_HOP.search(query) or _ANALYSIS.search(query)
    )

    if total_length < simple_max_context:
        return ComplexityLevel.MODERATE if has_keywords else ComplexityLevel.SIMPLE
    if total_length < moderate_max_context:
        return ComplexityLevel.COMPLEX if has_keywords else ComplexityLevel.MODERATE
    return ComplexityLevel.COMPLEX


class RecursiveRetrievalController:
    """
    Orchestrates direct or iterative retrieval for a query.

    Iterations are strictly sequential. Budgets are checked at the top of
    each iteration; an in-flight LLM or search call is never cancelled.
    """

    def __init__(
        self,
        vector_store: EnhancedVectorStore,
        embedder: Embedder,
        llm: LLMProvider,
        sub_llm: LLMProvider | None = None,
        scorer: HybridScorer | None = None,
        config: RetrievalConfig | None = None,
        environment_config: EnvironmentConfig | None = None,
        tokenizer: Tokenizer | None = None,
    ):
        """
        Args:
            vector_store: Decay-aware vector store used for every search
            embedder: Embeds the query and search actions
            llm: Chooses the next action
            sub_llm: Answers sub-queries (defaults to llm)
            scorer: Hybrid scorer for re-ranking initial results
            config: Controller configuration
            environment_config: Base budgets of each session's environment
            tokenizer: Token counter for sub-query pricing
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.llm = llm
        self.sub_llm = sub_llm or llm
        self.scorer = scorer
        self.config = config or RetrievalConfig()
        self.environment_config = environment_config or EnvironmentConfig()
        self.tokenizer = tokenizer or Tokenizer()

    def assess_complexity(self, query: str, chunks: list[EnhancedChunk]) -> ComplexityLevel:
        return assess_complexity(
            query,
            chunks,
            simple_max_context=self.config.simple_max_context,
            moderate_max_context=self.config.moderate_max_context,
        )

    async def retrieve(
        self,
        query: str,
        force_strategy: RetrievalStrategy | str | None = None,
        top_k: int | None = None,
        seed_chunk_ids: list[str] | None = None,
        max_iterations: int | None = None,
        cost_budget: float | None = None,
        timeout_ms: int | None = None,
    ) -> RetrievalResult:
        """
        Retrieve context for a query.

        Args:
            query: Natural-language query
            force_strategy: "direct" or "recursive" to skip complexity routing
            top_k: Initial retrieval size (default initial_retrieval_k)
            seed_chunk_ids: Chunks whose graph neighbours get a scoring boost
            max_iterations: Overrides the configured iteration budget
            cost_budget: Overrides the configured cost budget (USD)
            timeout_ms: Overrides the configured wall-clock budget

        Returns:
            RetrievalResult with chunks, strategy, cost and termination reason

        Raises:
            EmbeddingError, VectorStoreError, LLMError: Backend failures propagate
        """
        strategy = RetrievalStrategy(force_strategy) if force_strategy else None

        embedding = await self.embedder.embed(query)
        chunks = await self.vector_store.enhanced_search(
            embedding, top_k=top_k or self.config.initial_retrieval_k, query_text=query
        )

        if self.config.enable_hybrid_scoring and self.scorer is not None and chunks:
            scored = await self.scorer.score(chunks, seed_chunk_ids=seed_chunk_ids)
            chunks = [r.chunk.model_copy(update={"final_score": r.final_score}) for r in scored]

        complexity = self.assess_complexity(query, chunks)

        if strategy == RetrievalStrategy.DIRECT or (
            strategy is None and complexity == ComplexityLevel.SIMPLE
        ):
            logger.debug(
                f"Direct retrieval for query ({complexity.value}): {len(chunks)} chunks",
                extra={"complexity": complexity.value, "chunks": len(chunks)},
            )
            return RetrievalResult(
                chunks=chunks,
                strategy=RetrievalStrategy.DIRECT,
                iterations=1,
                cost=0.0,
                complexity=complexity,
            )

        iterations = self.config.max_iterations if max_iterations is None else max_iterations
        env = ContextEnvironment(
            self.environment_config.model_copy(
                update={
                    "max_iterations": iterations,
                    "cost_budget": self.config.cost_budget if cost_budget is None else cost_budget,
                    "timeout_ms": self.config.timeout_ms if timeout_ms is None else timeout_ms,
                }
            ),
            tokenizer=self.tokenizer,
        )
        env.load_context(chunks)

        result = await self._iterate(query, env, iterations)
        result.complexity = complexity
        return result

    # ═══════════════════════════════════════════════════════════
    # ITERATION
    # ═══════════════════════════════════════════════════════════

    async def _iterate(
        self, query: str, env: ContextEnvironment, max_iterations: int
    ) -> RetrievalResult:
        session_id = generate_session_id()
        answer: str | None = None
        reason: TerminationReason | None = None
        iterations = 0

        for iteration in range(1, max_iterations + 1):
            check = env.should_terminate()
            if check.terminate:
                reason = check.reason
                break

            iterations = iteration
            env.mark_iteration(iteration)

            outcome = await self._step(query, env, iteration)
            if isinstance(outcome, Terminate):
                reason = outcome.reason
                answer = outcome.answer
                break

        if reason is None:
            reason = TerminationReason.MAX_ITERATIONS
        if answer is None and isinstance(env.get(CANDIDATE_ANSWER_VAR), str):
            answer = env.get(CANDIDATE_ANSWER_VAR)

        logger.info(
            f"Retrieval session {session_id} finished: {reason.value} "
            f"after {iterations} iterations (${env.get_total_cost():.4f})",
            extra={
                "session_id": session_id,
                "reason": reason.value,
                "iterations": iterations,
                "cost": env.get_total_cost(),
            },
        )

        return RetrievalResult(
            chunks=env.collect_chunks(),
            strategy=RetrievalStrategy.RECURSIVE,
            iterations=iterations,
            cost=env.get_total_cost(),
            answer=answer,
            execution_log=env.get_execution_log(),
            termination_reason=reason,
        )

    async def _step(self, query: str, env: ContextEnvironment, iteration: int) -> StepOutcome:
        """One action round. Budget errors become Terminate; anything else propagates."""
        try:
            action = await self._next_action(query, env, iteration)
            return await self._execute(action, env, query)
        except RetrievalLimitError as e:
            logger.info(f"Retrieval stopped at iteration {iteration}: {e.reason}")
            return Terminate(reason=TerminationReason(e.reason))

    async def _next_action(
        self, query: str, env: ContextEnvironment, iteration: int
    ) -> RetrievalAction:
        prompt = f"""You are processing a query using a context environment. Your goal is to find relevant information efficiently.

## Query
{query}

{env.get_state_description()}

## Chunk Summary
{env.get_chunk_summary()}

## Iteration {iteration}

Based on the query and current state, decide your next action. Available actions:

1. **peek** - Look at specific chunks to understand content
   `{{"type": "peek", "params": {{"variable": "context", "start": 0, "end": 3}}}}`

2. **filter** - Filter chunks by keyword/pattern to narrow down
   `{{"type": "filter", "params": {{"variable": "context", "pattern": "error|exception", "output": "errors"}}}}`

3. **chunk** - Split a variable into batches
   `{{"type": "chunk", "params": {{"variable": "context", "size": 5}}}}`

4. **subQuery** - Ask a focused question about a subset of context
   `{{"type": "subQuery", "params": {{"query": "What error handling patterns are used?", "variable": "context"}}}}`

5. **store** - Store intermediate findings
   `{{"type": "store", "params": {{"variable": "findings", "value": "..."}}}}`

6. **search** - Search again with a different query
   `{{"type": "search", "params": {{"query": "...", "output": "more"}}}}`

7. **answer** - Provide final answer if you have enough information
   `{{"type": "answer", "params": {{"value": "The answer based on the context is..."}}}}`

Respond with ONLY a JSON action:
```json
{{
  "type": "...",
  "params": {{ ... }},
  "reasoning": "brief explanation"
}}
```

Be efficient - filter first before examining everything. Use subQuery for semantic understanding."""

        response = await self.llm.complete(
            prompt, max_tokens=self.config.action_max_tokens, temperature=ACTION_TEMPERATURE
        )
        action = parse_action(response if isinstance(response, str) else str(response))
        env.record_action(action.type, reasoning=action.reasoning)
        return action

    async def _execute(
        self, action: RetrievalAction, env: ContextEnvironment, query: str
    ) -> StepOutcome:
        if isinstance(action, AnswerAction):
            return Terminate(reason=TerminationReason.ANSWER_FOUND, answer=action.value)

        if isinstance(action, UnparsedAction):
            logger.warning(
                "Unparseable action output kept as candidate answer",
                extra={"preview": action.raw_text[:200]},
            )
            env.store(CANDIDATE_ANSWER_VAR, action.raw_text)

        elif isinstance(action, PeekAction):
            env.store("_last_peek", env.peek(action.variable, action.start, action.end))

        elif isinstance(action, FilterAction):
            count = env.filter_and_store(
                action.variable, action.pattern, action.output or "filtered"
            )
            env.store("_last_filter_count", count)

        elif isinstance(action, ChunkAction):
            batches = env.chunk(action.variable, action.size)
            for i, batch in enumerate(batches):
                env.load_context(batch, f"batch_{i}")
            env.store("_batch_count", len(batches))

        elif isinstance(action, SubQueryAction):
            chunks = env.get_chunks(action.variable)
            if chunks:
                response = await env.sub_query(self.sub_llm, action.query, chunks)
                env.store(action.output or "_last_sub_query", response)

        elif isinstance(action, StoreAction):
            env.store(action.variable, action.value)

        elif isinstance(action, SearchAction):
            embedding = await self.embedder.embed(action.query or query)
            results = await self.vector_store.enhanced_search(
                embedding, top_k=action.top_k, query_text=action.query or query
            )
            env.load_context(results, action.output or "additional_results")

        return Continue()
