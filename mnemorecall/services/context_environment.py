"""
Context Environment - named-variable working memory of one retrieval session.

Retrieved context is held as variables that the controlling model examines,
filters and decomposes instead of receiving everything in one prompt.
Every sub-query is priced and counted against the session budgets.
"""

import asyncio
import json
import re
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from mnemorecall.config import EnvironmentConfig
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.tokenizer.tokenizer import Tokenizer
from mnemorecall.models.retrieval import (
    ContextVariable,
    EnhancedChunk,
    EnvironmentStats,
    ExecutionStep,
    StepType,
    TerminationCheck,
    TerminationReason,
    VariableType,
)
from mnemorecall.utils.exceptions import (
    BudgetExceededError,
    RetrievalTimeoutError,
    SubCallLimitError,
)
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

INTERNAL_PREFIX = "_"
CHUNK_SEPARATOR = "\n\n---\n\n"


def is_internal(name: str) -> bool:
    """Internal variables are bookkeeping, never part of the retrieved result."""
    return name.startswith(INTERNAL_PREFIX)


def _variable_type(value: Any) -> VariableType:
    if isinstance(value, str):
        return "string"
    if isinstance(value, list) and value and all(isinstance(v, EnhancedChunk) for v in value):
        return "chunks"
    if isinstance(value, (dict, list, tuple, BaseModel)):
        return "object"
    return "primitive"


class ContextEnvironment:
    """
    Working memory with cost, sub-call, iteration and wall-clock budgets.

    Budgets are checked at checkpoints only: should_terminate() at the top of
    each controller iteration and the pre-checks of sub_query().
    """

    def __init__(
        self,
        config: EnvironmentConfig | None = None,
        tokenizer: Tokenizer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            config: Budgets and pricing
            tokenizer: Token counter used to price sub-queries
            clock: Seconds source for the timeout (monotonic by default)
        """
        self.config = config or EnvironmentConfig()
        self.tokenizer = tokenizer or Tokenizer()
        self._clock = clock
        self._start = clock()
        self._variables: dict[str, ContextVariable] = {}
        self._log: list[ExecutionStep] = []
        self._total_cost = 0.0
        self._iterations = 0
        self._sub_calls = 0

    def _record(self, step_type: StepType, variable_name: str | None = None, **details) -> None:
        self._log.append(
            ExecutionStep(type=step_type, variable_name=variable_name, details=details)
        )

    # ═══════════════════════════════════════════════════════════
    # VARIABLES
    # ═══════════════════════════════════════════════════════════

    def load_context(self, chunks: list[EnhancedChunk], variable_name: str = "context") -> None:
        """Load chunks as a chunks-typed variable."""
        variable = ContextVariable(
            name=variable_name,
            type="chunks",
            value=list(chunks),
            total_length=sum(len(c.content) for c in chunks),
            chunk_count=len(chunks),
        )
        self._variables[variable_name] = variable
        self._record(
            "load_context",
            variable_name,
            chunk_count=variable.chunk_count,
            total_length=variable.total_length,
        )

    def store(self, variable_name: str, value: Any) -> None:
        """Store an intermediate value; its type is inferred from the value."""
        var_type = _variable_type(value)
        if var_type == "chunks":
            self._variables[variable_name] = ContextVariable(
                name=variable_name,
                type="chunks",
                value=list(value),
                total_length=sum(len(c.content) for c in value),
                chunk_count=len(value),
            )
        else:
            self._variables[variable_name] = ContextVariable(
                name=variable_name,
                type=var_type,
                value=value,
                total_length=len(value) if isinstance(value, str) else 0,
            )
        self._record("store", variable_name, value_type=var_type)

    def get(self, variable_name: str) -> Any:
        variable = self._variables.get(variable_name)
        return variable.value if variable else None

    def get_variable(self, variable_name: str) -> ContextVariable | None:
        return self._variables.get(variable_name)

    def get_chunks(self, variable_name: str = "context") -> list[EnhancedChunk]:
        """Chunks of a chunks-typed variable, else an empty list."""
        variable = self._variables.get(variable_name)
        if variable is None or variable.type != "chunks":
            return []
        return list(variable.value)

    def has(self, variable_name: str) -> bool:
        return variable_name in self._variables

    def list_variables(self) -> list[str]:
        return list(self._variables)

    # ═══════════════════════════════════════════════════════════
    # INSPECTION
    # ═══════════════════════════════════════════════════════════

    def peek(self, variable_name: str, start: int | None = None, end: int | None = None) -> str:
        """
        Read-only view of part of a variable.

        Chunks default to the first 3 with 500-char previews; strings and
        objects default to the first 1000 characters.
        """
        variable = self._variables.get(variable_name)
        if variable is None:
            return f"Error: Variable '{variable_name}' not found"

        self._record("peek", variable_name, start=start, end=end)
        first = start or 0

        if variable.type == "chunks":
            limit = self.config.peek_preview_chars
            blocks = []
            for offset, chunk in enumerate(variable.value[first : 3 if end is None else end]):
                preview = chunk.content[:limit]
                more = "..." if len(chunk.content) > limit else ""
                blocks.append(
                    f"[Chunk {first + offset}] ({chunk.chunk_type.value}, "
                    f"{len(chunk.content)} chars):\n{preview}{more}"
                )
            return "\n\n".join(blocks)

        if variable.type == "string":
            text = variable.value
        elif isinstance(variable.value, BaseModel):
            text = variable.value.model_dump_json(indent=2)
        else:
            text = json.dumps(variable.value, indent=2, default=str)

        return text[first : 1000 if end is None else end]

    def filter(self, variable_name: str, pattern: str) -> list[EnhancedChunk]:
        """Chunks whose content matches pattern (case-insensitive). Invalid pattern -> []."""
        chunks = self.get_chunks(variable_name)
        if not chunks:
            return []

        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.debug(f"Invalid filter pattern '{pattern}': {e}")
            return []

        matched = [c for c in chunks if regex.search(c.content)]
        self._record(
            "filter",
            variable_name,
            pattern=pattern,
            original_count=len(chunks),
            result_count=len(matched),
        )
        return matched

    def filter_and_store(self, variable_name: str, pattern: str, output_variable: str) -> int:
        """Filter into output_variable (only when something matched). Returns the match count."""
        matched = self.filter(variable_name, pattern)
        if matched:
            self.load_context(matched, output_variable)
        return len(matched)

    def chunk(self, variable_name: str, size: int) -> list[list[EnhancedChunk]]:
        """Split a chunks variable into ordered batches of at most size chunks."""
        chunks = self.get_chunks(variable_name)
        if not chunks or size < 1:
            return []

        batches = [chunks[i : i + size] for i in range(0, len(chunks), size)]
        self._record("chunk", variable_name, batch_size=size, batch_count=len(batches))
        return batches

    def get_chunk_summary(self, variable_name: str = "context") -> str:
        """One line per chunk with a 100-char preview."""
        variable = self._variables.get(variable_name)
        if variable is None or variable.type != "chunks":
            return f"Error: Variable '{variable_name}' not found or not chunks"

        return "\n".join(
            f"[{i}] ({c.chunk_type.value}, {len(c.content)} chars): "
            f"{c.content[:100].replace(chr(10), ' ')}..."
            for i, c in enumerate(variable.value)
        )

    def get_state_description(self) -> str:
        """Describe variables and remaining budgets without showing content."""
        lines = []
        for name, v in self._variables.items():
            if v.type == "chunks":
                lines.append(f"- `{name}`: {v.chunk_count} chunks, {v.total_length} total chars")
            elif v.type == "string":
                lines.append(f"- `{name}`: string ({len(v.value)} chars)")
            elif v.type == "object":
                lines.append(f"- `{name}`: object")
            else:
                lines.append(f"- `{name}`: {type(v.value).__name__}")

        return f"""## Environment State
Variables:
{chr(10).join(lines) or "(none)"}

Available operations:
- `peek(variable, start?, end?)` - View portion of a variable
- `filter(variable, pattern, output?)` - Filter chunks by regex pattern
- `chunk(variable, size)` - Split into smaller batches
- `subQuery(query, variable, output?)` - Ask a sub-LLM about a variable's chunks
- `store(variable, value)` - Store intermediate result
- `search(query, output?)` - Run a fresh vector search
- `answer(value)` - Return final answer

Remaining budget: ${self.get_remaining_budget():.4f}
Iterations: {self._iterations}/{self.config.max_iterations}
Sub-calls: {self._sub_calls}/{self.config.max_sub_calls}
"""

    # ═══════════════════════════════════════════════════════════
    # SUB-QUERIES
    # ═══════════════════════════════════════════════════════════

    def estimate_cost(self, prompt: str, response: str) -> float:
        """Token-priced cost of one LLM exchange."""
        input_tokens = self.tokenizer.count_tokens(prompt)
        output_tokens = self.tokenizer.count_tokens(response)
        return (
            input_tokens / 1_000_000 * self.config.input_price_per_million
            + output_tokens / 1_000_000 * self.config.output_price_per_million
        )

    async def sub_query(
        self,
        llm: LLMProvider,
        query: str,
        context: str | list[EnhancedChunk],
        max_tokens: int = 2000,
        temperature: float = 0.3,
        estimated_cost: float | None = None,
    ) -> str:
        """
        Ask the LLM a focused question about some context.

        Raises:
            RetrievalTimeoutError: If the session timeout has elapsed
            BudgetExceededError: If the estimated cost would exceed the budget
            SubCallLimitError: If the sub-call limit is reached
        """
        if self.get_elapsed_ms() > self.config.timeout_ms:
            raise RetrievalTimeoutError("Environment timeout exceeded")

        estimate = self.config.estimated_sub_call_cost if estimated_cost is None else estimated_cost
        if self._total_cost + estimate > self.config.cost_budget:
            raise BudgetExceededError(
                "Cost budget exceeded",
                {"total_cost": self._total_cost, "budget": self.config.cost_budget},
            )

        if self._sub_calls >= self.config.max_sub_calls:
            raise SubCallLimitError(
                "Maximum sub-calls exceeded", {"max_sub_calls": self.config.max_sub_calls}
            )

        context_text = (
            context if isinstance(context, str) else CHUNK_SEPARATOR.join(c.content for c in context)
        )
        prompt = f"{query}\n\nContext:\n{context_text}"

        started = self._clock()
        response = await llm.complete(prompt, max_tokens=max_tokens, temperature=temperature)
        response = response if isinstance(response, str) else str(response)

        cost = self.estimate_cost(prompt, response)
        self._total_cost += cost
        self._sub_calls += 1

        self._record(
            "sub_call",
            query=query[:100],
            context_length=len(context_text),
            response_length=len(response),
            cost=cost,
            duration_ms=(self._clock() - started) * 1000,
        )
        return response

    async def batch_sub_query(
        self, llm: LLMProvider, queries: list[tuple[str, str | list[EnhancedChunk]]]
    ) -> list[str]:
        """
        Run several sub-queries, at most concurrency_limit at a time.

        A failed query yields "Error: <message>" in its slot.
        """
        if not self.config.enable_async_sub_calls:
            return [await self.sub_query(llm, q, ctx) for q, ctx in queries]

        semaphore = asyncio.Semaphore(self.config.concurrency_limit)

        async def run(query: str, context: str | list[EnhancedChunk]) -> str:
            async with semaphore:
                try:
                    return await self.sub_query(llm, query, context)
                except Exception as e:
                    logger.warning("Sub-query failed: {error}", error=str(e), query=query[:100])
                    return f"Error: {e}"

        return list(await asyncio.gather(*(run(q, ctx) for q, ctx in queries)))

    # ═══════════════════════════════════════════════════════════
    # BUDGETS
    # ═══════════════════════════════════════════════════════════

    def mark_iteration(self, iteration: int, action: str | None = None) -> None:
        self._iterations += 1
        self._record("iteration", iteration=iteration, action=action)

    def record_action(self, action_type: str, **details) -> None:
        self._record("action", action=action_type, **details)

    def should_terminate(self) -> TerminationCheck:
        """Checkpoint: timeout, then cost, then iterations, then sub-calls."""
        if self.get_elapsed_ms() > self.config.timeout_ms:
            return TerminationCheck(terminate=True, reason=TerminationReason.TIMEOUT)
        if self._total_cost >= self.config.cost_budget:
            return TerminationCheck(terminate=True, reason=TerminationReason.BUDGET_EXCEEDED)
        if self._iterations >= self.config.max_iterations:
            return TerminationCheck(terminate=True, reason=TerminationReason.MAX_ITERATIONS)
        if self._sub_calls >= self.config.max_sub_calls:
            return TerminationCheck(terminate=True, reason=TerminationReason.SUB_CALL_LIMIT)
        return TerminationCheck()

    def get_total_cost(self) -> float:
        return self._total_cost

    def get_remaining_budget(self) -> float:
        return self.config.cost_budget - self._total_cost

    def get_iteration_count(self) -> int:
        return self._iterations

    def get_sub_call_count(self) -> int:
        return self._sub_calls

    def get_elapsed_ms(self) -> float:
        return (self._clock() - self._start) * 1000

    def get_execution_log(self) -> list[ExecutionStep]:
        return list(self._log)

    def collect_chunks(self) -> list[EnhancedChunk]:
        """De-duplicated chunks of all non-internal variables; first occurrence wins."""
        seen: dict[str, EnhancedChunk] = {}
        for name, variable in self._variables.items():
            if is_internal(name) or variable.type != "chunks":
                continue
            for chunk in variable.value:
                seen.setdefault(chunk.id, chunk)
        return list(seen.values())

    def get_stats(self) -> EnvironmentStats:
        chunk_vars = [v for v in self._variables.values() if v.type == "chunks"]
        return EnvironmentStats(
            variable_count=len(self._variables),
            total_chunks=sum(v.chunk_count for v in chunk_vars),
            total_content_length=sum(v.total_length for v in chunk_vars),
            iterations=self._iterations,
            sub_calls=self._sub_calls,
            total_cost=self._total_cost,
            elapsed_ms=self.get_elapsed_ms(),
        )
