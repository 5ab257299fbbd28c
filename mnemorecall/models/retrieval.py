"""
Retrieval models: vector documents, enriched chunks, scores and results.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from mnemorecall.models.chunk import ChunkType, utcnow


class VectorDocument(BaseModel):
    """A document as stored in the vector-search collaborator."""

    id: str
    embedding: list[float]
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorSearchHit(BaseModel):
    """Raw nearest-neighbour hit returned by a vector store."""

    id: str
    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class EnhancedChunk(BaseModel):
    """
    A search hit enriched with its temporal metadata.

    `similarity` is the raw vector score; `final_score` is whatever ranking
    score the producing component computed.
    """

    id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    source: str = "unknown"
    chunk_type: ChunkType = ChunkType.DOCUMENTATION
    similarity: float = 0.0
    decay_score: float = 1.0
    importance: float = 0.5
    final_score: float = 0.0
    access_count: int = 0
    last_accessed_at: datetime | None = None
    created_at: datetime | None = None
    is_archived: bool = False


class ScoreComponents(BaseModel):
    """Individual signals that make up a hybrid score, each in [0, 1]."""

    similarity: float = 0.0
    decay: float = 0.0
    importance: float = 0.0
    recency: float = 0.0
    graph_boost: float = 0.0
    type_boost: float = 0.0


class ScoredResult(BaseModel):
    """A chunk ranked by the hybrid scorer."""

    chunk: EnhancedChunk
    final_score: float
    components: ScoreComponents

    @property
    def id(self) -> str:
        return self.chunk.id


class TieredRetrievalResult(BaseModel):
    """Category summaries first, then detail chunks when summaries fall short."""

    summaries: list[ScoredResult] = Field(default_factory=list)
    chunks: list[ScoredResult] = Field(default_factory=list)
    summaries_sufficient: bool = False
    reason: str = ""


class ComplexityLevel(str, Enum):
    """Rule-based complexity of a query over its candidate context."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class RetrievalStrategy(str, Enum):
    DIRECT = "direct"
    RECURSIVE = "recursive"


class TerminationReason(str, Enum):
    """Why an iterative retrieval session stopped."""

    ANSWER_FOUND = "Answer found"
    BUDGET_EXCEEDED = "Budget exceeded"
    SUB_CALL_LIMIT = "Sub-call limit exceeded"
    TIMEOUT = "Timeout"
    MAX_ITERATIONS = "Max iterations reached"


StepType = Literal[
    "load_context",
    "iteration",
    "filter",
    "chunk",
    "sub_call",
    "store",
    "peek",
    "action",
]


class ExecutionStep(BaseModel):
    """One entry of a context environment's execution log."""

    type: StepType
    timestamp: datetime = Field(default_factory=utcnow)
    variable_name: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


VariableType = Literal["chunks", "string", "object", "primitive"]


class ContextVariable(BaseModel):
    """A named value in the context environment."""

    name: str
    type: VariableType
    value: Any = None
    total_length: int = 0
    chunk_count: int = 0


class TerminationCheck(BaseModel):
    """Result of a budget checkpoint."""

    terminate: bool = False
    reason: TerminationReason | None = None


class EnvironmentStats(BaseModel):
    variable_count: int = 0
    total_chunks: int = 0
    total_content_length: int = 0
    iterations: int = 0
    sub_calls: int = 0
    total_cost: float = 0.0
    elapsed_ms: float = 0.0


class RetrievalResult(BaseModel):
    """Outcome of a retrieve() call."""

    chunks: list[EnhancedChunk] = Field(default_factory=list)
    strategy: RetrievalStrategy
    iterations: int = 1
    cost: float = 0.0
    answer: str | None = None
    execution_log: list[ExecutionStep] = Field(default_factory=list)
    complexity: ComplexityLevel | None = None
    termination_reason: TerminationReason | None = None
