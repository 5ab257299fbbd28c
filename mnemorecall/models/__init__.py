"""
Data models for mnemorecall.

Chunk metadata, relationships, categories, retrieval results and the
closed set of controller actions.
"""

from mnemorecall.models.actions import (
    AnswerAction,
    ChunkAction,
    FilterAction,
    ParsedAction,
    PeekAction,
    RetrievalAction,
    SearchAction,
    StoreAction,
    SubQueryAction,
    UnparsedAction,
)
from mnemorecall.models.categories import (
    DEFAULT_CATEGORIES,
    Category,
    CategoryClassification,
    CategoryDefinition,
    CategoryItem,
    CategoryWithStats,
    SelectedCategory,
    SummaryEvolutionResult,
)
from mnemorecall.models.chunk import (
    AccessLogEntry,
    AccessStat,
    Chunk,
    ChunkMetadata,
    ChunkMetadataPatch,
    ChunkType,
    DecayBreakdown,
    DecayUpdateResult,
    MemoryStats,
    ProcessedConversation,
)
from mnemorecall.models.maintenance import MaintenanceJobResult, MaintenanceStats
from mnemorecall.models.relationships import (
    BatchRelationshipResult,
    Contradiction,
    GraphNode,
    GraphStats,
    PotentialContradiction,
    RelatedChunk,
    Relationship,
    RelationshipSpec,
    RelationshipType,
    TraversalResult,
)
from mnemorecall.models.retrieval import (
    ComplexityLevel,
    ContextVariable,
    EnhancedChunk,
    EnvironmentStats,
    ExecutionStep,
    RetrievalResult,
    RetrievalStrategy,
    ScoreComponents,
    ScoredResult,
    TerminationCheck,
    TerminationReason,
    TieredRetrievalResult,
    VectorDocument,
    VectorSearchHit,
)

__all__ = [
    # Chunks
    "ChunkType",
    "Chunk",
    "ChunkMetadata",
    "ChunkMetadataPatch",
    "AccessLogEntry",
    "AccessStat",
    "ProcessedConversation",
    "MemoryStats",
    "DecayBreakdown",
    "DecayUpdateResult",
    # Maintenance
    "MaintenanceJobResult",
    "MaintenanceStats",
    # Relationships
    "RelationshipType",
    "Relationship",
    "RelationshipSpec",
    "BatchRelationshipResult",
    "GraphNode",
    "TraversalResult",
    "RelatedChunk",
    "Contradiction",
    "PotentialContradiction",
    "GraphStats",
    # Categories
    "Category",
    "CategoryItem",
    "CategoryDefinition",
    "CategoryClassification",
    "CategoryWithStats",
    "SelectedCategory",
    "SummaryEvolutionResult",
    "DEFAULT_CATEGORIES",
    # Retrieval
    "VectorDocument",
    "VectorSearchHit",
    "EnhancedChunk",
    "ScoreComponents",
    "ScoredResult",
    "ComplexityLevel",
    "RetrievalStrategy",
    "TerminationReason",
    "TerminationCheck",
    "ExecutionStep",
    "ContextVariable",
    "EnvironmentStats",
    "TieredRetrievalResult",
    "RetrievalResult",
    # Actions
    "PeekAction",
    "FilterAction",
    "ChunkAction",
    "SubQueryAction",
    "StoreAction",
    "AnswerAction",
    "SearchAction",
    "UnparsedAction",
    "ParsedAction",
    "RetrievalAction",
]
