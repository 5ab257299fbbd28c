"""
Relationship models and types for the chunk graph.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from mnemorecall.models.chunk import utcnow


class RelationshipType(str, Enum):
    """Types of directed relationships between chunks."""

    # Semantic
    RELATES_TO = "relates_to"
    SIMILAR_TO = "similar_to"

    # Causal
    LEADS_TO = "leads_to"
    DERIVES_FROM = "derives_from"
    SOLVES = "solves"

    # Temporal
    SUPERSEDES = "supersedes"
    OCCURRED_BEFORE = "occurred_before"
    EVOLVED_INTO = "evolved_into"

    # Conflict
    CONTRADICTS = "contradicts"
    INVALIDATED_BY = "invalidated_by"

    # Preference
    PREFERS_OVER = "prefers_over"

    # Structural
    PART_OF = "part_of"
    DEPENDS_ON = "depends_on"
    IMPLEMENTS = "implements"
    EXEMPLIFIES = "exemplifies"
    EXTENDS = "extends"
    REFERENCES = "references"
    EXAMPLE_OF = "example_of"
    ALTERNATIVE_TO = "alternative_to"


RELATIONSHIP_CATEGORIES: dict[str, tuple[RelationshipType, ...]] = {
    "semantic": (RelationshipType.RELATES_TO, RelationshipType.SIMILAR_TO),
    "causal": (
        RelationshipType.LEADS_TO,
        RelationshipType.DERIVES_FROM,
        RelationshipType.SOLVES,
    ),
    "temporal": (
        RelationshipType.SUPERSEDES,
        RelationshipType.OCCURRED_BEFORE,
        RelationshipType.EVOLVED_INTO,
    ),
    "conflict": (RelationshipType.CONTRADICTS, RelationshipType.INVALIDATED_BY),
    "preference": (RelationshipType.PREFERS_OVER,),
    "structural": (
        RelationshipType.PART_OF,
        RelationshipType.DEPENDS_ON,
        RelationshipType.IMPLEMENTS,
        RelationshipType.EXEMPLIFIES,
        RelationshipType.EXTENDS,
        RelationshipType.REFERENCES,
        RelationshipType.EXAMPLE_OF,
        RelationshipType.ALTERNATIVE_TO,
    ),
}

BIDIRECTIONAL_RELATIONSHIPS = frozenset(
    {
        RelationshipType.RELATES_TO,
        RelationshipType.SIMILAR_TO,
        RelationshipType.CONTRADICTS,
    }
)

# Types not listed are their own reverse
_REVERSE_OVERRIDES = {
    RelationshipType.LEADS_TO: RelationshipType.DERIVES_FROM,
    RelationshipType.DERIVES_FROM: RelationshipType.LEADS_TO,
    RelationshipType.EVOLVED_INTO: RelationshipType.DERIVES_FROM,
    RelationshipType.IMPLEMENTS: RelationshipType.EXEMPLIFIES,
    RelationshipType.EXEMPLIFIES: RelationshipType.IMPLEMENTS,
}


def is_bidirectional(rel_type: RelationshipType) -> bool:
    """Check whether a relationship type naturally holds in both directions."""
    return rel_type in BIDIRECTIONAL_RELATIONSHIPS


def get_reverse_type(rel_type: RelationshipType) -> RelationshipType:
    """Get the logical reverse of a relationship type."""
    return _REVERSE_OVERRIDES.get(rel_type, rel_type)


def get_relationships_by_category(category: str) -> list[RelationshipType]:
    """Get all relationship types of a category (semantic, causal, ...)."""
    return list(RELATIONSHIP_CATEGORIES.get(category, ()))


Direction = Literal["from", "to", "both"]


class Relationship(BaseModel):
    """Directed, typed and weighted edge between two chunks."""

    id: int | None = None
    from_chunk_id: str
    to_chunk_id: str
    relationship_type: RelationshipType
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    def other_end(self, chunk_id: str) -> str:
        """Return the endpoint that is not chunk_id."""
        return self.to_chunk_id if self.from_chunk_id == chunk_id else self.from_chunk_id


class RelationshipSpec(BaseModel):
    """One entry of a batch relationship insert."""

    from_chunk_id: str
    to_chunk_id: str
    relationship_type: RelationshipType
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    bidirectional: bool | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BatchRelationshipResult(BaseModel):
    """Result of a batch relationship operation."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)


class GraphNode(BaseModel):
    """A chunk reached during traversal."""

    chunk_id: str
    depth: int
    path: list[str] = Field(default_factory=list)
    relationship_type: RelationshipType
    strength: float
    combined_strength: float


class TraversalResult(BaseModel):
    """Result of a bounded breadth-first traversal."""

    start_chunk_id: str
    nodes: list[GraphNode] = Field(default_factory=list)
    total_nodes: int = 0
    max_depth_reached: int = 0
    truncated: bool = False


class RelatedChunk(BaseModel):
    """A chunk related to a query chunk, with the path that reached it."""

    chunk_id: str
    relationship_type: RelationshipType
    strength: float
    combined_strength: float
    depth: int = 1
    is_transitive: bool = False
    path: list[str] = Field(default_factory=list)


class Contradiction(BaseModel):
    """A conflict edge touching a chunk."""

    chunk_id: str
    type: Literal["contradiction", "invalidation", "superseded"]
    strength: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContradictionCandidate(BaseModel):
    """An existing chunk that a new chunk is similar enough to conflict with."""

    chunk_id: str
    similarity: float
    chunk_type: str
    created_at: datetime


class PotentialContradiction(BaseModel):
    """A possible conflict detected from similarity, with a suggested action."""

    existing_chunk_id: str
    new_chunk_id: str
    similarity: float
    reason: str
    suggested_action: Literal["review", "supersede", "merge", "ignore"]


class ConnectionCount(BaseModel):
    chunk_id: str
    connections: int


class GraphStats(BaseModel):
    """Statistics about the relationship graph."""

    total_relationships: int = 0
    relationships_by_type: dict[str, int] = Field(default_factory=dict)
    avg_relationships_per_chunk: float = 0.0
    max_depth: int = 0
    isolated_chunks: int = 0
    most_connected: list[ConnectionCount] = Field(default_factory=list)
