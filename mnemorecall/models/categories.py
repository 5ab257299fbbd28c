"""
Category models for hierarchical knowledge organisation.

Categories group related chunks and carry a cached, externally generated
summary of their topic area.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from mnemorecall.models.chunk import utcnow


class Category(BaseModel):
    """A node of the category tree."""

    id: str
    name: str
    description: str | None = None
    parent_id: str | None = None
    summary: str | None = None
    chunk_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CategoryItem(BaseModel):
    """Assignment of a chunk to a category with a relevance score."""

    id: str
    chunk_id: str
    category_id: str
    relevance_score: float = Field(default=1.0, ge=0.0, le=1.0)
    assigned_at: datetime = Field(default_factory=utcnow)


class CategoryDefinition(BaseModel):
    """Blueprint used to create a category."""

    name: str
    display_name: str
    description: str
    tags: list[str] = Field(default_factory=list)
    parent_name: str | None = None


class CategoryClassification(BaseModel):
    """Result of classifying a chunk into one category."""

    category: str
    relevance_score: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class LLMClassificationResponse(BaseModel):
    """Structured output expected from an LLM classifier."""

    classifications: list[CategoryClassification] = Field(default_factory=list)


class SelectedCategory(BaseModel):
    """A category judged relevant to a query."""

    name: str
    relevance: float
    summary: str | None = None
    item_count: int = 0


class CategoryWithStats(Category):
    """Category with recent activity figures."""

    recent_item_count: int = 0
    avg_relevance_score: float = 0.0
    top_tags: list[str] = Field(default_factory=list)


class SummaryEvolutionResult(BaseModel):
    """Outcome of refreshing a category summary."""

    category_name: str
    previous_summary: str | None
    new_summary: str | None
    items_integrated: int = 0
    had_contradictions: bool = False


SortBy = Literal["relevance", "date"]


DEFAULT_CATEGORIES: list[CategoryDefinition] = [
    CategoryDefinition(
        name="authentication",
        display_name="Authentication",
        description="Login, sessions, JWT, OAuth, API keys, security tokens",
        tags=["auth", "security", "login", "jwt", "oauth", "session", "token"],
    ),
    CategoryDefinition(
        name="database",
        display_name="Database",
        description="Queries, migrations, models, relationships, ORM, schema design",
        tags=["sql", "database", "query", "migration", "model", "orm", "schema"],
    ),
    CategoryDefinition(
        name="api",
        display_name="API",
        description="REST, GraphQL, endpoints, requests, responses, webhooks",
        tags=["api", "rest", "graphql", "endpoint", "http", "webhook", "request"],
    ),
    CategoryDefinition(
        name="testing",
        display_name="Testing",
        description="Unit tests, integration tests, E2E, mocking, fixtures, coverage",
        tags=["test", "testing", "mock", "fixture", "assertion", "coverage", "e2e"],
    ),
    CategoryDefinition(
        name="frontend",
        display_name="Frontend",
        description="UI components, styling, state management, routing, forms",
        tags=["ui", "component", "style", "css", "state", "vue", "react", "form"],
    ),
    CategoryDefinition(
        name="devops",
        display_name="DevOps",
        description="Deployment, CI/CD, Docker, Kubernetes, infrastructure, monitoring",
        tags=["deploy", "docker", "ci", "cd", "infrastructure", "kubernetes", "monitor"],
    ),
    CategoryDefinition(
        name="architecture",
        display_name="Architecture",
        description="Design patterns, system design, decisions, microservices, modules",
        tags=["pattern", "architecture", "design", "structure", "microservice", "module"],
    ),
    CategoryDefinition(
        name="performance",
        display_name="Performance",
        description="Optimization, caching, profiling, memory, speed, scaling",
        tags=["performance", "optimization", "cache", "speed", "memory", "scale", "profile"],
    ),
    CategoryDefinition(
        name="debugging",
        display_name="Debugging",
        description="Error resolution, troubleshooting, fixes, logging, stack traces",
        tags=["bug", "error", "fix", "debug", "issue", "log", "trace", "troubleshoot"],
    ),
    CategoryDefinition(
        name="standards",
        display_name="Standards",
        description="Coding standards, conventions, best practices, linting, formatting",
        tags=["standard", "convention", "practice", "guideline", "lint", "format", "style"],
    ),
]


def get_default_category(name: str) -> CategoryDefinition | None:
    """Get a default category definition by name."""
    return next((c for c in DEFAULT_CATEGORIES if c.name == name), None)


def score_category_match(content_tags: list[str], category: CategoryDefinition) -> float:
    """
    Score how well content tags overlap a category's tags.

    A content tag matches when it contains, or is contained in, any category
    tag. The score is the matching fraction of content tags.
    """
    if not content_tags:
        return 0.0

    category_tags = [t.lower() for t in category.tags]
    matches = [
        tag
        for tag in (t.lower() for t in content_tags)
        if any(cat_tag in tag or tag in cat_tag for cat_tag in category_tags)
    ]
    return len(matches) / max(len(content_tags), 1)
