"""
Category Manager - hierarchical organisation of chunks into topic categories.

Chunks are assigned to categories by a pluggable classifier. Each category
caches an externally generated summary; reading a summary never generates one.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime

from mnemorecall.config import CategoryConfig
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.models.categories import (
    DEFAULT_CATEGORIES,
    Category,
    CategoryClassification,
    CategoryDefinition,
    CategoryItem,
    CategoryWithStats,
    LLMClassificationResponse,
    SelectedCategory,
    SortBy,
    SummaryEvolutionResult,
    score_category_match,
)
from mnemorecall.models.chunk import utcnow
from mnemorecall.models.retrieval import EnhancedChunk
from mnemorecall.utils.exceptions import LLMError
from mnemorecall.utils.id_generator import category_id
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

_TECH_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(typescript|javascript|python|php|java|go|rust|ruby)\b",
        r"\b(react|vue|angular|svelte|next\.?js|nuxt)\b",
        r"\b(postgresql|mysql|sqlite|mongodb|redis|elasticsearch)\b",
        r"\b(docker|kubernetes|aws|gcp|azure|vercel|cloudflare)\b",
        r"\b(api|rest|graphql|grpc|websocket)\b",
        r"\b(test|spec|mock|fixture|coverage)\b",
        r"\b(auth|login|session|jwt|oauth|token)\b",
        r"\b(cache|performance|optimize|speed)\b",
        r"\b(error|bug|fix|debug|issue|exception)\b",
        r"\b(deploy|ci|cd|pipeline|build)\b",
    )
]

# keyword -> (category, weight)
_KEYWORD_WEIGHTS: dict[str, tuple[str, float]] = {
    "authentication": ("authentication", 0.8),
    "login": ("authentication", 0.7),
    "password": ("authentication", 0.6),
    "jwt": ("authentication", 0.8),
    "oauth": ("authentication", 0.8),
    "database": ("database", 0.8),
    "query": ("database", 0.5),
    "migration": ("database", 0.7),
    "sql": ("database", 0.7),
    "api": ("api", 0.7),
    "endpoint": ("api", 0.7),
    "rest": ("api", 0.7),
    "graphql": ("api", 0.8),
    "test": ("testing", 0.6),
    "spec": ("testing", 0.6),
    "mock": ("testing", 0.7),
    "assert": ("testing", 0.7),
    "component": ("frontend", 0.6),
    "css": ("frontend", 0.7),
    "style": ("frontend", 0.5),
    "docker": ("devops", 0.8),
    "deploy": ("devops", 0.7),
    "ci/cd": ("devops", 0.8),
    "kubernetes": ("devops", 0.8),
    "pattern": ("architecture", 0.6),
    "architecture": ("architecture", 0.8),
    "design": ("architecture", 0.5),
    "performance": ("performance", 0.8),
    "cache": ("performance", 0.7),
    "optimize": ("performance", 0.7),
    "error": ("debugging", 0.6),
    "bug": ("debugging", 0.7),
    "fix": ("debugging", 0.5),
    "debug": ("debugging", 0.8),
    "convention": ("standards", 0.7),
    "standard": ("standards", 0.7),
    "best practice": ("standards", 0.8),
}


def extract_tags(content: str) -> list[str]:
    """Distinct lower-cased technology and topic terms found in content."""
    tags: list[str] = []
    for pattern in _TECH_PATTERNS:
        tags.extend(m.group(0).lower() for m in pattern.finditer(content))
    return list(dict.fromkeys(tags))


# ═══════════════════════════════════════════════════════════
# CLASSIFIERS
# ═══════════════════════════════════════════════════════════


class CategoryClassifier(ABC):
    """Assigns a chunk to categories with relevance scores."""

    @abstractmethod
    async def classify(
        self, chunk: EnhancedChunk, categories: list[CategoryDefinition]
    ) -> list[CategoryClassification]:
        """
        Classify a chunk.

        Returns:
            Classifications sorted by relevance descending
        """
        pass


class HeuristicCategoryClassifier(CategoryClassifier):
    """
    Tag-overlap and keyword classifier.

    Tag matches give the base score; keyword hits add 30% of their weight to
    categories that already matched, or stand alone when strong enough.
    """

    def __init__(self, min_relevance: float = 0.4, max_categories: int = 3):
        self.min_relevance = min_relevance
        self.max_categories = max_categories

    def _keyword_matches(self, content: str) -> dict[str, CategoryClassification]:
        content_lower = content.lower()
        totals: dict[str, float] = {}
        reasons: dict[str, list[str]] = {}

        for keyword, (category, weight) in _KEYWORD_WEIGHTS.items():
            if keyword in content_lower:
                totals[category] = totals.get(category, 0.0) + weight
                reasons.setdefault(category, []).append(keyword)

        matches = {}
        for category, total in totals.items():
            score = min(1.0, total / 2)
            if score >= self.min_relevance:
                matches[category] = CategoryClassification(
                    category=category,
                    relevance_score=score,
                    reason=f"Keywords: {', '.join(reasons[category][:3])}",
                )
        return matches

    async def classify(
        self, chunk: EnhancedChunk, categories: list[CategoryDefinition]
    ) -> list[CategoryClassification]:
        tags = extract_tags(chunk.content)
        found: dict[str, CategoryClassification] = {}

        for definition in categories:
            score = score_category_match(tags, definition)
            if score >= self.min_relevance:
                matched = [t for t in definition.tags if any(t in tag for tag in tags)]
                found[definition.name] = CategoryClassification(
                    category=definition.name,
                    relevance_score=min(score, 1.0),
                    reason=f"Matched tags: {', '.join(matched)}",
                )

        known = {d.name for d in categories}
        for name, match in self._keyword_matches(chunk.content).items():
            if name not in known:
                continue
            if name in found:
                existing = found[name]
                existing.relevance_score = min(
                    1.0, existing.relevance_score + match.relevance_score * 0.3
                )
            else:
                found[name] = match

        ranked = sorted(found.values(), key=lambda c: (-c.relevance_score, c.category))
        return ranked[: self.max_categories]


class LLMCategoryClassifier(CategoryClassifier):
    """Structured-output classifier with heuristic fallback on LLM failure."""

    def __init__(
        self,
        llm: LLMProvider,
        min_relevance: float = 0.4,
        max_categories: int = 3,
    ):
        self.llm = llm
        self.min_relevance = min_relevance
        self.max_categories = max_categories
        self.fallback = HeuristicCategoryClassifier(min_relevance, max_categories)

    async def classify(
        self, chunk: EnhancedChunk, categories: list[CategoryDefinition]
    ) -> list[CategoryClassification]:
        listing = "\n".join(f"- {c.name}: {c.description}" for c in categories)
        prompt = f"""Classify this knowledge item into one or more categories.

## Item
Type: {chunk.chunk_type.value}
Content: {chunk.content[:2000]}

## Available Categories
{listing}

## Instructions
Return classifications with a relevance_score between 0.0 and 1.0 and a brief reason.
Only include categories with relevance_score above {self.min_relevance}.
Maximum {self.max_categories} categories."""

        try:
            response = await self.llm.complete(
                prompt, response_format=LLMClassificationResponse, temperature=0.3
            )
        except (LLMError, ValueError) as e:
            logger.warning(
                "LLM classification failed, falling back to heuristics: {error}",
                chunk_id=chunk.id,
                error=str(e),
            )
            return await self.fallback.classify(chunk, categories)

        known = {c.name for c in categories}
        ranked = sorted(
            (
                c
                for c in response.classifications
                if c.category in known and c.relevance_score >= self.min_relevance
            ),
            key=lambda c: (-c.relevance_score, c.category),
        )
        return ranked[: self.max_categories]


# ═══════════════════════════════════════════════════════════
# MANAGER
# ═══════════════════════════════════════════════════════════


class CategoryManager:
    """
    Manages category organisation and cached summaries.

    Provides:
    - Default category bootstrap
    - Chunk classification and assignment
    - Summary caching, invalidation and evolution
    - Query-based category selection
    """

    def __init__(
        self,
        store: MetadataStore,
        config: CategoryConfig | None = None,
        classifier: CategoryClassifier | None = None,
        llm: LLMProvider | None = None,
    ):
        """
        Args:
            store: Metadata store holding categories and assignments
            config: Category configuration
            classifier: Explicit classifier (default: LLM when enabled and available, else heuristic)
            llm: Optional LLM used for classification when enabled
        """
        self.store = store
        self.config = config or CategoryConfig()

        if classifier is not None:
            self.classifier = classifier
        elif self.config.use_llm_for_classification and llm is not None:
            self.classifier = LLMCategoryClassifier(
                llm, self.config.min_relevance_score, self.config.max_categories_per_chunk
            )
        else:
            self.classifier = HeuristicCategoryClassifier(
                self.config.min_relevance_score, self.config.max_categories_per_chunk
            )

        self._definitions: dict[str, CategoryDefinition] = {
            d.name: d for d in DEFAULT_CATEGORIES
        }
        self._initialized = False

    async def initialize(self) -> None:
        """Create the default categories that do not exist yet."""
        if self._initialized:
            return

        for definition in DEFAULT_CATEGORIES:
            if await self.store.get_category_by_name(definition.name) is None:
                await self.store.upsert_category(self._to_category(definition))

        self._initialized = True
        logger.debug(f"Category manager initialized with {len(self._definitions)} definitions")

    def _to_category(self, definition: CategoryDefinition) -> Category:
        return Category(
            id=category_id(definition.name),
            name=definition.name,
            description=definition.description,
            parent_id=category_id(definition.parent_name) if definition.parent_name else None,
        )

    async def create_category(self, definition: CategoryDefinition) -> Category:
        """Create (or redefine) a custom category."""
        await self.store.upsert_category(self._to_category(definition))
        self._definitions[definition.name] = definition
        return await self.store.get_category_by_name(definition.name)

    # ═══════════════════════════════════════════════════════════
    # CLASSIFICATION
    # ═══════════════════════════════════════════════════════════

    async def classify_chunk(self, chunk: EnhancedChunk) -> list[CategoryClassification]:
        await self.initialize()
        return await self.classifier.classify(chunk, list(self._definitions.values()))

    async def add_to_category(
        self, chunk_id: str, category_name: str, relevance_score: float
    ) -> bool:
        """Assign a chunk to a category by name; False if the category is unknown."""
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            logger.warning(f"Category not found: {category_name}")
            return False

        await self.store.assign_chunk_to_category(chunk_id, category.id, relevance_score)
        return True

    async def classify_and_assign(self, chunk: EnhancedChunk) -> list[CategoryClassification]:
        classifications = await self.classify_chunk(chunk)
        for classification in classifications:
            await self.add_to_category(
                chunk.id, classification.category, classification.relevance_score
            )
        return classifications

    async def get_category_items(
        self,
        category_name: str,
        limit: int | None = None,
        since: datetime | None = None,
        min_relevance: float | None = None,
        sort_by: SortBy = "date",
    ) -> list[CategoryItem]:
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            return []

        items = await self.store.get_category_chunks(category.id)

        if min_relevance is not None:
            items = [i for i in items if i.relevance_score >= min_relevance]
        if since is not None:
            items = [i for i in items if i.assigned_at >= since]

        if sort_by == "relevance":
            items.sort(key=lambda i: (-i.relevance_score, i.chunk_id))
        else:
            items.sort(key=lambda i: (i.assigned_at, i.chunk_id), reverse=True)

        return items[:limit] if limit is not None else items

    # ═══════════════════════════════════════════════════════════
    # SUMMARIES
    # ═══════════════════════════════════════════════════════════

    async def get_category_summary(self, category_name: str) -> str | None:
        """Cached summary, or None. Never generates one."""
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            return None
        return category.summary or None

    async def set_category_summary(self, category_name: str, summary: str) -> bool:
        """Store an externally generated summary."""
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            return False
        return await self.store.update_category_summary(category.id, summary)

    async def invalidate_summary(self, category_name: str) -> bool:
        """Drop the cached summary so it is regenerated on the next evolution."""
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            return False
        return await self.store.update_category_summary(category.id, None)

    async def evolve_summary(
        self, category_name: str, summarizer: LLMProvider | None = None
    ) -> SummaryEvolutionResult | None:
        """
        Refresh a category summary from its most recent items.

        Uses the summarizer LLM when given (falling back to a heuristic summary
        if it fails), else the heuristic summary.

        Returns:
            SummaryEvolutionResult, or None if the category does not exist
        """
        category = await self.store.get_category_by_name(category_name)
        if category is None:
            return None

        items = await self.get_category_items(
            category_name, limit=self.config.summary_max_items, sort_by="date"
        )

        if not items:
            return SummaryEvolutionResult(
                category_name=category_name,
                previous_summary=category.summary,
                new_summary=category.summary,
            )

        type_counts: dict[str, int] = {}
        item_lines = []
        for item in items:
            meta = await self.store.get_chunk_metadata(item.chunk_id)
            if meta is None:
                continue
            type_counts[meta.chunk_type.value] = type_counts.get(meta.chunk_type.value, 0) + 1
            item_lines.append(f"[{meta.chunk_type.value}] Relevance: {item.relevance_score:.2f}")

        new_summary = None
        had_contradictions = False
        if summarizer is not None:
            try:
                new_summary = await self._summarize_with_llm(summarizer, category, item_lines)
            except (LLMError, ValueError) as e:
                logger.warning(
                    "LLM summary evolution failed for {category}: {error}",
                    category=category_name,
                    error=str(e),
                )
            else:
                lowered = new_summary.lower()
                had_contradictions = any(
                    marker in lowered for marker in ("previously", "updated", "changed from")
                )

        if new_summary is None:
            new_summary = self._heuristic_summary(category, items, type_counts)

        await self.store.update_category_summary(category.id, new_summary)

        return SummaryEvolutionResult(
            category_name=category_name,
            previous_summary=category.summary,
            new_summary=new_summary,
            items_integrated=len(items),
            had_contradictions=had_contradictions,
        )

    def _heuristic_summary(
        self, category: Category, items: list[CategoryItem], type_counts: dict[str, int]
    ) -> str:
        breakdown = ", ".join(f"{count} {t}(s)" for t, count in sorted(type_counts.items()))
        avg_relevance = sum(i.relevance_score for i in items) / len(items)
        previous = (
            f"### Previous Summary\n{category.summary}"
            if category.summary
            else "No previous summary."
        )

        return (
            f"## {category.name}\n\n"
            f"**Items**: {category.chunk_count}\n"
            f"**Recent**: {len(items)} items ({breakdown})\n"
            f"**Avg Relevance**: {avg_relevance:.2f}\n\n"
            f"{previous}\n\n"
            f"*Last updated: {utcnow().isoformat()}*"
        )

    async def _summarize_with_llm(
        self, llm: LLMProvider, category: Category, item_lines: list[str]
    ) -> str:
        more = f"\n... and {len(item_lines) - 10} more items" if len(item_lines) > 10 else ""
        prompt = f"""You are maintaining the knowledge summary of one category.

## Category: {category.name}
{category.description or ""}

## Current Summary
{category.summary or "No existing summary."}

## New Items to Integrate ({len(item_lines)} items)
{chr(10).join(item_lines[:10])}{more}

## Instructions
1. Update the summary to incorporate new information
2. If new items conflict with the existing summary, reflect the latest state
3. Keep the summary concise (max 500 words)
4. Use markdown formatting
5. Focus on actionable knowledge, patterns and decisions

Return ONLY the updated summary markdown."""

        summary = await llm.complete(prompt, temperature=0.3)
        if not isinstance(summary, str) or not summary.strip():
            raise ValueError("Summarizer returned an empty summary")
        return summary.strip()

    # ═══════════════════════════════════════════════════════════
    # SELECTION & STATS
    # ═══════════════════════════════════════════════════════════

    async def select_relevant_categories(
        self,
        query: str,
        max_categories: int = 3,
        min_item_count: int = 1,
        include_summaries: bool = True,
    ) -> list[SelectedCategory]:
        """
        Categories most relevant to a query by name, description and tag overlap.

        Per query word (longer than 2 chars): +0.3 name, +0.2 description,
        +0.25 tag match; capped at 1.0.
        """
        await self.initialize()

        words = [w for w in query.lower().split() if len(w) > 2]
        selected = []

        for category in await self.store.list_categories():
            if category.chunk_count < min_item_count:
                continue

            definition = self._definitions.get(category.name)
            description = (
                definition.description if definition else category.description or ""
            ).lower()
            tags = definition.tags if definition else []

            relevance = 0.0
            for word in words:
                if word in category.name:
                    relevance += 0.3
                if word in description:
                    relevance += 0.2
                if any(t in word or word in t for t in tags):
                    relevance += 0.25

            if relevance > 0:
                selected.append(
                    SelectedCategory(
                        name=category.name,
                        relevance=min(1.0, relevance),
                        summary=category.summary if include_summaries else None,
                        item_count=category.chunk_count,
                    )
                )

        selected.sort(key=lambda s: (-s.relevance, s.name))
        return selected[:max_categories]

    async def get_all_categories_with_stats(self) -> list[CategoryWithStats]:
        results = []
        for category in await self.store.list_categories():
            items = await self.get_category_items(category.name, limit=100)
            definition = self._definitions.get(category.name)
            results.append(
                CategoryWithStats(
                    **category.model_dump(),
                    recent_item_count=len(items),
                    avg_relevance_score=(
                        sum(i.relevance_score for i in items) / len(items) if items else 0.0
                    ),
                    top_tags=definition.tags[:5] if definition else [],
                )
            )
        return results
