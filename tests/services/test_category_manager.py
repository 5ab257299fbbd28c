"""
Tests for CategoryManager and the category classifiers.
"""

import pytest

from mnemorecall.models import CategoryClassification, CategoryDefinition, ChunkType
from mnemorecall.models.categories import DEFAULT_CATEGORIES, LLMClassificationResponse
from mnemorecall.services.category_manager import (
    CategoryClassifier,
    CategoryManager,
    HeuristicCategoryClassifier,
    LLMCategoryClassifier,
    extract_tags,
)
from mnemorecall.utils.exceptions import LLMError

AUTH_BUG = "Fixed the JWT login bug in the oauth session"


class FixedClassifier(CategoryClassifier):
    """Mock classifier returning a preset answer."""

    def __init__(self, classifications):
        self.classifications = classifications

    async def classify(self, chunk, categories):
        return self.classifications


@pytest.fixture
async def manager(metadata_store):
    manager = CategoryManager(metadata_store)
    await manager.initialize()
    return manager


@pytest.mark.unit
@pytest.mark.asyncio
class TestClassifiers:
    """Heuristic and LLM classification."""

    async def test_extract_tags(self):
        assert extract_tags(AUTH_BUG) == ["jwt", "login", "oauth", "session", "bug"]

    async def test_heuristic_tags_and_keywords(self, make_chunk):
        classifier = HeuristicCategoryClassifier()

        result = await classifier.classify(make_chunk("c1", AUTH_BUG), DEFAULT_CATEGORIES)

        assert [c.category for c in result] == ["authentication", "debugging"]
        assert result[0].relevance_score == pytest.approx(1.0)
        assert result[0].reason.startswith("Matched tags:")
        # "log" matches "login": 2 of 5 tags, plus 30% of the 0.6 keyword score
        assert result[1].relevance_score == pytest.approx(0.58)

    async def test_heuristic_keywords_only(self, make_chunk):
        classifier = HeuristicCategoryClassifier()

        result = await classifier.classify(
            make_chunk("c1", "write the migration in sql"), DEFAULT_CATEGORIES
        )

        assert [c.category for c in result] == ["database"]
        assert result[0].relevance_score == pytest.approx(0.7)
        assert result[0].reason == "Keywords: migration, sql"

    async def test_heuristic_respects_limits(self, make_chunk):
        classifier = HeuristicCategoryClassifier(max_categories=1)

        result = await classifier.classify(make_chunk("c1", AUTH_BUG), DEFAULT_CATEGORIES)

        assert len(result) == 1

    async def test_heuristic_no_match(self, make_chunk):
        classifier = HeuristicCategoryClassifier()
        assert await classifier.classify(make_chunk("c1", "lunch at noon"), DEFAULT_CATEGORIES) == []

    async def test_llm_filters_unknown_and_weak(self, make_chunk, scripted_llm):
        llm = scripted_llm(
            [
                LLMClassificationResponse(
                    classifications=[
                        CategoryClassification(category="testing", relevance_score=0.5),
                        CategoryClassification(category="cooking", relevance_score=0.9),
                        CategoryClassification(category="api", relevance_score=0.2),
                        CategoryClassification(category="database", relevance_score=0.8),
                    ]
                )
            ]
        )
        classifier = LLMCategoryClassifier(llm)

        result = await classifier.classify(make_chunk("c1", "mock the db"), DEFAULT_CATEGORIES)

        assert [c.category for c in result] == ["database", "testing"]
        assert llm.calls[0]["format"] is LLMClassificationResponse
        assert llm.calls[0]["temperature"] == 0.3

    async def test_llm_failure_falls_back(self, make_chunk, scripted_llm):
        classifier = LLMCategoryClassifier(scripted_llm([LLMError("down")]))

        result = await classifier.classify(make_chunk("c1", AUTH_BUG), DEFAULT_CATEGORIES)

        assert result[0].category == "authentication"

    async def test_llm_error_with_json_body_falls_back(self, make_chunk, scripted_llm):
        error = LLMError('provider said {"error": "rate_limited"}')
        classifier = LLMCategoryClassifier(scripted_llm([error]))

        result = await classifier.classify(make_chunk("c1", AUTH_BUG), DEFAULT_CATEGORIES)

        assert result[0].category == "authentication"


@pytest.mark.unit
@pytest.mark.asyncio
class TestCategoryAssignment:
    """Category bootstrap and assignment."""

    async def test_initialize_creates_defaults(self, manager, metadata_store):
        categories = await metadata_store.list_categories()

        assert len(categories) == len(DEFAULT_CATEGORIES)
        assert (await metadata_store.get_category_by_name("api")).id == "cat:api"

    async def test_initialize_is_idempotent(self, manager, metadata_store):
        await manager.initialize()
        await CategoryManager(metadata_store).initialize()

        assert len(await metadata_store.list_categories()) == len(DEFAULT_CATEGORIES)

    async def test_classify_and_assign(self, manager, make_chunk):
        await manager.classify_and_assign(make_chunk("c1", AUTH_BUG))

        items = await manager.get_category_items("authentication")

        assert [i.chunk_id for i in items] == ["c1"]

    async def test_custom_classifier(self, metadata_store, make_chunk):
        manager = CategoryManager(
            metadata_store,
            classifier=FixedClassifier(
                [CategoryClassification(category="api", relevance_score=0.9)]
            ),
        )

        result = await manager.classify_and_assign(make_chunk("c1", "anything"))

        assert result[0].category == "api"
        assert (await manager.get_category_items("api"))[0].relevance_score == 0.9

    async def test_unknown_category(self, manager):
        assert await manager.add_to_category("c1", "astrology", 0.9) is False

    async def test_create_custom_category(self, manager, make_chunk):
        category = await manager.create_category(
            CategoryDefinition(
                name="billing",
                display_name="Billing",
                description="Invoices, payments, stripe",
                tags=["invoice", "payment", "stripe"],
            )
        )

        assert category.id == "cat:billing"
        assert await manager.add_to_category("c1", "billing", 0.7)

    async def test_item_filters_and_sorting(self, manager):
        await manager.add_to_category("c1", "api", 0.5)
        await manager.add_to_category("c2", "api", 0.9)
        await manager.add_to_category("c3", "api", 0.3)

        by_relevance = await manager.get_category_items("api", sort_by="relevance")
        filtered = await manager.get_category_items("api", min_relevance=0.4, limit=1)

        assert [i.chunk_id for i in by_relevance] == ["c2", "c1", "c3"]
        assert len(filtered) == 1
        assert await manager.get_category_items("missing") == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestSummaries:
    """Summary cache and evolution."""

    async def test_summary_cache(self, manager):
        assert await manager.get_category_summary("api") is None

        await manager.set_category_summary("api", "## api\nREST conventions")
        assert await manager.get_category_summary("api") == "## api\nREST conventions"

        await manager.invalidate_summary("api")
        assert await manager.get_category_summary("api") is None

    async def test_redefining_category_keeps_summary(self, manager):
        await manager.set_category_summary("api", "## api\nREST conventions")

        await manager.create_category(
            CategoryDefinition(
                name="api",
                display_name="API",
                description="HTTP endpoints and clients",
                tags=["endpoint", "rest"],
            )
        )

        assert await manager.get_category_summary("api") == "## api\nREST conventions"

    async def test_evolve_unknown_category(self, manager):
        assert await manager.evolve_summary("astrology") is None

    async def test_evolve_without_items_keeps_summary(self, manager):
        await manager.set_category_summary("api", "old summary")

        result = await manager.evolve_summary("api")

        assert result.new_summary == "old summary"
        assert result.items_integrated == 0

    async def test_heuristic_evolution(self, manager, add_chunk):
        await add_chunk("c1", chunk_type=ChunkType.SOLUTION)
        await add_chunk("c2", chunk_type=ChunkType.CODE)
        await manager.add_to_category("c1", "api", 0.8)
        await manager.add_to_category("c2", "api", 0.6)

        result = await manager.evolve_summary("api")

        assert result.items_integrated == 2
        assert result.new_summary.startswith("## api")
        assert "**Recent**: 2 items (1 code(s), 1 solution(s))" in result.new_summary
        assert "**Avg Relevance**: 0.70" in result.new_summary
        assert "No previous summary." in result.new_summary
        assert await manager.get_category_summary("api") == result.new_summary

    async def test_llm_evolution(self, manager, add_chunk, scripted_llm):
        await add_chunk("c1")
        await manager.add_to_category("c1", "api", 0.8)
        llm = scripted_llm(["  ## api\nEndpoints were updated to v2.  "])

        result = await manager.evolve_summary("api", summarizer=llm)

        assert result.new_summary == "## api\nEndpoints were updated to v2."
        assert result.had_contradictions is True
        assert "## Category: api" in llm.prompts[0]

    async def test_llm_failure_uses_heuristic(self, manager, add_chunk, scripted_llm):
        await add_chunk("c1")
        await manager.add_to_category("c1", "api", 0.8)

        result = await manager.evolve_summary("api", summarizer=scripted_llm([LLMError("x")]))

        assert result.new_summary.startswith("## api")
        assert result.had_contradictions is False


@pytest.mark.unit
@pytest.mark.asyncio
class TestSelection:
    """Query-based selection and stats."""

    async def test_select_relevant_categories(self, manager):
        await manager.add_to_category("c1", "authentication", 0.9)
        await manager.add_to_category("c2", "database", 0.9)
        await manager.set_category_summary("authentication", "auth summary")

        selected = await manager.select_relevant_categories("how do we handle jwt auth")

        assert selected[0].name == "authentication"
        assert selected[0].relevance == 1.0
        assert selected[0].summary == "auth summary"
        assert "database" not in [s.name for s in selected]

    async def test_empty_categories_skipped(self, manager):
        assert await manager.select_relevant_categories("jwt auth") == []

    async def test_stats(self, manager):
        await manager.add_to_category("c1", "api", 0.8)
        await manager.add_to_category("c2", "api", 0.4)

        stats = {s.name: s for s in await manager.get_all_categories_with_stats()}

        assert stats["api"].recent_item_count == 2
        assert stats["api"].avg_relevance_score == pytest.approx(0.6)
        assert stats["api"].top_tags == ["api", "rest", "graphql", "endpoint", "http"]
        assert stats["testing"].recent_item_count == 0
