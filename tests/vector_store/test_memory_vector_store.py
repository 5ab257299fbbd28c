"""
Tests for the in-memory vector store.
"""

import pytest

from mnemorecall.models.retrieval import VectorDocument
from mnemorecall.utils.exceptions import ValidationError, VectorStoreError


def _doc(doc_id, embedding, **metadata):
    return VectorDocument(id=doc_id, embedding=embedding, content=f"text {doc_id}", metadata=metadata)


@pytest.mark.unit
@pytest.mark.asyncio
class TestInMemoryVectorStore:
    """Cosine search over in-process documents."""

    async def test_search_orders_by_similarity(self, vector_store):
        await vector_store.add(
            [
                _doc("far", [0.0, 1.0]),
                _doc("near", [1.0, 0.1]),
                _doc("exact", [2.0, 0.0]),
            ]
        )

        hits = await vector_store.search([1.0, 0.0], top_k=2)

        assert [h.id for h in hits] == ["exact", "near"]
        assert hits[0].score == pytest.approx(1.0)

    async def test_filters(self, vector_store):
        await vector_store.add(
            [
                _doc("a", [1.0, 0.0], chunk_type="code"),
                _doc("b", [1.0, 0.0], chunk_type="solution"),
                _doc("c", [1.0, 0.0], chunk_type="pattern"),
            ]
        )

        hits = await vector_store.search([1.0, 0.0], filters={"chunk_type": ["code", "pattern"]})

        assert {h.id for h in hits} == {"a", "c"}

    async def test_upsert_replaces(self, vector_store):
        await vector_store.add([_doc("a", [1.0, 0.0])])
        await vector_store.add([_doc("a", [0.0, 1.0])])

        assert await vector_store.count() == 1
        hits = await vector_store.search([0.0, 1.0], top_k=1)
        assert hits[0].score == pytest.approx(1.0)

    async def test_dimension_mismatch(self, vector_store):
        await vector_store.add([_doc("a", [1.0, 0.0])])

        with pytest.raises(VectorStoreError):
            await vector_store.add([_doc("b", [1.0, 0.0, 0.0])])

    async def test_missing_embedding(self, vector_store):
        with pytest.raises(ValidationError):
            await vector_store.add([_doc("a", [])])

    async def test_delete(self, vector_store):
        await vector_store.add([_doc("a", [1.0, 0.0]), _doc("b", [0.0, 1.0])])

        await vector_store.delete(["a", "missing"])

        assert await vector_store.count() == 1
        assert [h.id for h in await vector_store.search([1.0, 0.0])] == ["b"]

    async def test_empty_search(self, vector_store):
        assert await vector_store.search([1.0, 0.0]) == []
