"""
In-process vector store using numpy cosine similarity.

Intended for local runs and tests; everything lives in memory.
"""

from typing import Any

import numpy as np

from mnemorecall.core.vector_store.base import VectorStore
from mnemorecall.models.retrieval import VectorDocument, VectorSearchHit
from mnemorecall.utils.exceptions import ValidationError, VectorStoreError


def _matches(metadata: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    for key, expected in filters.items():
        value = metadata.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search over documents held in a dict."""

    def __init__(self):
        self._documents: dict[str, VectorDocument] = {}
        self._vectors: dict[str, np.ndarray] = {}
        self._dimension: int | None = None

    async def initialize(self) -> None:
        pass

    async def add(self, documents: list[VectorDocument]) -> None:
        for doc in documents:
            if not doc.id:
                raise ValidationError("Document ID cannot be empty")
            if not doc.embedding:
                raise ValidationError("Document must have an embedding", {"id": doc.id})

            vector = np.asarray(doc.embedding, dtype=np.float64)
            if self._dimension is None:
                self._dimension = vector.shape[0]
            elif vector.shape[0] != self._dimension:
                raise VectorStoreError(
                    f"Embedding dimension {vector.shape[0]} != collection dimension {self._dimension}",
                    {"id": doc.id},
                )

            norm = np.linalg.norm(vector)
            self._vectors[doc.id] = vector / norm if norm > 0 else vector
            self._documents[doc.id] = doc

    async def search(
        self,
        embedding: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorSearchHit]:
        candidate_ids = [
            doc_id for doc_id, doc in self._documents.items() if _matches(doc.metadata, filters)
        ]
        if not candidate_ids or top_k <= 0:
            return []

        query = np.asarray(embedding, dtype=np.float64)
        norm = np.linalg.norm(query)
        if norm > 0:
            query = query / norm

        matrix = np.stack([self._vectors[doc_id] for doc_id in candidate_ids])
        scores = matrix @ query

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:top_k]

        hits = []
        for idx in order:
            doc = self._documents[candidate_ids[idx]]
            hits.append(
                VectorSearchHit(
                    id=doc.id,
                    content=doc.content,
                    score=float(scores[idx]),
                    metadata=dict(doc.metadata),
                )
            )
        return hits

    async def delete(self, ids: list[str]) -> None:
        for doc_id in ids:
            self._documents.pop(doc_id, None)
            self._vectors.pop(doc_id, None)

    async def count(self) -> int:
        return len(self._documents)

    async def close(self) -> None:
        self._documents.clear()
        self._vectors.clear()
