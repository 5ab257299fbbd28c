"""
Base interface for vector storage.

Stores VectorDocument records and answers nearest-neighbour queries with a
similarity score (higher is more similar).
"""

from abc import ABC, abstractmethod
from typing import Any

from mnemorecall.models.retrieval import VectorDocument, VectorSearchHit


class VectorStore(ABC):
    """Abstract base class for vector storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the vector store (create collections/indices).

        Raises:
            VectorStoreError: If initialization fails
        """
        pass

    @abstractmethod
    async def add(self, documents: list[VectorDocument]) -> None:
        """
        Store or replace documents with their embeddings.

        Raises:
            ValidationError: If a document has no id or embedding
            VectorStoreError: If the write fails
        """
        pass

    @abstractmethod
    async def search(
        self,
        embedding: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorSearchHit]:
        """
        Find the documents most similar to an embedding.

        Args:
            embedding: Query vector
            top_k: Maximum results
            filters: Optional metadata equality filters; a list value matches any element

        Returns:
            Hits ordered by similarity descending
        """
        pass

    @abstractmethod
    async def delete(self, ids: list[str]) -> None:
        """Delete documents by id (unknown ids are ignored)."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored documents."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection to the vector store."""
        pass
