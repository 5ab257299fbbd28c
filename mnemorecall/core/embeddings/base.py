"""
Abstract base class for embedding providers.
"""

import asyncio
from abc import ABC, abstractmethod


class Embedder(ABC):
    """
    Abstract base for embedding providers.

    The retrieval controller only needs `embed`; batch embedding is used
    when chunks are indexed in bulk.
    """

    @abstractmethod
    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding vector for text.

        Raises:
            ValidationError: If text is empty
            EmbeddingError: If embedding generation fails
        """
        pass

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """
        Embed many texts, `batch_size` concurrent requests at a time.

        Returns:
            Embedding vectors in input order
        """
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            embeddings.extend(await asyncio.gather(*(self.embed(t, **kwargs) for t in batch)))
        return embeddings

    async def get_dimension(self) -> int:
        """Embedding dimension, found by embedding a probe string."""
        return len(await self.embed("dimension probe"))

    async def close(self) -> None:
        """Release provider resources."""
        pass
