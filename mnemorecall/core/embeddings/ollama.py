"""
Ollama embedder using the native ollama-python SDK.
"""

import ollama

from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.utils.exceptions import EmbeddingError, ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaEmbedder(Embedder):
    """
    Ollama embedder (nomic-embed-text, mxbai-embed-large, ...).

    Ollama serialises requests server-side; the inherited batch_embed still
    overlaps network round-trips.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 120.0,
        dimension: int | None = None,
    ):
        self.host = host
        self.model = model
        self.timeout = timeout
        self._dimension = dimension

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        try:
            response = await self.client.embeddings(model=self.model, prompt=text, **kwargs)
        except Exception as e:
            logger.error(
                "Ollama embedding error: {error}",
                model=self.model,
                host=self.host,
                error=str(e),
            )
            raise EmbeddingError(f"Ollama embedding error: {e}") from e

        embedding = response["embedding"] if response else None
        if not embedding:
            raise EmbeddingError(
                "Ollama returned invalid embedding response", {"model": self.model}
            )
        return list(embedding)

    async def get_dimension(self) -> int:
        """Embedding dimension, cached after the first probe."""
        if self._dimension is None:
            self._dimension = await super().get_dimension()
        return self._dimension
