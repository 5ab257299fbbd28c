"""
OpenAI embedder using the official SDK.
"""

from openai import AsyncOpenAI

from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.utils.exceptions import EmbeddingError, ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAIEmbedder(Embedder):
    """
    OpenAI embedder with native batch requests.

    Supports text-embedding-3-small, text-embedding-3-large and compatible
    endpoints reachable through base_url.
    """

    _MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        timeout: float = 120.0,
        dimension: int | None = None,
    ):
        self.model = model
        self._dimension = dimension
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        vectors = await self._create([text], **kwargs)
        return vectors[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = 2048, **kwargs
    ) -> list[list[float]]:
        """Embed texts in requests of up to `batch_size` inputs (OpenAI max 2048)."""
        if not texts:
            return []

        embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            embeddings.extend(await self._create(texts[i : i + batch_size], **kwargs))
        return embeddings

    async def _create(self, inputs: list[str], **kwargs) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(
                model=self.model, input=inputs, **kwargs
            )
        except Exception as e:
            logger.error(
                "OpenAI embedding error: {error}",
                model=self.model,
                num_texts=len(inputs),
                error=str(e),
            )
            raise EmbeddingError(f"OpenAI embedding error: {e}") from e

        if not response.data or len(response.data) != len(inputs):
            raise EmbeddingError("OpenAI returned an incomplete embedding response")
        return [item.embedding for item in response.data]

    async def get_dimension(self) -> int:
        if self._dimension is not None:
            return self._dimension
        if self.model in self._MODEL_DIMENSIONS:
            return self._MODEL_DIMENSIONS[self.model]
        return await super().get_dimension()

    async def close(self) -> None:
        await self.client.close()
