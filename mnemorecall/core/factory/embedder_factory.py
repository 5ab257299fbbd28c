"""
Factory for creating embedder providers.
"""

from mnemorecall.config import EmbedderConfig
from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.core.embeddings.ollama import OllamaEmbedder
from mnemorecall.core.embeddings.openai import OpenAIEmbedder
from mnemorecall.utils.exceptions import ConfigurationError

_OLLAMA_DEFAULT_URL = "http://localhost:11434"


class EmbedderFactory:
    """Factory for creating embedder providers from configuration."""

    @staticmethod
    def create(config: EmbedderConfig) -> Embedder:
        """
        Create embedder from configuration.

        Raises:
            ConfigurationError: If the provider is unknown or misconfigured
        """
        if config.provider == "ollama":
            return OllamaEmbedder(
                host=config.base_url,
                model=config.model,
                timeout=config.timeout,
                dimension=config.dimension,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError("OpenAI API key is required")
            return OpenAIEmbedder(
                api_key=config.api_key,
                model=config.model,
                base_url=None if config.base_url == _OLLAMA_DEFAULT_URL else config.base_url,
                timeout=config.timeout,
                dimension=config.dimension,
            )
        else:
            raise ConfigurationError(f"Unsupported embedder provider: {config.provider}")

    @staticmethod
    async def get_dimension(embedder: Embedder, config: EmbedderConfig | None = None) -> int:
        """Embedding dimension: configured value first, else asked from the embedder."""
        if config and config.dimension:
            return config.dimension
        return await embedder.get_dimension()
