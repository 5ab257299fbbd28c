"""
Factory for creating vector store backends.
"""

from urllib.parse import urlparse

from mnemorecall.config import Config
from mnemorecall.core.vector_store.base import VectorStore
from mnemorecall.core.vector_store.memory import InMemoryVectorStore
from mnemorecall.core.vector_store.qdrant import QdrantStore
from mnemorecall.utils.exceptions import ConfigurationError


class VectorStoreFactory:
    """Factory for creating vector store backends from configuration."""

    @staticmethod
    def create(config: Config, vector_size: int) -> VectorStore:
        """
        Create vector store from configuration.

        Args:
            config: Main configuration object
            vector_size: Embedding dimension size

        Raises:
            ConfigurationError: If backend is not supported
        """
        if config.vector_backend == "memory":
            return InMemoryVectorStore()
        elif config.vector_backend == "qdrant":
            parsed = urlparse(config.qdrant.url)
            return QdrantStore(
                host=parsed.hostname or "localhost",
                port=parsed.port or 6333,
                collection_name=config.qdrant.collection_name,
                vector_size=vector_size,
                use_grpc=config.qdrant.use_grpc,
                use_quantization=config.qdrant.use_quantization,
                hnsw_m=config.qdrant.hnsw_m,
                hnsw_ef_construct=config.qdrant.hnsw_ef_construct,
                on_disk=config.qdrant.on_disk,
                timeout=config.qdrant.timeout,
            )
        else:
            raise ConfigurationError(f"Unsupported vector backend: {config.vector_backend}")
