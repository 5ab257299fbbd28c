"""
Factories that build collaborators from configuration.
"""

from mnemorecall.core.factory.embedder_factory import EmbedderFactory
from mnemorecall.core.factory.llm_factory import LLMFactory
from mnemorecall.core.factory.metadata_factory import MetadataStoreFactory
from mnemorecall.core.factory.vector_factory import VectorStoreFactory

__all__ = [
    "LLMFactory",
    "EmbedderFactory",
    "MetadataStoreFactory",
    "VectorStoreFactory",
]
