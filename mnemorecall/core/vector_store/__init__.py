"""
Vector-search backends.

Provides the abstract base plus a Qdrant implementation and a numpy-backed
in-memory implementation for local use.
"""

from mnemorecall.core.vector_store.base import VectorStore
from mnemorecall.core.vector_store.memory import InMemoryVectorStore
from mnemorecall.core.vector_store.qdrant import QdrantStore

__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "QdrantStore",
]
