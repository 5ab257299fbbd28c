"""Shared fixtures for mnemorecall tests.

Fixtures use function scope so every test gets isolated instances:
a temp-file SQLite metadata store, an in-memory vector store, a
deterministic embedder and a scripted LLM.
"""

import hashlib
import math
import re
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta

import pytest
from pydantic import BaseModel

from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.metadata_store import SQLiteMetadataStore
from mnemorecall.core.vector_store import InMemoryVectorStore
from mnemorecall.models.chunk import ChunkMetadataPatch, ChunkType, utcnow
from mnemorecall.models.retrieval import EnhancedChunk

# Test doubles


class HashEmbedder(Embedder):
    """
    Deterministic bag-of-words embedder.

    Each lower-cased word is hashed into one of `dimension` buckets, so texts
    sharing words have a positive cosine similarity.
    """

    def __init__(self, dimension: int = 64):
        self.dimension = dimension
        self.calls: list[str] = []

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimension
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]


class ScriptedLLM(LLMProvider):
    """
    LLM double that replays scripted responses in order.

    The last response repeats once the script is exhausted. A response may be
    an exception instance, which is raised instead.
    """

    def __init__(self, responses: list | None = None):
        self.responses = list(responses or ["ok"])
        self.prompts: list[str] = []
        self.calls: list[dict] = []

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        self.prompts.append(prompt)
        self.calls.append(
            {"max_tokens": max_tokens, "temperature": temperature, "format": response_format}
        )

        index = min(len(self.prompts) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


# Fixtures


@pytest.fixture
async def metadata_store(tmp_path) -> AsyncGenerator:
    """Initialized SQLite metadata store in a temp directory."""
    store = SQLiteMetadataStore(str(tmp_path / "metadata.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def vector_store() -> AsyncGenerator:
    store = InMemoryVectorStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder()


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLM]:
    """Factory: scripted_llm(["response 1", "response 2"])."""
    return ScriptedLLM


@pytest.fixture
def add_chunk(metadata_store) -> Callable:
    """Insert chunk metadata aged `age_days` days."""

    async def _add(
        chunk_id: str,
        age_days: float = 0.0,
        chunk_type: ChunkType = ChunkType.DOCUMENTATION,
        importance: float = 0.5,
        decay_score: float = 1.0,
        access_count: int = 0,
        last_accessed_at: datetime | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        await metadata_store.upsert_chunk_metadata(
            ChunkMetadataPatch(
                chunk_id=chunk_id,
                chunk_type=chunk_type,
                created_at=now - timedelta(days=age_days),
                importance=importance,
                decay_score=decay_score,
                access_count=access_count,
                last_accessed_at=last_accessed_at,
            )
        )

    return _add


@pytest.fixture
def make_chunk() -> Callable[..., EnhancedChunk]:
    """Factory: make_chunk("c1", "text", chunk_type=...)."""

    def _make(chunk_id: str, content: str = "", **kwargs) -> EnhancedChunk:
        return EnhancedChunk(id=chunk_id, content=content or f"content of {chunk_id}", **kwargs)

    return _make
