"""
Text embedding providers used to vectorise queries and chunks.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""

from mnemorecall.core.embeddings.base import Embedder
from mnemorecall.core.embeddings.ollama import OllamaEmbedder
from mnemorecall.core.embeddings.openai import OpenAIEmbedder

__all__ = [
    "Embedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
]
