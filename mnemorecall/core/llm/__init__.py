"""
LLM providers used for action proposal, sub-queries and classification.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""

from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.llm.ollama import OllamaLLM
from mnemorecall.core.llm.openai import OpenAILLM

__all__ = [
    "LLMProvider",
    "OllamaLLM",
    "OpenAILLM",
]
