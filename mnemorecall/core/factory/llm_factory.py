"""
Factory for creating LLM providers.
"""

from mnemorecall.config import LLMConfig
from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.core.llm.ollama import OllamaLLM
from mnemorecall.core.llm.openai import OpenAILLM
from mnemorecall.utils.exceptions import ConfigurationError

# The shared default base_url points at Ollama; OpenAI then uses its own endpoint
_OLLAMA_DEFAULT_URL = "http://localhost:11434"


class LLMFactory:
    """Factory for creating LLM providers from configuration."""

    @staticmethod
    def create(config: LLMConfig) -> LLMProvider:
        """
        Create LLM provider from configuration.

        Raises:
            ConfigurationError: If the provider is unknown or misconfigured
        """
        if config.provider == "ollama":
            return OllamaLLM(
                host=config.base_url,
                model=config.model,
                timeout=config.timeout,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError("OpenAI API key is required")
            return OpenAILLM(
                api_key=config.api_key,
                model=config.model,
                base_url=None if config.base_url == _OLLAMA_DEFAULT_URL else config.base_url,
                timeout=config.timeout,
            )
        else:
            raise ConfigurationError(f"Unsupported LLM provider: {config.provider}")
