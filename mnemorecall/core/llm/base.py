"""
Abstract base class for LLM providers.
Handles text generation with optional structured outputs.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class LLMProvider(ABC):
    """
    Abstract base for LLM text generation providers.

    The retrieval controller asks it for the next action and for focused
    sub-query answers; the category manager may ask it for structured
    classifications.
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion from prompt.

        Args:
            prompt: The input prompt
            response_format: Optional Pydantic model for structured output
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            Pydantic model instance if response_format provided, else string

        Raises:
            LLMError: If the provider call fails
            ValueError: If structured output cannot be parsed
        """
        pass

    async def close(self) -> None:
        """Release provider resources."""
        pass
