"""
OpenAI LLM provider using the official SDK.
"""

from openai import AsyncOpenAI
from pydantic import BaseModel

from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.utils.exceptions import LLMError, ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAILLM(LLMProvider):
    """
    OpenAI LLM provider with native structured output (Parse API).
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        params = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        }

        try:
            if response_format:
                response = await self.client.beta.chat.completions.parse(
                    **params, response_format=response_format
                )
                parsed = response.choices[0].message.parsed
            else:
                response = await self.client.chat.completions.create(**params)
                content = response.choices[0].message.content
        except Exception as e:
            logger.error(
                "OpenAI API error: {error}",
                model=self.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise LLMError(f"OpenAI API error: {e}") from e

        if response_format:
            if parsed is None:
                raise ValueError(f"OpenAI returned no parsed {response_format.__name__}")
            return parsed

        if not content:
            raise LLMError("OpenAI returned empty content", {"model": self.model})
        return content

    async def close(self) -> None:
        await self.client.close()
