"""
Ollama LLM provider using the native ollama-python SDK.
"""

import json

import ollama
from pydantic import BaseModel

from mnemorecall.core.llm.base import LLMProvider
from mnemorecall.utils.exceptions import LLMError, ValidationError
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaLLM(LLMProvider):
    """
    Ollama LLM provider.

    Structured output uses Ollama's JSON-schema `format` and is validated
    against the requested Pydantic model.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
    ):
        self.host = host
        self.model = model
        self.timeout = timeout

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

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

        options = {
            "temperature": temperature,
            "num_predict": max_tokens,
            **kwargs.pop("options", {}),
        }
        format_schema = response_format.model_json_schema() if response_format else None

        try:
            response = await self.client.chat(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                format=format_schema,
                options=options,
                **kwargs,
            )
        except Exception as e:
            logger.error(
                "Ollama chat error: {error}",
                model=self.model,
                host=self.host,
                error=str(e),
            )
            raise LLMError(f"Ollama chat error: {e}") from e

        content = response["message"]["content"] or ""

        if response_format is None:
            return content

        try:
            return response_format.model_validate_json(self._extract_json(content))
        except (ValueError, json.JSONDecodeError) as e:
            raise ValueError(
                f"Failed to parse structured output as {response_format.__name__}: {e}\n"
                f"Raw response (first 500 chars): {content[:500]}"
            ) from e

    def _extract_json(self, content: str) -> str:
        """Strip a markdown code fence around JSON, if any."""
        content = content.strip()

        if "```json" in content:
            content = content.split("```json")[1].split("```")[0].strip()
        elif "```" in content:
            content = content.split("```")[1].split("```")[0].strip()

        return content
