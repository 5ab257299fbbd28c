"""
Token counting for cost accounting.

Uses tiktoken for exact OpenAI-compatible counts, or a character-ratio
approximation (the default) that needs no encoder download.
"""

import math

import tiktoken

from mnemorecall.config import TokenizerConfig


class Tokenizer:
    """
    Token counter.

    Usage:
        tokenizer = Tokenizer()
        count = tokenizer.count_tokens("Hello world")
    """

    def __init__(self, config: TokenizerConfig | None = None):
        self.config = config or TokenizerConfig()
        self._encoder: tiktoken.Encoding | None = None

    @property
    def encoder(self) -> tiktoken.Encoding:
        """Lazy-load the tiktoken encoder."""
        if self._encoder is None:
            self._encoder = tiktoken.get_encoding(self.config.model)
        return self._encoder

    def count_tokens(self, text: str) -> int:
        """
        Count tokens with the configured provider.

        Args:
            text: Text to count tokens for

        Returns:
            Token count (0 for empty text)
        """
        if not text:
            return 0

        if self.config.provider == "approximate":
            return self.estimate_tokens(text)

        return len(self.encoder.encode(text))

    def estimate_tokens(self, text: str) -> int:
        """Approximate token count: ceil(chars / chars_per_token)."""
        if not text:
            return 0
        return math.ceil(len(text) / self.config.chars_per_token)

    def truncate(self, text: str, max_tokens: int) -> str:
        """Cut text down to at most max_tokens tokens."""
        if self.count_tokens(text) <= max_tokens:
            return text

        if self.config.provider == "approximate":
            return text[: int(max_tokens * self.config.chars_per_token)]

        return self.encoder.decode(self.encoder.encode(text)[:max_tokens])
