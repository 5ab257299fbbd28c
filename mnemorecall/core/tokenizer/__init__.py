"""
Token counting used to price LLM sub-queries.
"""

from mnemorecall.core.tokenizer.tokenizer import Tokenizer

__all__ = ["Tokenizer"]
