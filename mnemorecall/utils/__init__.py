"""Utility modules for mnemorecall."""

from mnemorecall.utils.exceptions import (
    BudgetExceededError,
    ConfigurationError,
    EmbeddingError,
    LLMError,
    MetadataStoreError,
    MnemoRecallError,
    NotFoundError,
    RetrievalLimitError,
    RetrievalTimeoutError,
    StoreError,
    SubCallLimitError,
    ValidationError,
    VectorStoreError,
)
from mnemorecall.utils.id_generator import (
    category_id,
    category_item_id,
    conversation_marker_id,
    generate_chunk_id,
    generate_session_id,
)
from mnemorecall.utils.logger import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
    # ID Generators
    "generate_chunk_id",
    "generate_session_id",
    "category_id",
    "category_item_id",
    "conversation_marker_id",
    # Exceptions
    "MnemoRecallError",
    "StoreError",
    "MetadataStoreError",
    "VectorStoreError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "EmbeddingError",
    "LLMError",
    "RetrievalLimitError",
    "BudgetExceededError",
    "SubCallLimitError",
    "RetrievalTimeoutError",
]
