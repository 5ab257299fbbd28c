"""
Custom exception hierarchy for mnemorecall.

Provides structured error types for storage, collaborator and retrieval
failures. All exceptions inherit from MnemoRecallError for easy catching.
"""


class MnemoRecallError(Exception):
    """
    Base exception for all mnemorecall errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize mnemorecall error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class StoreError(MnemoRecallError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    pass


class MetadataStoreError(StoreError):
    """
    Metadata store operation errors.
    Raised when the durable chunk-metadata store fails.
    """

    pass


class VectorStoreError(StoreError):
    """
    Vector store operation errors.
    Raised when vector database operations fail.
    """

    pass


class ValidationError(MnemoRecallError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    pass


class NotFoundError(MnemoRecallError):
    """
    Resource not found errors.
    Raised when a requested resource (chunk, category, etc.) doesn't exist.
    """

    pass


class ConfigurationError(MnemoRecallError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class EmbeddingError(MnemoRecallError):
    """
    Embedding generation errors.
    Raised when embedding generation fails.
    """

    pass


class LLMError(MnemoRecallError):
    """
    LLM operation errors.
    Raised when LLM operations fail (API errors, timeouts, etc.).
    """

    pass


class RetrievalLimitError(MnemoRecallError):
    """
    A retrieval session ran out of budget.
    Carries the termination reason reported in the retrieval result.
    """

    reason: str = "Budget exceeded"


class BudgetExceededError(RetrievalLimitError):
    """Cost budget would be exceeded by the next sub-query."""

    reason = "Budget exceeded"


class SubCallLimitError(RetrievalLimitError):
    """Maximum number of sub-queries reached."""

    reason = "Sub-call limit exceeded"


class RetrievalTimeoutError(RetrievalLimitError):
    """Wall-clock timeout of the session elapsed."""

    reason = "Timeout"
