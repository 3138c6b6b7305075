"""Custom exceptions for the application."""

from typing import List, Optional, Sequence, Tuple


class RAGError(Exception):
    """Base class for all service errors."""

    pass


class ConfigurationError(RAGError):
    """Raised when no usable provider is configured."""

    pass


class ProviderError(RAGError):
    """Raised when a single provider call fails."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderQuotaError(ProviderError):
    """Raised when a provider rejects a call for lack of credits or quota."""

    def __init__(
        self,
        provider: str,
        message: str,
        affordable_tokens: Optional[int] = None,
        suggested_max_tokens: Optional[int] = None,
    ) -> None:
        super().__init__(provider, message)
        self.affordable_tokens = affordable_tokens
        self.suggested_max_tokens = suggested_max_tokens


class _FallbackExhaustedError(RAGError):
    """Raised when every eligible provider failed."""

    capability = "operation"

    def __init__(self, failures: Sequence[Tuple[str, str]]) -> None:
        self.failures: List[Tuple[str, str]] = list(failures)
        details = "\n".join(
            f"{provider} error: {reason}" for provider, reason in self.failures)
        names = ", ".join(provider for provider, _ in self.failures)
        super().__init__(
            f"All {self.capability} providers failed ({names}).\n{details}")


class EmbeddingError(_FallbackExhaustedError):
    """Raised when embedding generation fails on every provider."""

    capability = "embedding"


class LLMError(_FallbackExhaustedError):
    """Raised when response generation fails on every provider."""

    capability = "generation"


class VectorStoreError(RAGError):
    """Raised when vector store operations fail."""

    pass


class DocumentNotFoundError(VectorStoreError):
    """Raised when a search targets an unknown document."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class WorkflowError(RAGError):
    """Raised when a workflow graph cannot be executed."""

    pass


class WorkflowValidationError(WorkflowError):
    """Raised when a workflow node is missing required data."""

    pass


class DocumentProcessingError(RAGError):
    """Raised when an uploaded document cannot be turned into text."""

    pass


def error_message(error: BaseException) -> str:
    """
    Normalize an exception into a user-facing message string.

    Args:
        error: Any exception.

    Returns:
        Non-empty message text.
    """
    message = str(error).strip()
    if message:
        return message
    return error.__class__.__name__
