"""Custom exception hierarchy for LexTrans.

All application exceptions inherit from :class:`LexTransError`, which
carries an optional ``provider_name`` so error handlers can identify which
model configuration or external service caused the failure.

    LexTransError  (base -- catch-all for any LexTrans error)
    +-- ConfigurationError         (missing / invalid configuration)
    |   +-- NoModelsAvailableError (a required stage has no enabled models)
    |   +-- ModelNotFoundError     (a referenced model config does not exist)
    +-- InvalidInputError          (empty text, mismatched vector lengths)
    +-- ExtractionError            (document text extraction failed)
    +-- LLMError                   (chat completion call failed)
    +-- RAGError                   (embedding / retrieval failure)
    |   +-- EmbeddingError         (every embedding endpoint failed)
    +-- KnowledgeBaseNotFoundError
    +-- PermissionDeniedError

Configuration and validation errors terminate a request.  Provider errors
(``LLMError``, ``EmbeddingError``) are raised by the adapter layer and the
caller decides whether to tolerate them.
"""


class LexTransError(Exception):
    """Base exception for all LexTrans errors.

    ``__str__`` prefixes the provider name in brackets for structured log
    output, e.g. ``[gpt-4o] translation call to https://... failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(LexTransError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NoModelsAvailableError(ConfigurationError):
    """Raised when a required pipeline stage has no enabled models."""

    def __init__(self, stage: str, message: str | None = None) -> None:
        self.stage = stage
        super().__init__(
            message=message or f"No enabled {stage} models are available"
        )


class ModelNotFoundError(ConfigurationError):
    """Raised when a model configuration id cannot be resolved."""

    def __init__(self, model_id: str, message: str | None = None) -> None:
        self.model_id = model_id
        super().__init__(message=message or f"Model config not found: {model_id}")


# ---------------------------------------------------------------------------
# Input / extraction errors
# ---------------------------------------------------------------------------

class InvalidInputError(LexTransError):
    """Raised for caller-supplied input that can never succeed."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(LexTransError):
    """Raised when text cannot be extracted from an uploaded document."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class LLMError(LexTransError):
    """Raised when an LLM API call fails or returns an unparseable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RAGError(LexTransError):
    """Raised when a RAG operation fails (embedding or retrieval)."""

    def __init__(
        self,
        message: str = "RAG operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(RAGError):
    """Raised when every candidate embedding endpoint failed."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Resource errors
# ---------------------------------------------------------------------------

class KnowledgeBaseNotFoundError(LexTransError):
    """Raised when a knowledge base id does not exist."""

    def __init__(self, kb_id: str) -> None:
        self.kb_id = kb_id
        super().__init__(message=f"Knowledge base not found: {kb_id}")


class PermissionDeniedError(LexTransError):
    """Raised when a requester may not modify a resource they do not own."""

    def __init__(
        self,
        message: str = "Permission denied",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
