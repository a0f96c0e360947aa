"""Utility modules for LexTrans.

- **errors** -- Domain exception hierarchy rooted at LexTransError.
- **concurrency** -- a bounded worker pool.
- **logging** -- structlog setup with console output in development and
  structured JSON in production.
"""

from lextrans.utils.concurrency import map_with_concurrency
from lextrans.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    InvalidInputError,
    KnowledgeBaseNotFoundError,
    LexTransError,
    LLMError,
    ModelNotFoundError,
    NoModelsAvailableError,
    PermissionDeniedError,
    RAGError,
)
from lextrans.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "InvalidInputError",
    "KnowledgeBaseNotFoundError",
    "LLMError",
    "LexTransError",
    "ModelNotFoundError",
    "NoModelsAvailableError",
    "PermissionDeniedError",
    "RAGError",
    "configure_logging",
    "get_logger",
    "map_with_concurrency",
]
