"""LLM provider adapters."""

from lextrans.providers.llm.openai_compatible_provider import (
    OpenAICompatibleProvider,
    derive_embedding_endpoints,
    parse_embedding_response,
)

__all__ = [
    "OpenAICompatibleProvider",
    "derive_embedding_endpoints",
    "parse_embedding_response",
]
