"""Abstract base class for LLM provider adapters.

One adapter serves every configured model: the :class:`ModelConfig`
passed to each call carries the endpoint, credential and generation
parameters, so call-sites stay provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from lextrans.models.model_config import ChatCompletion, ChatMessage, ModelConfig


# Concrete implementation: OpenAICompatibleProvider
# Located in: lextrans/providers/llm/
class ILLMProvider(ABC):
    """Contract for chat-completion and embedding calls against a model config."""

    @abstractmethod
    async def chat_complete(
        self,
        config: ModelConfig,
        messages: list[ChatMessage],
        rag_context: list[str] | None = None,
    ) -> ChatCompletion:
        """Send a chat completion request for ``config``.

        Parameters
        ----------
        config:
            The model to call.  Its ``system_prompt`` (or the stage default
            when empty) is sent as the first message.
        messages:
            The caller's conversation messages.
        rag_context:
            Optional knowledge-base snippets, injected as a system message
            ahead of ``messages``.

        Returns
        -------
        ChatCompletion
            The response text and total tokens used.

        Raises
        ------
        lextrans.utils.errors.LLMError
            If the request fails or the response cannot be parsed.  The
            message names the stage and endpoint.
        """

    @abstractmethod
    async def embed(self, config: ModelConfig, text: str) -> list[float]:
        """Turn ``text`` into a vector using an embedding-capable model.

        Returns
        -------
        list[float]
            The embedding vector.

        Raises
        ------
        lextrans.utils.errors.EmbeddingError
            If every candidate endpoint derived from ``config`` failed.
        """

    @abstractmethod
    async def test_connection(self, config: ModelConfig) -> bool:
        """Send a minimal probe request; ``True`` if the model answered."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this adapter."""
