"""OpenAI-compatible chat and embedding adapter.

Most hosted and self-hosted LLM services (OpenAI, OpenRouter, DeepSeek,
vLLM, Ollama's ``/v1`` API) accept the same ``chat/completions`` and
``embeddings`` request shapes, so a single ``httpx`` client serves every
:class:`ModelConfig`.  The config carries the full endpoint URL, the
credential, and the generation parameters.

Embedding endpoints are less consistent: operators often paste the chat
URL into an embedding model's config.  :func:`derive_embedding_endpoints`
turns one configured URL into an ordered list of plausible candidates,
and :meth:`OpenAICompatibleProvider.embed` tries each in turn.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from lextrans.config.settings import Settings
from lextrans.interfaces.llm_provider import ILLMProvider
from lextrans.models.model_config import ChatCompletion, ChatMessage, ModelConfig, ModelStage
from lextrans.services.translation_prompts import load_default_system_prompt
from lextrans.utils.errors import EmbeddingError, LLMError

logger = structlog.get_logger(logger_name=__name__)

RAG_CONTEXT_HEADER = "Reference material (from the knowledge base):\n\n"
RAG_CONTEXT_SEPARATOR = "\n\n---\n\n"

# (old, new) substitutions applied to the configured URL's path, in priority order.
_EMBEDDING_PATH_REWRITES: tuple[tuple[str, str], ...] = (
    ("chat/completions", "embeddings"),
    ("/chat/completions", "/embeddings"),
    ("/messages", "/embeddings"),
    ("completions", "embeddings"),
)

_HEALTH_CHECK_TEXT = "health check"
_HEALTH_CHECK_PROMPT = 'Hello, please reply with "OK".'


def derive_embedding_endpoints(endpoint: str) -> list[str]:
    """Return candidate embedding URLs for a configured endpoint.

    Rewrites touch only the URL path; each one that applies contributes
    ``scheme://host[:port]/<rewritten path>`` (the query string is not
    carried over).  The configured URL itself is always tried last.
    Duplicates are dropped while preserving order.
    """
    url = httpx.URL(endpoint)
    origin = f"{url.scheme}://{url.netloc.decode('ascii')}"
    candidates: list[str] = []
    for old, new in _EMBEDDING_PATH_REWRITES:
        if old in url.path:
            candidates.append(origin + url.path.replace(old, new))
    candidates.append(endpoint)
    return list(dict.fromkeys(candidates))


def parse_embedding_response(data: Any) -> list[float] | None:
    """Extract the first embedding vector from a provider response body.

    Accepts the OpenAI shape (``{"data": [{"embedding": [...]}]}``), a bare
    list of items, and ``{"embedding": [...]}``.  Returns ``None`` when no
    vector can be found.
    """
    if isinstance(data, dict):
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            vector = items[0].get("embedding")
            if isinstance(vector, list):
                return [float(v) for v in vector]
        vector = data.get("embedding")
        if isinstance(vector, list):
            return [float(v) for v in vector]
    elif isinstance(data, list) and data and isinstance(data[0], dict):
        vector = data[0].get("embedding")
        if isinstance(vector, list):
            return [float(v) for v in vector]
    return None


def is_openrouter(endpoint: str) -> bool:
    return "openrouter.ai" in endpoint


class OpenAICompatibleProvider(ILLMProvider):
    """LLM adapter speaking the OpenAI wire format over ``httpx``.

    A single shared :class:`httpx.AsyncClient` is used for every model;
    per-call timeouts come from :class:`Settings`.  The client is owned by
    this adapter unless one is injected, and is closed by :meth:`aclose`.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(trust_env=settings.use_system_proxy)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def chat_complete(
        self,
        config: ModelConfig,
        messages: list[ChatMessage],
        rag_context: list[str] | None = None,
    ) -> ChatCompletion:
        """Send one chat completion and return its text and token usage."""
        payload = self.build_chat_payload(config, messages, rag_context)
        headers = self.build_headers(config)

        try:
            response = await self._client.post(
                config.api_endpoint,
                json=payload,
                headers=headers,
                timeout=self._settings.chat_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise self._chat_error(config, _describe_status_error(exc)) from exc
        except httpx.HTTPError as exc:
            raise self._chat_error(config, f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise self._chat_error(config, f"invalid JSON response: {exc}") from exc

        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise self._chat_error(config, "response has no choices[0].message") from exc

        usage = data.get("usage") or {}
        tokens_used = int(usage.get("total_tokens") or 0)
        logger.info(
            "chat_completion",
            model=config.model_id,
            stage=config.stage.value,
            tokens=tokens_used,
            rag_snippets=len(rag_context or []),
        )
        return ChatCompletion(text=content, tokens_used=tokens_used)

    async def embed(self, config: ModelConfig, text: str) -> list[float]:
        """Embed ``text``, trying each derived endpoint until one answers."""
        headers = self.build_headers(config)
        payload = {"model": config.model_id, "input": text}
        endpoints = derive_embedding_endpoints(config.api_endpoint)
        last_error = "no endpoint attempted"

        for endpoint in endpoints:
            try:
                response = await self._client.post(
                    endpoint,
                    json=payload,
                    headers=headers,
                    timeout=self._settings.embedding_timeout_seconds,
                )
                response.raise_for_status()
                vector = parse_embedding_response(response.json())
            except httpx.HTTPStatusError as exc:
                last_error = f"{endpoint}: {_describe_status_error(exc)}"
            except httpx.HTTPError as exc:
                last_error = f"{endpoint}: {type(exc).__name__}: {exc}"
            except ValueError as exc:
                last_error = f"{endpoint}: invalid JSON response: {exc}"
            else:
                if vector:
                    return vector
                last_error = f"{endpoint}: response contained no embedding"
            logger.debug("embedding_endpoint_failed", model=config.model_id, error=last_error)

        raise EmbeddingError(
            message=(
                f"embedding call failed for all {len(endpoints)} candidate "
                f"endpoint(s); last error: {last_error}"
            ),
            provider_name=config.name,
        )

    async def test_connection(self, config: ModelConfig) -> bool:
        """Probe a model with the cheapest meaningful request."""
        try:
            if config.stage is ModelStage.EMBEDDING:
                await self.embed(config, _HEALTH_CHECK_TEXT)
            else:
                await self.chat_complete(
                    config, [ChatMessage(role="user", content=_HEALTH_CHECK_PROMPT)]
                )
        except (LLMError, EmbeddingError) as exc:
            logger.warning("model_connection_test_failed", model=config.name, error=str(exc))
            return False
        return True

    def get_provider_name(self) -> str:
        return "openai-compatible"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def resolve_system_prompt(self, config: ModelConfig) -> str:
        """The config's own prompt, else the stage default."""
        if config.system_prompt.strip():
            return config.system_prompt
        return load_default_system_prompt(config.stage, self._settings.prompts_dir)

    def build_messages(
        self,
        config: ModelConfig,
        messages: list[ChatMessage],
        rag_context: list[str] | None = None,
    ) -> list[dict[str, str]]:
        """System prompt first, then RAG context, then the caller's messages."""
        built: list[dict[str, str]] = []
        system_prompt = self.resolve_system_prompt(config)
        if system_prompt:
            built.append({"role": "system", "content": system_prompt})
        if rag_context:
            built.append(
                {
                    "role": "system",
                    "content": RAG_CONTEXT_HEADER + RAG_CONTEXT_SEPARATOR.join(rag_context),
                }
            )
        built.extend({"role": m.role, "content": m.content} for m in messages)
        return built

    def build_chat_payload(
        self,
        config: ModelConfig,
        messages: list[ChatMessage],
        rag_context: list[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": config.model_id,
            "messages": self.build_messages(config, messages, rag_context),
        }
        payload.update(config.generation_params())
        # custom params win over the typed ones
        payload.update(config.custom_params)
        return payload

    def build_headers(self, config: ModelConfig) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        if is_openrouter(config.api_endpoint):
            headers["HTTP-Referer"] = self._settings.openrouter_referer
            headers["X-Title"] = self._settings.openrouter_title
            headers["Accept"] = "application/json"
        return headers

    def _chat_error(self, config: ModelConfig, detail: str) -> LLMError:
        logger.error(
            "chat_completion_failed",
            model=config.model_id,
            stage=config.stage.value,
            endpoint=config.api_endpoint,
            error=detail,
        )
        return LLMError(
            message=f"{config.stage.value} call to {config.api_endpoint} failed: {detail}",
            provider_name=config.name,
        )


def _describe_status_error(exc: httpx.HTTPStatusError) -> str:
    body = exc.response.text[:300] if exc.response is not None else ""
    return f"HTTP {exc.response.status_code}: {body}".rstrip(": ")
