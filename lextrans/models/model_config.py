"""Model-configuration data models.

A :class:`ModelConfig` describes one upstream LLM endpoint and the pipeline
stage it serves.  Embedding-capable models carry the ``embedding`` stage
tag and are referenced by knowledge bases; the other three tags drive the
translate -> review -> synthesize pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModelStage(str, Enum):
    """Pipeline stage (or embedding capability) a model is configured for."""

    TRANSLATION = "translation"
    REVIEW = "review"
    SYNTHESIS = "synthesis"
    EMBEDDING = "embedding"


class ModelConfig(BaseModel):
    """One configured upstream model, as stored in the model registry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    stage: ModelStage
    api_endpoint: str = Field(description="Full URL of the chat or embedding endpoint.")
    api_key: str = ""
    model_id: str = Field(description="Upstream model identifier sent in the request body.")
    system_prompt: str = ""

    # Optional generation parameters -- omitted from the request when None.
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    custom_params: dict[str, Any] = Field(default_factory=dict)

    enabled: bool = True
    order_num: int = 0
    stream_enabled: bool = False
    owner_user_id: str | None = None
    is_public: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def generation_params(self) -> dict[str, Any]:
        """Return the numeric generation parameters that are set."""
        params = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        return {key: value for key, value in params.items() if value is not None}


class ChatMessage(BaseModel):
    """A single message in a chat-completion conversation."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class ChatCompletion(BaseModel):
    """Text and token usage returned by a chat-completion call."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    tokens_used: int = 0
