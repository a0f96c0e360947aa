"""Abstract base class for the model-configuration registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lextrans.models.model_config import ModelConfig, ModelStage


# Concrete implementation: SQLiteModelRegistry
# Located in: lextrans/providers/sqlite/
class IModelRegistry(ABC):
    """Contract for storing and resolving :class:`ModelConfig` records.

    Visibility follows the same ownership rules as knowledge bases: a
    requester sees models they own, public models, and everything when
    they are an admin or when no requester is given.
    """

    @abstractmethod
    async def get_enabled_models_for_stage(
        self,
        stage: ModelStage,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[ModelConfig]:
        """Return visible, effectively-enabled models for ``stage``.

        "Effectively enabled" applies the requester's per-user override on
        top of each model's base ``enabled`` flag.  Results are ordered by
        ``order_num`` then creation time.
        """

    @abstractmethod
    async def get_model_by_id(self, model_id: str) -> ModelConfig | None:
        """Return one model config (with its credential), or ``None``."""

    @abstractmethod
    async def list_models(
        self,
        requester_id: str | None = None,
        is_admin: bool = False,
        stage: ModelStage | None = None,
    ) -> list[ModelConfig]:
        """Return every visible model, optionally filtered by stage."""

    @abstractmethod
    async def create_model(self, config: ModelConfig) -> ModelConfig:
        """Insert a new model config and return it."""

    @abstractmethod
    async def update_model(self, model_id: str, **changes: Any) -> ModelConfig | None:
        """Apply ``changes`` to a model config; ``None`` if it does not exist."""

    @abstractmethod
    async def delete_model(self, model_id: str) -> bool:
        """Delete a model config; ``True`` if a row was removed."""

    @abstractmethod
    async def reorder_models(self, model_ids: list[str]) -> None:
        """Set ``order_num`` of each listed model to its position in the list."""

    @abstractmethod
    async def set_user_preference(self, user_id: str, model_id: str, enabled: bool) -> None:
        """Record a per-user enable/disable override for one model."""
