"""Abstract base classes for knowledge-base metadata and per-user preferences."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lextrans.models.knowledge import KnowledgeBase


# Concrete implementations: SQLiteKnowledgeBaseStore, SQLitePreferenceStore
# Located in: lextrans/providers/sqlite/
class IKnowledgeBaseStore(ABC):
    """Persistent CRUD for :class:`KnowledgeBase` metadata rows.

    Vectors are never stored here; the in-memory index is rebuilt from
    each row's source file on startup.
    """

    @abstractmethod
    async def insert(self, kb: KnowledgeBase) -> None:
        """Persist a new knowledge base row."""

    @abstractmethod
    async def get(self, kb_id: str) -> KnowledgeBase | None:
        """Return one knowledge base, or ``None``."""

    @abstractmethod
    async def list_all(self) -> list[KnowledgeBase]:
        """Return every knowledge base, newest first."""

    @abstractmethod
    async def update_visibility(self, kb_id: str, is_public: bool) -> KnowledgeBase | None:
        """Toggle the public flag; ``None`` if the row does not exist."""

    @abstractmethod
    async def delete(self, kb_id: str) -> bool:
        """Delete a row; ``True`` if one was removed."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored knowledge bases."""


class IPreferenceStore(ABC):
    """Per-user enable/disable overrides layered on owned resources."""

    @abstractmethod
    async def set_knowledge_base_preference(
        self, user_id: str, kb_id: str, enabled: bool
    ) -> None:
        """Upsert a knowledge-base override for ``user_id``."""

    @abstractmethod
    async def get_knowledge_base_preferences(self, user_id: str) -> dict[str, bool]:
        """Return ``{kb_id: enabled}`` overrides for ``user_id``."""

    @abstractmethod
    async def set_model_preference(self, user_id: str, model_id: str, enabled: bool) -> None:
        """Upsert a model override for ``user_id``."""

    @abstractmethod
    async def get_model_preferences(self, user_id: str) -> dict[str, bool]:
        """Return ``{model_id: enabled}`` overrides for ``user_id``."""
