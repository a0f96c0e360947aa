"""SQLite-backed model-configuration registry.

Rows are filtered in Python through :mod:`lextrans.services.knowledge.access`
so that model visibility and per-user enablement follow exactly the same
rules as knowledge bases.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from lextrans.interfaces.knowledge_base_store import IPreferenceStore
from lextrans.interfaces.model_registry import IModelRegistry
from lextrans.models.model_config import ModelConfig, ModelStage
from lextrans.services.knowledge.access import effective_enabled, is_visible
from lextrans.utils.errors import InvalidInputError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_MODEL_CONFIGS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS model_configs (
    id                 TEXT    PRIMARY KEY,
    name               TEXT    NOT NULL,
    stage              TEXT    NOT NULL,
    api_endpoint       TEXT    NOT NULL,
    api_key            TEXT    NOT NULL DEFAULT '',
    model_id           TEXT    NOT NULL,
    system_prompt      TEXT    NOT NULL DEFAULT '',
    temperature        REAL,
    max_tokens         INTEGER,
    top_p              REAL,
    frequency_penalty  REAL,
    presence_penalty   REAL,
    custom_params      TEXT,
    enabled            INTEGER NOT NULL DEFAULT 1,
    order_num          INTEGER NOT NULL DEFAULT 0,
    stream_enabled     INTEGER NOT NULL DEFAULT 0,
    owner_user_id      TEXT,
    is_public          INTEGER NOT NULL DEFAULT 0,
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);
"""

_COLUMNS = (
    "id", "name", "stage", "api_endpoint", "api_key", "model_id", "system_prompt",
    "temperature", "max_tokens", "top_p", "frequency_penalty", "presence_penalty",
    "custom_params", "enabled", "order_num", "stream_enabled", "owner_user_id",
    "is_public", "created_at", "updated_at",
)

_INSERT_MODEL_SQL = (
    f"INSERT INTO model_configs ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)});"
)
_UPDATE_MODEL_SQL = (
    f"UPDATE model_configs SET {', '.join(f'{c} = ?' for c in _COLUMNS[1:])} WHERE id = ?;"
)
_SELECT_MODEL_SQL = "SELECT * FROM model_configs WHERE id = ?;"
_SELECT_ALL_MODELS_SQL = "SELECT * FROM model_configs ORDER BY stage, order_num, created_at;"
_SELECT_STAGE_MODELS_SQL = (
    "SELECT * FROM model_configs WHERE stage = ? ORDER BY order_num, created_at;"
)
_DELETE_MODEL_SQL = "DELETE FROM model_configs WHERE id = ?;"
_REORDER_SQL = "UPDATE model_configs SET order_num = ?, updated_at = ? WHERE id = ?;"

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


def _row_to_model(row: aiosqlite.Row) -> ModelConfig:
    return ModelConfig(
        id=row["id"],
        name=row["name"],
        stage=ModelStage(row["stage"]),
        api_endpoint=row["api_endpoint"],
        api_key=row["api_key"],
        model_id=row["model_id"],
        system_prompt=row["system_prompt"],
        temperature=row["temperature"],
        max_tokens=row["max_tokens"],
        top_p=row["top_p"],
        frequency_penalty=row["frequency_penalty"],
        presence_penalty=row["presence_penalty"],
        custom_params=json.loads(row["custom_params"]) if row["custom_params"] else {},
        enabled=bool(row["enabled"]),
        order_num=row["order_num"],
        stream_enabled=bool(row["stream_enabled"]),
        owner_user_id=row["owner_user_id"],
        is_public=bool(row["is_public"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _model_to_params(config: ModelConfig) -> tuple[Any, ...]:
    return (
        config.id,
        config.name,
        config.stage.value,
        config.api_endpoint,
        config.api_key,
        config.model_id,
        config.system_prompt,
        config.temperature,
        config.max_tokens,
        config.top_p,
        config.frequency_penalty,
        config.presence_penalty,
        json.dumps(config.custom_params) if config.custom_params else None,
        1 if config.enabled else 0,
        config.order_num,
        1 if config.stream_enabled else 0,
        config.owner_user_id,
        1 if config.is_public else 0,
        config.created_at.isoformat(),
        config.updated_at.isoformat(),
    )


class SQLiteModelRegistry(IModelRegistry):
    """Model configs in SQLite, with per-user overrides from a preference store."""

    def __init__(self, db_path: str | Path, preference_store: IPreferenceStore) -> None:
        self._db_path = Path(db_path)
        self._preferences = preference_store

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_MODEL_CONFIGS_TABLE_SQL)
            await db.commit()
        logger.info("model_registry_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # IModelRegistry implementation
    # ------------------------------------------------------------------

    async def get_enabled_models_for_stage(
        self,
        stage: ModelStage,
        requester_id: str | None = None,
        is_admin: bool = False,
    ) -> list[ModelConfig]:
        rows = await self._fetch_all(_SELECT_STAGE_MODELS_SQL, (stage.value,))
        overrides = (
            await self._preferences.get_model_preferences(requester_id) if requester_id else {}
        )
        return [
            model
            for model in rows
            if is_visible(model.owner_user_id, model.is_public, requester_id, is_admin)
            and effective_enabled(model.enabled, overrides.get(model.id))
        ]

    async def get_model_by_id(self, model_id: str) -> ModelConfig | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_MODEL_SQL, (model_id,))
            row = await cursor.fetchone()
        return _row_to_model(row) if row else None

    async def list_models(
        self,
        requester_id: str | None = None,
        is_admin: bool = False,
        stage: ModelStage | None = None,
    ) -> list[ModelConfig]:
        if stage is None:
            rows = await self._fetch_all(_SELECT_ALL_MODELS_SQL, ())
        else:
            rows = await self._fetch_all(_SELECT_STAGE_MODELS_SQL, (stage.value,))
        return [
            model
            for model in rows
            if is_visible(model.owner_user_id, model.is_public, requester_id, is_admin)
        ]

    async def create_model(self, config: ModelConfig) -> ModelConfig:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_INSERT_MODEL_SQL, _model_to_params(config))
            await db.commit()
        logger.info(
            "model_config_created", model_id=config.id, name=config.name,
            stage=config.stage.value,
        )
        return config

    async def update_model(self, model_id: str, **changes: Any) -> ModelConfig | None:
        unknown = set(changes) - set(ModelConfig.model_fields)
        if unknown or _IMMUTABLE_FIELDS & set(changes):
            raise InvalidInputError(
                f"Cannot update model fields: {sorted(unknown | (_IMMUTABLE_FIELDS & set(changes)))}"
            )
        existing = await self.get_model_by_id(model_id)
        if existing is None:
            return None

        updated = ModelConfig.model_validate(
            {
                **existing.model_dump(),
                **changes,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        params = _model_to_params(updated)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPDATE_MODEL_SQL, (*params[1:], model_id))
            await db.commit()
        logger.info("model_config_updated", model_id=model_id, fields=sorted(changes))
        return updated

    async def delete_model(self, model_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_MODEL_SQL, (model_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def reorder_models(self, model_ids: list[str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.executemany(
                _REORDER_SQL, [(index, now, mid) for index, mid in enumerate(model_ids)]
            )
            await db.commit()

    async def set_user_preference(self, user_id: str, model_id: str, enabled: bool) -> None:
        await self._preferences.set_model_preference(user_id, model_id, enabled)

    # ------------------------------------------------------------------

    async def seed(self, entries: list[dict[str, Any]]) -> int:
        """Insert ``entries`` when the registry is empty; return how many were added."""
        if not entries or await self._fetch_all(_SELECT_ALL_MODELS_SQL, ()):
            return 0
        for position, entry in enumerate(entries):
            config = ModelConfig.model_validate(
                {"id": str(uuid.uuid4()), "order_num": position, **entry}
            )
            await self.create_model(config)
        logger.info("model_registry_seeded", count=len(entries))
        return len(entries)

    async def _fetch_all(self, sql: str, params: tuple[Any, ...]) -> list[ModelConfig]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_model(row) for row in rows]
