"""SQLite-backed per-user enable/disable overrides."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from lextrans.interfaces.knowledge_base_store import IPreferenceStore

logger = structlog.get_logger(logger_name=__name__)

_CREATE_KB_PREFS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS user_kb_prefs (
    user_id  TEXT    NOT NULL,
    kb_id    TEXT    NOT NULL,
    enabled  INTEGER NOT NULL,
    PRIMARY KEY (user_id, kb_id)
);
"""

_CREATE_MODEL_PREFS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS user_model_prefs (
    user_id   TEXT    NOT NULL,
    model_id  TEXT    NOT NULL,
    enabled   INTEGER NOT NULL,
    PRIMARY KEY (user_id, model_id)
);
"""

_UPSERT_SQL = """\
INSERT INTO {table} (user_id, {column}, enabled) VALUES (?, ?, ?)
ON CONFLICT(user_id, {column}) DO UPDATE SET enabled = excluded.enabled;
"""

_SELECT_SQL = "SELECT {column} AS resource_id, enabled FROM {table} WHERE user_id = ?;"


class SQLitePreferenceStore(IPreferenceStore):
    """Stores knowledge-base and model overrides in two small tables."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_KB_PREFS_TABLE_SQL)
            await db.execute(_CREATE_MODEL_PREFS_TABLE_SQL)
            await db.commit()
        logger.info("preference_db_initialized", path=str(self._db_path))

    async def set_knowledge_base_preference(
        self, user_id: str, kb_id: str, enabled: bool
    ) -> None:
        await self._upsert("user_kb_prefs", "kb_id", user_id, kb_id, enabled)

    async def get_knowledge_base_preferences(self, user_id: str) -> dict[str, bool]:
        return await self._select("user_kb_prefs", "kb_id", user_id)

    async def set_model_preference(self, user_id: str, model_id: str, enabled: bool) -> None:
        await self._upsert("user_model_prefs", "model_id", user_id, model_id, enabled)

    async def get_model_preferences(self, user_id: str) -> dict[str, bool]:
        return await self._select("user_model_prefs", "model_id", user_id)

    # ------------------------------------------------------------------

    async def _upsert(
        self, table: str, column: str, user_id: str, resource_id: str, enabled: bool
    ) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SQL.format(table=table, column=column),
                (user_id, resource_id, 1 if enabled else 0),
            )
            await db.commit()
        logger.info(
            "user_preference_set", table=table, user_id=user_id, resource_id=resource_id,
            enabled=enabled,
        )

    async def _select(self, table: str, column: str, user_id: str) -> dict[str, bool]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SQL.format(table=table, column=column), (user_id,))
            rows = await cursor.fetchall()
        return {row["resource_id"]: bool(row["enabled"]) for row in rows}
