"""SQLite-backed translation history.

Each completed :class:`TranslationResponse` is stored as one JSON blob
alongside the columns needed for listing and searching.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from lextrans.interfaces.history_store import ITranslationHistoryStore
from lextrans.models.translation import TranslationResponse

logger = structlog.get_logger(logger_name=__name__)

_CREATE_HISTORY_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS translation_history (
    id           TEXT PRIMARY KEY,
    source_text  TEXT NOT NULL,
    result_json  TEXT NOT NULL,
    user_id      TEXT,
    created_at   TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_history_created ON translation_history(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_history_user ON translation_history(user_id);",
]

_INSERT_HISTORY_SQL = """\
INSERT INTO translation_history (id, source_text, result_json, user_id, created_at)
VALUES (?, ?, ?, ?, ?);
"""

_SELECT_BY_ID_SQL = "SELECT result_json FROM translation_history WHERE id = ?;"


class SQLiteTranslationHistoryStore(ITranslationHistoryStore):
    """Append-only history table; rows are never updated."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_HISTORY_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("history_db_initialized", path=str(self._db_path))

    async def save(self, response: TranslationResponse, user_id: str | None = None) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_HISTORY_SQL,
                (
                    response.id,
                    response.source_text,
                    response.model_dump_json(),
                    user_id,
                    response.created_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("translation_saved", translation_id=response.id, user_id=user_id)

    async def list_recent(
        self, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        sql = "SELECT result_json FROM translation_history"
        params: list[object] = []
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at DESC LIMIT ?;"
        params.append(limit)
        return await self._fetch(sql, params)

    async def search(
        self, query: str, limit: int = 50, user_id: str | None = None
    ) -> list[TranslationResponse]:
        sql = "SELECT result_json FROM translation_history WHERE source_text LIKE ?"
        params: list[object] = [f"%{query}%"]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at DESC LIMIT ?;"
        params.append(limit)
        return await self._fetch(sql, params)

    async def get(self, translation_id: str) -> TranslationResponse | None:
        results = await self._fetch(_SELECT_BY_ID_SQL, [translation_id])
        return results[0] if results else None

    async def _fetch(self, sql: str, params: list[object]) -> list[TranslationResponse]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [TranslationResponse.model_validate_json(row["result_json"]) for row in rows]
