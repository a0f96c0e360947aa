"""SQLite-backed knowledge-base metadata store."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from lextrans.interfaces.knowledge_base_store import IKnowledgeBaseStore
from lextrans.models.knowledge import KnowledgeBase, SourceFile

logger = structlog.get_logger(logger_name=__name__)

_CREATE_KNOWLEDGE_BASES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_bases (
    id                  TEXT    PRIMARY KEY,
    name                TEXT    NOT NULL,
    description         TEXT,
    file_type           TEXT    NOT NULL,
    file_name           TEXT    NOT NULL,
    file_path           TEXT    NOT NULL,
    file_size           INTEGER NOT NULL DEFAULT 0,
    chunk_count         INTEGER NOT NULL DEFAULT 0,
    embedding_model_id  TEXT    NOT NULL,
    owner_user_id       TEXT,
    is_public           INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT    NOT NULL,
    updated_at          TEXT    NOT NULL
);
"""

_INSERT_KB_SQL = """\
INSERT INTO knowledge_bases (
    id, name, description, file_type, file_name, file_path, file_size,
    chunk_count, embedding_model_id, owner_user_id, is_public, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_KB_SQL = "SELECT * FROM knowledge_bases WHERE id = ?;"
_SELECT_ALL_KB_SQL = "SELECT * FROM knowledge_bases ORDER BY created_at DESC;"
_UPDATE_VISIBILITY_SQL = "UPDATE knowledge_bases SET is_public = ?, updated_at = ? WHERE id = ?;"
_DELETE_KB_SQL = "DELETE FROM knowledge_bases WHERE id = ?;"
_COUNT_KB_SQL = "SELECT COUNT(*) FROM knowledge_bases;"


def _row_to_knowledge_base(row: aiosqlite.Row) -> KnowledgeBase:
    return KnowledgeBase(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        source_file=SourceFile(
            file_type=row["file_type"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
        ),
        chunk_count=row["chunk_count"],
        embedding_model_id=row["embedding_model_id"],
        owner_user_id=row["owner_user_id"],
        is_public=bool(row["is_public"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteKnowledgeBaseStore(IKnowledgeBaseStore):
    """Knowledge-base rows in a local SQLite database."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_KNOWLEDGE_BASES_TABLE_SQL)
            await db.commit()
        logger.info("knowledge_base_db_initialized", path=str(self._db_path))

    async def insert(self, kb: KnowledgeBase) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_KB_SQL,
                (
                    kb.id,
                    kb.name,
                    kb.description,
                    kb.source_file.file_type,
                    kb.source_file.file_name,
                    kb.source_file.file_path,
                    kb.source_file.file_size,
                    kb.chunk_count,
                    kb.embedding_model_id,
                    kb.owner_user_id,
                    1 if kb.is_public else 0,
                    kb.created_at.isoformat(),
                    kb.updated_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("knowledge_base_stored", kb_id=kb.id, chunk_count=kb.chunk_count)

    async def get(self, kb_id: str) -> KnowledgeBase | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_KB_SQL, (kb_id,))
            row = await cursor.fetchone()
        return _row_to_knowledge_base(row) if row else None

    async def list_all(self) -> list[KnowledgeBase]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_ALL_KB_SQL)
            rows = await cursor.fetchall()
        return [_row_to_knowledge_base(row) for row in rows]

    async def update_visibility(self, kb_id: str, is_public: bool) -> KnowledgeBase | None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _UPDATE_VISIBILITY_SQL, (1 if is_public else 0, now, kb_id)
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(kb_id)

    async def delete(self, kb_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_KB_SQL, (kb_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("knowledge_base_row_deleted", kb_id=kb_id)
        return deleted

    async def count(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_COUNT_KB_SQL)
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
