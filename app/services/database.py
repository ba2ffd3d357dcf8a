"""PostgreSQL conversation store using asyncpg."""

from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

import asyncpg

from app.services import logger as log_service
from app.services.chat_store import DEFAULT_TITLE

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT 'New Chat',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    sources TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS messages_conversation_created_idx
    ON messages (conversation_id, created_at);
"""

_CONVERSATION_COLUMNS = "id, title, created_at, updated_at"
_MESSAGE_COLUMNS = "id, conversation_id, role, content, sources, created_at"


def _coerce_json_list(value: Any) -> list[dict[str, Any]] | None:
    """Decode the JSON-text sources column."""
    if value is None:
        return None
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, list) else None
    return None


def _message_row(record: Any) -> dict[str, Any]:
    row = dict(record)
    row["sources"] = _coerce_json_list(row.get("sources"))
    return row


class PostgresChatStore:
    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: asyncpg.Pool | None = None

    async def open(self) -> None:
        """Create the pool and make sure the tables exist."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        log_service.log_db_operation("bootstrap", "conversations", "success")

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.dsn:
            raise RuntimeError("Database not configured. Set DATABASE_URL in .env")
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # --- Conversations ---

    async def list_conversations(self) -> list[dict[str, Any]]:
        """Conversations with at least one message, most recently updated first."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            results = await conn.fetch(
                """
                SELECT c.id, c.title, c.created_at, c.updated_at,
                       m.id AS message_id, m.role, m.content, m.sources,
                       m.created_at AS message_created_at
                FROM conversations c
                JOIN LATERAL (
                    SELECT id, role, content, sources, created_at
                    FROM messages
                    WHERE conversation_id = c.id
                    ORDER BY created_at DESC
                    LIMIT 1
                ) m ON TRUE
                ORDER BY c.updated_at DESC
                """
            )
        rows = []
        for r in results:
            rows.append(
                {
                    "id": r["id"],
                    "title": r["title"],
                    "created_at": r["created_at"],
                    "updated_at": r["updated_at"],
                    "messages": [
                        {
                            "id": r["message_id"],
                            "conversation_id": r["id"],
                            "role": r["role"],
                            "content": r["content"],
                            "sources": _coerce_json_list(r["sources"]),
                            "created_at": r["message_created_at"],
                        }
                    ],
                }
            )
        return rows

    async def create_conversation(self, title: str = DEFAULT_TITLE) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchrow(
                f"""
                INSERT INTO conversations (id, title)
                VALUES ($1, $2)
                RETURNING {_CONVERSATION_COLUMNS}
                """,
                str(uuid4()),
                title,
            )
        log_service.log_db_operation("insert", "conversations", "success", details=result["id"])
        return dict(result)

    async def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchrow(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = $1",
                conversation_id,
            )
        return dict(result) if result else None

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation; messages go with it via ON DELETE CASCADE."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM conversations WHERE id = $1", conversation_id)
        deleted = status.endswith(" 1")
        log_service.log_db_operation("delete", "conversations", "success", details=f"{conversation_id} deleted={deleted}")
        return deleted

    async def update_title(self, conversation_id: str, title: str) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE conversations SET title = $1, updated_at = now() WHERE id = $2",
                title,
                conversation_id,
            )

    # --- Messages ---

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        sources: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.fetchrow(
                    f"""
                    INSERT INTO messages (id, conversation_id, role, content, sources)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {_MESSAGE_COLUMNS}
                    """,
                    str(uuid4()),
                    conversation_id,
                    role,
                    content,
                    json.dumps(sources) if sources else None,
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = now() WHERE id = $1",
                    conversation_id,
                )
        log_service.log_db_operation("insert", "messages", "success", details=f"{conversation_id} role={role}")
        return _message_row(result)

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            results = await conn.fetch(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM messages
                WHERE conversation_id = $1
                ORDER BY created_at
                """,
                conversation_id,
            )
        return [_message_row(r) for r in results]

    async def count_messages(self, conversation_id: str) -> int:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT count(*) FROM messages WHERE conversation_id = $1",
                conversation_id,
            )
        return int(count or 0)
