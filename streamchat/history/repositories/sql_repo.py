# streamchat/history/repositories/sql_repo.py
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import aiosqlite

from streamchat.exceptions import IntegrityViolationError
from streamchat.history.models import Assistant, Conversation, StoredMessage
from streamchat.history.repositories.base import ChatRepository
from streamchat.logging_utils import log_operation

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS "Assistant" (
        "id" TEXT NOT NULL PRIMARY KEY,
        "name" TEXT NOT NULL,
        "systemPrompt" TEXT NOT NULL,
        "defaultModel" TEXT NOT NULL DEFAULT 'gemini-2.5-flash-lite',
        "createdAt" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        "updatedAt" DATETIME NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS "Conversation" (
        "id" TEXT NOT NULL PRIMARY KEY,
        "title" TEXT NOT NULL,
        "assistantId" TEXT NOT NULL,
        "createdAt" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        "updatedAt" DATETIME NOT NULL,
        CONSTRAINT "Conversation_assistantId_fkey" FOREIGN KEY ("assistantId")
            REFERENCES "Assistant" ("id") ON DELETE RESTRICT ON UPDATE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS "Message" (
        "id" TEXT NOT NULL PRIMARY KEY,
        "conversationId" TEXT NOT NULL,
        "role" TEXT NOT NULL,
        "content" TEXT NOT NULL,
        "createdAt" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT "Message_conversationId_fkey" FOREIGN KEY ("conversationId")
            REFERENCES "Conversation" ("id") ON DELETE RESTRICT ON UPDATE CASCADE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS "Message_conversation_created"
    ON "Message" ("conversationId", "createdAt")
    """,
)


class AsyncSqlRepo(ChatRepository):
    """
    SQLite implementation of ChatRepository.
    Table layout matches the application's relational schema so another
    driver (e.g. asyncpg) can be swapped in against the same tables.
    """

    def __init__(self, db_path: str = "streamchat.db"):
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._connection_lock = asyncio.Lock()  # Serialize database access
        self._connection: aiosqlite.Connection | None = None

    async def _initialize(self) -> None:
        """
        Lazily create tables and indices on first use.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return

            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row

            # Foreign keys are off by default in SQLite, per connection
            await self._connection.execute("PRAGMA foreign_keys=ON")
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=30000")

            for statement in SCHEMA:
                await self._connection.execute(statement)
            await self._connection.commit()

            logger.info(f"Chat repository ready at {self.db_path}")
            self._initialized = True

    async def initialize(self) -> None:
        """Create the schema now instead of on first use."""
        await self._initialize()

    async def close(self) -> None:
        """
        Close the persistent database connection.
        """
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False

    async def __aenter__(self) -> AsyncSqlRepo:
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _conn(self) -> aiosqlite.Connection:
        await self._initialize()
        if not self._connection:
            raise RuntimeError("Database connection not available")
        return self._connection

    async def _write(self, query: str, params: tuple) -> int:
        """Run one write statement; returns the affected row count."""
        conn = await self._conn()
        async with self._connection_lock:
            try:
                cursor = await conn.execute(query, params)
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                await conn.rollback()
                raise IntegrityViolationError(str(e)) from e
            except Exception:
                await conn.rollback()
                raise
            rowcount = cursor.rowcount
            await cursor.close()
        return rowcount

    async def _fetch(self, query: str, params: tuple) -> list[aiosqlite.Row]:
        conn = await self._conn()
        async with self._connection_lock:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return list(rows)

    @log_operation("create_assistant")
    async def create_assistant(self, assistant: Assistant) -> Assistant:
        await self._write(
            """
            INSERT INTO "Assistant" (
                "id", "name", "systemPrompt", "defaultModel", "createdAt", "updatedAt"
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                assistant.id,
                assistant.name,
                assistant.system_prompt,
                assistant.default_model,
                assistant.created_at.isoformat(),
                assistant.updated_at.isoformat(),
            ),
        )
        return assistant

    async def get_assistant(self, assistant_id: str) -> Assistant | None:
        rows = await self._fetch(
            'SELECT * FROM "Assistant" WHERE "id" = ?', (assistant_id,)
        )
        return self._row_to_assistant(rows[0]) if rows else None

    @log_operation("delete_assistant")
    async def delete_assistant(self, assistant_id: str) -> bool:
        deleted = await self._write(
            'DELETE FROM "Assistant" WHERE "id" = ?', (assistant_id,)
        )
        return deleted > 0

    @log_operation("create_conversation")
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        await self._write(
            """
            INSERT INTO "Conversation" (
                "id", "title", "assistantId", "createdAt", "updatedAt"
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                conversation.id,
                conversation.title,
                conversation.assistant_id,
                conversation.created_at.isoformat(),
                conversation.updated_at.isoformat(),
            ),
        )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        rows = await self._fetch(
            'SELECT * FROM "Conversation" WHERE "id" = ?', (conversation_id,)
        )
        return self._row_to_conversation(rows[0]) if rows else None

    async def list_conversations(
        self, assistant_id: str | None = None
    ) -> list[Conversation]:
        if assistant_id is not None:
            rows = await self._fetch(
                'SELECT * FROM "Conversation" WHERE "assistantId" = ? '
                'ORDER BY "updatedAt" DESC',
                (assistant_id,),
            )
        else:
            rows = await self._fetch(
                'SELECT * FROM "Conversation" ORDER BY "updatedAt" DESC', ()
            )
        return [self._row_to_conversation(row) for row in rows]

    @log_operation("delete_conversation")
    async def delete_conversation(self, conversation_id: str) -> bool:
        deleted = await self._write(
            'DELETE FROM "Conversation" WHERE "id" = ?', (conversation_id,)
        )
        return deleted > 0

    @log_operation("add_message")
    async def add_message(self, message: StoredMessage) -> StoredMessage:
        conn = await self._conn()
        async with self._connection_lock:
            try:
                await conn.execute(
                    """
                    INSERT INTO "Message" (
                        "id", "conversationId", "role", "content", "createdAt"
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        message.id,
                        message.conversation_id,
                        message.role,
                        message.content,
                        message.created_at.isoformat(),
                    ),
                )
                await conn.execute(
                    'UPDATE "Conversation" SET "updatedAt" = ? WHERE "id" = ?',
                    (datetime.now(UTC).isoformat(), message.conversation_id),
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                await conn.rollback()
                raise IntegrityViolationError(str(e)) from e
            except Exception:
                await conn.rollback()
                raise
        return message

    async def get_messages(
        self, conversation_id: str, limit: int | None = None
    ) -> list[StoredMessage]:
        if limit is not None:
            # Most recent `limit`, returned oldest first
            rows = await self._fetch(
                """
                SELECT * FROM (
                    SELECT rowid AS _seq, * FROM "Message" WHERE "conversationId" = ?
                    ORDER BY "createdAt" DESC, _seq DESC LIMIT ?
                ) ORDER BY "createdAt", _seq
                """,
                (conversation_id, limit),
            )
        else:
            rows = await self._fetch(
                'SELECT * FROM "Message" WHERE "conversationId" = ? '
                'ORDER BY "createdAt", rowid',
                (conversation_id,),
            )
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _row_to_assistant(row: aiosqlite.Row) -> Assistant:
        return Assistant(
            id=row["id"],
            name=row["name"],
            system_prompt=row["systemPrompt"],
            default_model=row["defaultModel"],
            created_at=datetime.fromisoformat(row["createdAt"]),
            updated_at=datetime.fromisoformat(row["updatedAt"]),
        )

    @staticmethod
    def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            assistant_id=row["assistantId"],
            created_at=datetime.fromisoformat(row["createdAt"]),
            updated_at=datetime.fromisoformat(row["updatedAt"]),
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> StoredMessage:
        return StoredMessage(
            id=row["id"],
            conversation_id=row["conversationId"],
            role=row["role"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["createdAt"]),
        )
