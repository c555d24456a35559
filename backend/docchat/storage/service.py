"""DuckDB-backed catalog of documents, chats and messages.

The pipelines only append rows; the one destructive operation is
``delete_chat`` used by the chat history endpoints.

Database Schema:
    documents table:
        - id, filename, mime_type, original_path, external_uri, upload_date
    chats table:
        - id, user_id, title, created_at
    messages table:
        - seq: insertion order (sequence), used for turn ordering
        - id, chat_id (references chats.id), role, content, created_at

Thread Safety:
    A DuckDB connection must not be used from two threads at once. The async
    pipelines call into this service from the default executor, so every
    statement runs under a process-local lock.

Usage:
    catalog = CatalogService.get_instance()
    chat = catalog.create_chat(user_id="user-1", title="Quarterly report")
    catalog.add_message(chat.id, MessageRole.USER, "What changed?")
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import duckdb

from docchat.errors import PersistenceFailure

from .schemas import Chat, Document, Message, MessageRole

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CatalogService:
    """Singleton service for catalog rows in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["CatalogService"] = None
    _db_path: str = "docchat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the catalog and create the schema if needed.

        Args:
            db_path: Path to DuckDB file, or ``":memory:"``.
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "CatalogService":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and forget the singleton (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _execute(self, sql: str, params: Optional[list] = None) -> duckdb.DuckDBPyConnection:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or [])
            except duckdb.Error as e:
                logger.error("[catalog] statement failed: %s", e)
                raise PersistenceFailure(str(e)) from e

    def _fetchall(self, sql: str, params: Optional[list] = None) -> list:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except duckdb.Error as e:
                logger.error("[catalog] query failed: %s", e)
                raise PersistenceFailure(str(e)) from e

    def _initialize_db(self) -> None:
        """Create tables and the message sequence (idempotent)."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                filename VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                original_path VARCHAR NOT NULL,
                external_uri VARCHAR,
                upload_date TIMESTAMP NOT NULL
            )
        """)
        self._execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                title VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)
        self._execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        self._execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq BIGINT DEFAULT nextval('messages_seq'),
                id VARCHAR PRIMARY KEY,
                chat_id VARCHAR NOT NULL REFERENCES chats(id),
                role VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)
        self._execute("CREATE INDEX IF NOT EXISTS idx_chats_user_id ON chats(user_id)")

    # -----------------------------------------------------------------------
    # Documents
    # -----------------------------------------------------------------------

    def create_document(
        self,
        filename: str,
        mime_type: str,
        storage_path: str,
        external_uri: Optional[str],
    ) -> Document:
        """Insert a document row.

        Raises:
            PersistenceFailure: If the insert fails.
        """
        document = Document(
            id=_new_id(),
            filename=filename,
            mime_type=mime_type,
            storage_path=storage_path,
            external_uri=external_uri,
            upload_date=_utcnow(),
        )
        self._execute(
            """
            INSERT INTO documents (id, filename, mime_type, original_path, external_uri, upload_date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                document.id,
                document.filename,
                document.mime_type,
                document.storage_path,
                document.external_uri,
                document.upload_date,
            ],
        )
        logger.info("[catalog] document committed: id=%s filename=%s", document.id, filename)
        return document

    def list_documents(self) -> List[Document]:
        """All documents, newest first."""
        rows = self._fetchall(
            """
            SELECT id, filename, mime_type, original_path, external_uri, upload_date
            FROM documents
            ORDER BY upload_date DESC
            """
        )
        return [
            Document(
                id=r[0],
                filename=r[1],
                mime_type=r[2],
                storage_path=r[3],
                external_uri=r[4],
                upload_date=r[5],
            )
            for r in rows
        ]

    # -----------------------------------------------------------------------
    # Chats
    # -----------------------------------------------------------------------

    def create_chat(self, user_id: str, title: str) -> Chat:
        chat = Chat(id=_new_id(), owner_id=user_id, title=title, created_at=_utcnow())
        self._execute(
            "INSERT INTO chats (id, user_id, title, created_at) VALUES (?, ?, ?, ?)",
            [chat.id, chat.owner_id, chat.title, chat.created_at],
        )
        logger.info("[catalog] chat created: id=%s user=%s", chat.id, user_id)
        return chat

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        rows = self._fetchall(
            "SELECT id, user_id, title, created_at FROM chats WHERE id = ?",
            [chat_id],
        )
        if not rows:
            return None
        r = rows[0]
        return Chat(id=r[0], owner_id=r[1], title=r[2], created_at=r[3])

    def list_chats(self, user_id: str, query: Optional[str] = None) -> List[Chat]:
        """Chats owned by ``user_id``, newest first.

        Args:
            user_id: Owner to filter by.
            query: Optional case-insensitive substring of the title.
        """
        if query:
            rows = self._fetchall(
                """
                SELECT id, user_id, title, created_at
                FROM chats
                WHERE user_id = ? AND title ILIKE ?
                ORDER BY created_at DESC
                """,
                [user_id, f"%{query}%"],
            )
        else:
            rows = self._fetchall(
                """
                SELECT id, user_id, title, created_at
                FROM chats
                WHERE user_id = ?
                ORDER BY created_at DESC
                """,
                [user_id],
            )
        return [Chat(id=r[0], owner_id=r[1], title=r[2], created_at=r[3]) for r in rows]

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and its messages (messages first)."""
        self._execute("DELETE FROM messages WHERE chat_id = ?", [chat_id])
        self._execute("DELETE FROM chats WHERE id = ?", [chat_id])
        logger.info("[catalog] chat deleted: id=%s", chat_id)

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def add_message(self, chat_id: str, role: MessageRole, content: str) -> Message:
        """Append one message to a chat.

        Raises:
            PersistenceFailure: If the insert fails (e.g. unknown chat_id).
        """
        message = Message(
            id=_new_id(),
            chat_id=chat_id,
            role=role,
            content=content,
            created_at=_utcnow(),
        )
        self._execute(
            """
            INSERT INTO messages (id, chat_id, role, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [message.id, message.chat_id, message.role.value, message.content, message.created_at],
        )
        logger.info(
            "[catalog] %s message committed: chat=%s chars=%d",
            role.value, chat_id, len(content),
        )
        return message

    def list_messages(self, chat_id: str) -> List[Message]:
        """Messages of a chat in insertion order."""
        rows = self._fetchall(
            """
            SELECT id, chat_id, role, content, created_at
            FROM messages
            WHERE chat_id = ?
            ORDER BY seq ASC
            """,
            [chat_id],
        )
        return [
            Message(
                id=r[0],
                chat_id=r[1],
                role=MessageRole(r[2]),
                content=r[3],
                created_at=r[4],
            )
            for r in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
