# status: complete

import os
import sqlite3
import time
import uuid
from typing import Any, Dict, List, Optional

from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)


class NotFoundError(LookupError):
    """Raised when a thread or message does not exist."""


class AccessDeniedError(PermissionError):
    """Raised when a thread is accessed by someone other than its owner."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class DatabaseManager:
    """
    Persistence adapter for threads and their messages.

    Every public operation is attributed to an owner and verifies that the
    owner created the thread it touches. Messages added with an explicit id
    keep that id, so a streamed assistant message can be flushed without
    changing identity.
    """

    VALID_ROLES = {'user', 'assistant'}
    MAX_ID_LENGTH = 255

    def _handle_db_error(self, operation: str, error: Exception, return_value=None, reraise: bool = False):
        """Centralized error handling for database operations"""
        if isinstance(error, (NotFoundError, AccessDeniedError)):
            logger.debug(f"Rejected {operation}: {error}")
        else:
            logger.error(f"Error {operation}: {str(error)}")
        if reraise:
            raise error
        return return_value

    def _execute_with_connection(self, operation: str, query_func, return_on_error=None, reraise: bool = True):
        """Execute database operation with standardized connection handling and error handling"""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                return query_func(conn, cursor)
        except Exception as e:
            return self._handle_db_error(operation, e, return_on_error, reraise)

    def __init__(self, db_name: Optional[str] = None, data_dir: Optional[str] = None):
        self.data_dir = data_dir or Config.get_data_dir()
        self.db_path = os.path.join(self.data_dir, db_name or Config.get_db_name())
        self._ensure_data_directory()
        self._init_database()

    def _connect(self):
        """Create database connection with proper SQLite configuration"""
        conn = sqlite3.connect(self.db_path, timeout=5)
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=3000")
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_data_directory(self):
        """Ensure data directory exists"""
        os.makedirs(self.data_dir, exist_ok=True)

    def _init_database(self):
        """Initialize all database tables"""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS threads (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    title TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL,
                    last_ai_response_at INTEGER
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('user','assistant')),
                    content TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_thread_time ON messages(thread_id, created_at)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_threads_owner ON threads(owner, last_ai_response_at)
            """)
            conn.commit()

    def _validate_string(self, value, name: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{name} must be a non-empty string")
        if len(value) > self.MAX_ID_LENGTH:
            raise ValueError(f"{name} is too long ({len(value)} > {self.MAX_ID_LENGTH})")

    def _thread_row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "owner": row["owner"],
            "title": row["title"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "last_ai_response_at": row["last_ai_response_at"],
        }

    def _message_row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "thread_id": row["thread_id"],
            "role": row["role"],
            "content": row["content"],
            "created_at": row["created_at"],
        }

    def _require_thread(self, cursor, thread_id: str, owner: str) -> sqlite3.Row:
        cursor.execute("SELECT * FROM threads WHERE id = ?", (thread_id,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Thread {thread_id} not found")
        if row["owner"] != owner:
            raise AccessDeniedError(f"Thread {thread_id} does not belong to the caller")
        return row

    def _require_message(self, cursor, message_id: str, owner: str) -> sqlite3.Row:
        cursor.execute("SELECT * FROM messages WHERE id = ?", (message_id,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Message {message_id} not found")
        self._require_thread(cursor, row["thread_id"], owner)
        return row

    # ---- threads ----

    def create_thread(self, owner: str, title: Optional[str] = None) -> Dict[str, Any]:
        """Create a thread owned by `owner`. Title defaults to "New Chat"."""
        self._validate_string(owner, "owner")
        thread_id = f"thr_{uuid.uuid4().hex}"
        now = _now_ms()
        thread_title = title.strip() if isinstance(title, str) and title.strip() else Config.get_default_thread_title()

        def insert(conn, cursor):
            cursor.execute(
                "INSERT INTO threads (id, owner, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (thread_id, owner, thread_title, now, now)
            )
            conn.commit()
            logger.info(f"Created new thread: {thread_id}")
            return {
                "id": thread_id,
                "owner": owner,
                "title": thread_title,
                "created_at": now,
                "updated_at": now,
                "last_ai_response_at": None,
            }

        return self._execute_with_connection("creating thread", insert)

    def get_thread(self, thread_id: str, owner: str) -> Dict[str, Any]:
        def query(conn, cursor):
            return self._thread_row_to_dict(self._require_thread(cursor, thread_id, owner))

        return self._execute_with_connection("getting thread", query)

    def thread_exists(self, thread_id: str) -> bool:
        def query(conn, cursor):
            cursor.execute("SELECT 1 FROM threads WHERE id = ?", (thread_id,))
            return cursor.fetchone() is not None

        return self._execute_with_connection("checking thread existence", query, False, reraise=False)

    def list_threads(self, owner: str) -> List[Dict[str, Any]]:
        """Threads of `owner`, most recently answered first."""
        def query(conn, cursor):
            cursor.execute("""
                SELECT * FROM threads
                WHERE owner = ?
                ORDER BY COALESCE(last_ai_response_at, updated_at) DESC, created_at DESC
            """, (owner,))
            return [self._thread_row_to_dict(row) for row in cursor.fetchall()]

        return self._execute_with_connection("listing threads", query)

    def update_thread_title(self, thread_id: str, owner: str, title: str) -> bool:
        if not isinstance(title, str) or not title.strip():
            raise ValueError("title must be a non-empty string")

        def update(conn, cursor):
            self._require_thread(cursor, thread_id, owner)
            cursor.execute(
                "UPDATE threads SET title = ?, updated_at = ? WHERE id = ?",
                (title.strip(), _now_ms(), thread_id)
            )
            conn.commit()
            return cursor.rowcount > 0

        return self._execute_with_connection("updating thread title", update)

    def delete_thread(self, thread_id: str, owner: str) -> bool:
        """Delete a thread; its messages go with it."""
        def delete(conn, cursor):
            self._require_thread(cursor, thread_id, owner)
            cursor.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
            conn.commit()
            logger.info(f"[CASCADE_DELETE] Deleted thread {thread_id}")
            return cursor.rowcount > 0

        return self._execute_with_connection("deleting thread", delete)

    def clear_thread(self, thread_id: str, owner: str) -> int:
        """Remove every message of a thread and reset its title."""
        def clear(conn, cursor):
            self._require_thread(cursor, thread_id, owner)
            cursor.execute("DELETE FROM messages WHERE thread_id = ?", (thread_id,))
            removed = cursor.rowcount
            cursor.execute(
                "UPDATE threads SET title = ?, updated_at = ?, last_ai_response_at = NULL WHERE id = ?",
                (Config.get_default_thread_title(), _now_ms(), thread_id)
            )
            conn.commit()
            logger.info(f"Cleared {removed} message(s) from thread {thread_id}")
            return removed

        return self._execute_with_connection("clearing thread", clear)

    # ---- messages ----

    def add_message(self, thread_id: str, owner: str, role: str, content: str,
                    message_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Append a message to a thread.

        Args:
            thread_id: Target thread
            owner: Caller identity, must own the thread
            role: 'user' or 'assistant'
            content: Message text or serialized parts
            message_id: Optional caller-chosen id. The message is stored under
                exactly this id; adding the same id to the same thread again
                returns the existing record without writing.

        Returns:
            Dict with 'message_id', 'is_first_message' and 'created'
        """
        if role not in self.VALID_ROLES:
            raise ValueError(f"role must be one of {sorted(self.VALID_ROLES)}, got '{role}'")
        if not isinstance(content, str):
            raise ValueError("content must be a string")
        if message_id is not None:
            self._validate_string(message_id, "message_id")

        def insert(conn, cursor):
            self._require_thread(cursor, thread_id, owner)

            if message_id is not None:
                cursor.execute("SELECT thread_id FROM messages WHERE id = ?", (message_id,))
                existing = cursor.fetchone()
                if existing is not None:
                    if existing["thread_id"] != thread_id:
                        raise ValueError(f"Message id {message_id} already belongs to another thread")
                    logger.debug(f"Message {message_id} already persisted, skipping duplicate write")
                    return {"message_id": message_id, "is_first_message": False, "created": False}

            is_first_message = False
            if role == 'user':
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM messages WHERE thread_id = ? AND role = 'user'",
                    (thread_id,)
                )
                is_first_message = cursor.fetchone()["count"] == 0

            new_id = message_id or f"msg_{uuid.uuid4().hex}"
            now = _now_ms()
            cursor.execute(
                "INSERT INTO messages (id, thread_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (new_id, thread_id, role, content, now)
            )
            if role == 'assistant':
                cursor.execute(
                    "UPDATE threads SET updated_at = ?, last_ai_response_at = ? WHERE id = ?",
                    (now, now, thread_id)
                )
            else:
                cursor.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now, thread_id))
            conn.commit()

            logger.debug(f"Saved new message {new_id} for thread {thread_id}: {role} - {content[:50]}...")
            return {"message_id": new_id, "is_first_message": is_first_message, "created": True}

        return self._execute_with_connection("adding message", insert)

    def list_messages(self, thread_id: str, owner: str) -> List[Dict[str, Any]]:
        """Messages of a thread in creation order."""
        def query(conn, cursor):
            self._require_thread(cursor, thread_id, owner)
            cursor.execute(
                "SELECT * FROM messages WHERE thread_id = ? ORDER BY created_at ASC, rowid ASC",
                (thread_id,)
            )
            return [self._message_row_to_dict(row) for row in cursor.fetchall()]

        return self._execute_with_connection("listing messages", query)

    def get_message(self, message_id: str, owner: str) -> Dict[str, Any]:
        def query(conn, cursor):
            return self._message_row_to_dict(self._require_message(cursor, message_id, owner))

        return self._execute_with_connection("getting message", query)

    def update_message(self, message_id: str, owner: str, content: str) -> bool:
        """Replace the content of a persisted message."""
        if not isinstance(content, str):
            raise ValueError("content must be a string")

        def update(conn, cursor):
            row = self._require_message(cursor, message_id, owner)
            cursor.execute("UPDATE messages SET content = ? WHERE id = ?", (content, message_id))
            updated = cursor.rowcount > 0
            cursor.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (_now_ms(), row["thread_id"]))
            conn.commit()
            return updated

        return self._execute_with_connection("updating message", update)

    def delete_message(self, message_id: str, owner: str) -> bool:
        def delete(conn, cursor):
            self._require_message(cursor, message_id, owner)
            cursor.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            conn.commit()
            return cursor.rowcount > 0

        return self._execute_with_connection("deleting message", delete)


db = DatabaseManager()
