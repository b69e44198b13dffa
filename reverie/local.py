"""
Local backends: a SQLite entry table and a directory of media files.

These stand in for the backend-as-a-service on a single machine and
follow the same contracts: the table issues ids and timestamps and
scopes every query by user_id; storage is create-only.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from .errors import RemoteError, StorageError
from .types import format_timestamp, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id", "user_id", "title", "content", "tags", "type",
    "media_url", "summary", "wallpaper", "created_at", "updated_at",
)
_MUTABLE = frozenset(_COLUMNS) - {"id", "user_id", "created_at"}


class LocalEntryTable:
    """
    SQLite-backed entry table.

    Ids are the table's integer row ids rendered as strings.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS journal_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                tags_json TEXT NOT NULL DEFAULT '[]',
                type TEXT NOT NULL DEFAULT 'text',
                media_url TEXT,
                summary TEXT,
                wallpaper TEXT NOT NULL DEFAULT 'default',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # Every query filters by owner
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_user_created
            ON journal_entries(user_id, created_at)
        """)

        self._conn.commit()

    def _to_dict(self, row: sqlite3.Row) -> dict[str, Any]:
        data = {k: row[k] for k in row.keys() if k != "tags_json"}
        data["id"] = str(row["id"])
        data["tags"] = json.loads(row["tags_json"])
        return data

    def _get(self, id: str, user_id: str) -> Optional[dict[str, Any]]:
        cursor = self._conn.execute(
            "SELECT * FROM journal_entries WHERE id = ? AND user_id = ?",
            (id, user_id),
        )
        row = cursor.fetchone()
        return self._to_dict(row) if row else None

    async def select(self, user_id: str) -> list[dict[str, Any]]:
        try:
            cursor = self._conn.execute("""
                SELECT * FROM journal_entries
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
            """, (user_id,))
            return [self._to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RemoteError(f"Failed to fetch entries: {e}") from e

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        now = format_timestamp(utc_now())
        try:
            cursor = self._conn.execute("""
                INSERT INTO journal_entries
                (user_id, title, content, tags_json, type, media_url, summary,
                 wallpaper, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                row["user_id"],
                row["title"],
                row.get("content") or "",
                json.dumps(list(row.get("tags") or []), ensure_ascii=False),
                row.get("type") or "text",
                row.get("media_url"),
                row.get("summary"),
                row.get("wallpaper") or "default",
                row.get("created_at") or now,
                now,
            ))
            self._conn.commit()
        except (sqlite3.Error, KeyError) as e:
            raise RemoteError(f"Failed to create entry: {e}") from e
        return self._get(str(cursor.lastrowid), row["user_id"])

    async def update(
        self,
        id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        unknown = set(changes) - _MUTABLE
        if unknown:
            raise RemoteError(f"Cannot update columns: {sorted(unknown)}")

        values = dict(changes)
        values.setdefault("updated_at", format_timestamp(utc_now()))
        if "tags" in values:
            values["tags_json"] = json.dumps(list(values.pop("tags") or []), ensure_ascii=False)
        assignments = ", ".join(f"{col} = ?" for col in values)
        try:
            cursor = self._conn.execute(
                f"UPDATE journal_entries SET {assignments} WHERE id = ? AND user_id = ?",
                (*values.values(), id, user_id),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise RemoteError(f"Failed to update entry: {e}") from e
        if cursor.rowcount == 0:
            return None
        return self._get(id, user_id)

    async def delete(self, id: str, user_id: str) -> bool:
        try:
            cursor = self._conn.execute(
                "DELETE FROM journal_entries WHERE id = ? AND user_id = ?",
                (id, user_id),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise RemoteError(f"Failed to delete entry: {e}") from e
        return cursor.rowcount > 0

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class LocalStorage:
    """Create-only object storage in a directory; URLs are file:// URIs."""

    def __init__(self, root: Path):
        self._root = root

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Invalid object key: {key}")
        return path

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb" if upsert else "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(f"Object already exists: {key}") from e
        except OSError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        logger.debug("Stored %s (%s, %d bytes)", key, content_type, len(data))

    def public_url(self, key: str) -> str:
        return self._path(key).as_uri()

    async def close(self) -> None:
        pass
