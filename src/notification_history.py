"""SQLite history of dispatched task notifications."""
import json
import aiosqlite
from pathlib import Path
from typing import Optional, List, Dict, Any


# Default database location
DEFAULT_DB_PATH = Path.home() / ".tasks-mcp" / "notifications.db"

DEFAULT_HISTORY_LIMIT = 100


class NotificationHistory:
    """Keeps the most recent notifications, newest first.

    Only the newest ``max_entries`` rows are kept; older ones are pruned
    on every insert.
    """

    def __init__(self, db_path: Optional[Path] = None, max_entries: int = DEFAULT_HISTORY_LIMIT):
        self.db_path = db_path or DEFAULT_DB_PATH
        self.max_entries = max_entries
        self._connection: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Initialize the database, creating the notifications table if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                notification_id TEXT NOT NULL,
                type TEXT NOT NULL,
                recipient TEXT NOT NULL,
                subject TEXT NOT NULL,
                body TEXT NOT NULL,
                priority TEXT NOT NULL,
                status TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                delivery_ms INTEGER NOT NULL,
                task TEXT
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_sent_at
            ON notifications(sent_at DESC)
        """)

        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("NotificationHistory not initialized. Call initialize() first.")
        return self._connection

    async def record(self, notification: Dict[str, Any]) -> int:
        """Store a dispatched notification.

        Args:
            notification: Dict with ``id``, ``type``, ``to``, ``subject``, ``body``,
                ``priority``, ``status``, ``sent_at``, ``delivery_ms`` and ``task``

        Returns:
            Row ID of the stored notification
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            """
            INSERT INTO notifications
                (notification_id, type, recipient, subject, body, priority, status, sent_at, delivery_ms, task)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification["id"],
                notification["type"],
                notification["to"],
                notification["subject"],
                notification["body"],
                notification["priority"],
                notification["status"],
                notification["sent_at"],
                notification["delivery_ms"],
                json.dumps(notification.get("task"), default=str),
            ),
        )
        row_id = cursor.lastrowid

        # Keep only the newest entries
        await connection.execute(
            """
            DELETE FROM notifications WHERE id NOT IN (
                SELECT id FROM notifications ORDER BY id DESC LIMIT ?
            )
            """,
            (self.max_entries,),
        )
        await connection.commit()

        return row_id

    async def get_history(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Get recent notifications.

        Args:
            limit: Maximum number of notifications to return

        Returns:
            List of notification records, newest first
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT * FROM notifications ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()

        return [self._row_to_dict(row) for row in rows]

    async def count(self) -> int:
        """Number of stored notifications."""
        connection = self._require_connection()
        cursor = await connection.execute("SELECT COUNT(*) FROM notifications")
        row = await cursor.fetchone()
        return row[0]

    async def clear(self) -> None:
        """Delete all stored notifications."""
        connection = self._require_connection()
        await connection.execute("DELETE FROM notifications")
        await connection.commit()

    def _row_to_dict(self, row: aiosqlite.Row) -> Dict[str, Any]:
        """Convert a database row to a notification dictionary."""
        result = dict(row)
        result.pop("id", None)
        result["id"] = result.pop("notification_id")
        result["to"] = result.pop("recipient")
        if result.get("task"):
            try:
                result["task"] = json.loads(result["task"])
            except json.JSONDecodeError:
                result["task"] = None
        return result


# Global history instance
_notification_history: Optional[NotificationHistory] = None


async def get_notification_history() -> NotificationHistory:
    """Get or create the global notification history instance.

    Returns:
        Initialized NotificationHistory
    """
    global _notification_history

    if _notification_history is None:
        from src.config import get_config
        config = get_config().notifications
        _notification_history = NotificationHistory(config.db_path, config.history_limit)
        await _notification_history.initialize()

    return _notification_history
