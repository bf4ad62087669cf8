"""SQLite-backed collaborators: the message row store and the settings store."""

from __future__ import annotations

import sqlite3
from pathlib import Path


def _open_db(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


# ── Message payloads ───────────────────────────────────────────────

_PAYLOAD_COLUMNS = {"image": "image_payload", "audio": "audio_payload"}


class MessageStore:
    """Read-only lookups of message payloads in `user_messages`.

    A connection is opened per lookup so handlers running on different
    threads never share one.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def _payload(self, kind: str, message_id: str) -> bytes | None:
        column = _PAYLOAD_COLUMNS[kind]
        conn = _open_db(self.db_path)
        try:
            c = conn.cursor()
            c.execute(f"SELECT {column} FROM user_messages WHERE id = ?", (message_id,))
            row = c.fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return bytes(row[0]) if row[0] is not None else b""

    def image(self, message_id: str) -> bytes | None:
        return self._payload("image", message_id)

    def audio(self, message_id: str) -> bytes | None:
        return self._payload("audio", message_id)

    def counts(self) -> dict[str, int]:
        """Count messages carrying a non-empty payload of each kind."""
        conn = _open_db(self.db_path)
        try:
            c = conn.cursor()
            c.execute("SELECT COUNT(*) FROM user_messages")
            counts = {"messages": c.fetchone()[0]}
            for kind, column in _PAYLOAD_COLUMNS.items():
                c.execute(
                    f"SELECT COUNT(*) FROM user_messages WHERE length({column}) > 0"
                )
                counts[kind] = c.fetchone()[0]
        finally:
            conn.close()
        return counts


# ── Settings ───────────────────────────────────────────────────────


class SettingsStore:
    """Key/value settings persisted in a `settings` table."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            "CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY, value BLOB)"
        )
        return conn

    def get(self, key: str) -> bytes | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return bytes(row[0]) if row and row[0] is not None else None

    def set(self, key: str, value: bytes) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        finally:
            conn.close()
