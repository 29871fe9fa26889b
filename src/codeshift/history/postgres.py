"""PostgreSQL-backed history storage with automatic table migration."""

from __future__ import annotations

import json
import threading
import uuid
from typing import Any

from codeshift.history.models import HistoryItem, NewHistoryItem


class PostgresHistoryBackend:
    """Persist conversion history and user settings in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("CODESHIFT_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversions (
                    id UUID PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    input_text TEXT NOT NULL,
                    serialized_output TEXT NOT NULL,
                    analysis TEXT NOT NULL DEFAULT '',
                    timestamp BIGINT NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_conversions_user_timestamp
                ON conversions(user_id, timestamp DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_settings (
                    user_id TEXT PRIMARY KEY,
                    settings_json JSONB NOT NULL DEFAULT '{}'::jsonb
                )
                """)
            conn.commit()

    def list_recent(self, user_id: str, limit: int) -> list[HistoryItem]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM conversions
                WHERE user_id = %s
                ORDER BY timestamp DESC
                LIMIT %s
                """,
                (user_id, max(0, limit)),
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def get_item(self, user_id: str, item_id: str) -> HistoryItem | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversions WHERE user_id = %s AND id::text = %s",
                (user_id, item_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def insert(self, user_id: str, item: NewHistoryItem) -> HistoryItem:
        item_id = uuid.uuid4()
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversions (
                    id,
                    user_id,
                    type,
                    input_text,
                    serialized_output,
                    analysis,
                    timestamp
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    item_id,
                    user_id,
                    item.type,
                    item.input_text,
                    item.serialized_output,
                    item.analysis,
                    item.timestamp,
                ),
            )
            conn.commit()
        return HistoryItem(id=str(item_id), **item.model_dump())

    def delete(self, user_id: str, item_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM conversions WHERE user_id = %s AND id::text = %s",
                (user_id, item_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def delete_many(self, user_id: str, item_ids: list[str]) -> int:
        if not item_ids:
            return 0
        # One statement inside one transaction: all listed rows go, or none do.
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM conversions WHERE user_id = %s AND id::text = ANY(%s)",
                (user_id, list(item_ids)),
            )
            conn.commit()
        return cursor.rowcount

    def delete_all(self, user_id: str) -> int:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM conversions WHERE user_id = %s", (user_id,))
            conn.commit()
        return cursor.rowcount

    def get_settings(self, user_id: str) -> dict[str, Any] | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT settings_json FROM user_settings WHERE user_id = %s",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._parse_json_object(row["settings_json"])

    def merge_settings(self, user_id: str, values: dict[str, Any]) -> dict[str, Any]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO user_settings (user_id, settings_json)
                VALUES (%s, %s)
                ON CONFLICT (user_id) DO UPDATE
                SET settings_json = user_settings.settings_json || EXCLUDED.settings_json
                RETURNING settings_json
                """,
                (user_id, self._json_wrapper(values)),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to persist user settings")
        return self._parse_json_object(row["settings_json"])

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL history requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_object(raw: Any) -> dict[str, Any]:
        if isinstance(raw, str):
            parsed = json.loads(raw)
        else:
            parsed = raw
        if isinstance(parsed, dict):
            return parsed
        return {}

    @staticmethod
    def _row_to_item(row: Any) -> HistoryItem:
        return HistoryItem(
            id=str(row["id"]),
            type=row.get("type") or "css",
            input_text=row["input_text"],
            serialized_output=row["serialized_output"],
            analysis=row.get("analysis") or "",
            timestamp=int(row["timestamp"]),
        )
