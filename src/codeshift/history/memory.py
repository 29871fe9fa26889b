"""In-memory history backend for local runs and tests."""

from __future__ import annotations

import itertools
import threading
from typing import Any
from uuid import uuid4

from codeshift.history.models import HistoryItem, NewHistoryItem


class InMemoryHistoryBackend:
    """Dict-backed implementation; every method holds one lock, so multi-deletes are atomic."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Insertion sequence breaks timestamp ties, newest write first.
        self._seq = itertools.count()
        self._items: dict[str, dict[str, tuple[int, HistoryItem]]] = {}
        self._settings: dict[str, dict[str, Any]] = {}

    def migrate(self) -> None:
        return None

    def list_recent(self, user_id: str, limit: int) -> list[HistoryItem]:
        with self._lock:
            entries = list(self._items.get(user_id, {}).values())
        entries.sort(key=lambda entry: (entry[1].timestamp, entry[0]), reverse=True)
        return [item for _, item in entries[: max(0, limit)]]

    def get_item(self, user_id: str, item_id: str) -> HistoryItem | None:
        with self._lock:
            entry = self._items.get(user_id, {}).get(item_id)
        return entry[1] if entry is not None else None

    def insert(self, user_id: str, item: NewHistoryItem) -> HistoryItem:
        record = HistoryItem(id=uuid4().hex, **item.model_dump())
        with self._lock:
            self._items.setdefault(user_id, {})[record.id] = (next(self._seq), record)
        return record

    def delete(self, user_id: str, item_id: str) -> bool:
        with self._lock:
            return self._items.get(user_id, {}).pop(item_id, None) is not None

    def delete_many(self, user_id: str, item_ids: list[str]) -> int:
        with self._lock:
            user_items = self._items.get(user_id, {})
            removed = 0
            for item_id in item_ids:
                if user_items.pop(item_id, None) is not None:
                    removed += 1
            return removed

    def delete_all(self, user_id: str) -> int:
        with self._lock:
            return len(self._items.pop(user_id, {}))

    def get_settings(self, user_id: str) -> dict[str, Any] | None:
        with self._lock:
            current = self._settings.get(user_id)
            return dict(current) if current is not None else None

    def merge_settings(self, user_id: str, values: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            merged = {**self._settings.get(user_id, {}), **values}
            self._settings[user_id] = merged
            return dict(merged)
