"""Storage interface for per-user conversion history."""

from __future__ import annotations

from typing import Any, Protocol

from codeshift.history.models import HistoryItem, NewHistoryItem


class HistoryBackend(Protocol):
    def migrate(self) -> None: ...

    def list_recent(self, user_id: str, limit: int) -> list[HistoryItem]: ...

    def get_item(self, user_id: str, item_id: str) -> HistoryItem | None: ...

    def insert(self, user_id: str, item: NewHistoryItem) -> HistoryItem: ...

    def delete(self, user_id: str, item_id: str) -> bool: ...

    def delete_many(self, user_id: str, item_ids: list[str]) -> int: ...

    def delete_all(self, user_id: str) -> int: ...

    def get_settings(self, user_id: str) -> dict[str, Any] | None: ...

    def merge_settings(self, user_id: str, values: dict[str, Any]) -> dict[str, Any]: ...
