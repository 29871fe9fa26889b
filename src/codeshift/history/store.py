"""Per-user conversion history with live subscriptions and retention.

Terms used in this file:
- Page: the ``limit`` most recent items of one user, newest first.
- Subscription: a standing registration that receives a fresh page snapshot
  after every change made through the store, until it is cancelled.
- Sweep: deletion of items older than the retention window unless the user
  keeps history forever.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

from codeshift.history.base import HistoryBackend
from codeshift.history.codec import new_item_from_document
from codeshift.history.errors import PersistenceError
from codeshift.history.models import (
    DAY_MS,
    HistoryItem,
    HistorySnapshot,
    NewHistoryItem,
    UserSettings,
    now_ms,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[HistorySnapshot], None]
ErrorListener = Callable[[Exception], None]


class Subscription:
    """Handle for one live history view; releasing it stops deliveries."""

    def __init__(
        self,
        store: HistoryStore,
        *,
        user_id: str,
        limit: int,
        on_snapshot: SnapshotListener,
        on_error: ErrorListener | None,
    ) -> None:
        self.user_id = user_id
        self.limit = limit
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._active = True
        self.latest: HistorySnapshot | None = None

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._unregister(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.cancel()

    def _deliver(self, snapshot: HistorySnapshot) -> None:
        self.latest = snapshot
        self._on_snapshot(snapshot)

    def _fail(self, exc: Exception) -> None:
        self.cancel()
        if self._on_error is not None:
            self._on_error(exc)


class HistoryStore:
    def __init__(
        self,
        backend: HistoryBackend,
        *,
        page_size: int = 50,
        retention_days: int = 30,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.backend = backend
        self.page_size = page_size
        self.retention_ms = retention_days * DAY_MS
        self._clock = clock
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._sweeping: set[str] = set()

    def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotListener,
        *,
        limit: int | None = None,
        on_error: ErrorListener | None = None,
    ) -> Subscription:
        """Register a live view and deliver the current page immediately."""
        subscription = Subscription(
            self,
            user_id=user_id,
            limit=limit or self.page_size,
            on_snapshot=on_snapshot,
            on_error=on_error,
        )
        with self._lock:
            self._subscriptions.setdefault(user_id, []).append(subscription)
        logger.info("history_subscription event=opened user_id=%s limit=%d", user_id, subscription.limit)
        self._deliver(subscription)
        return subscription

    def snapshot(self, user_id: str, *, limit: int | None = None) -> HistorySnapshot:
        """One delivery cycle: open a subscription, take its first page, release it."""
        errors: list[Exception] = []
        with self.subscribe(user_id, lambda _snapshot: None, limit=limit, on_error=errors.append) as sub:
            if errors:
                raise PersistenceError(str(errors[0]), operation="list") from errors[0]
            if sub.latest is None:
                raise PersistenceError("History page was not delivered", operation="list")
            return sub.latest

    def append(self, user_id: str, item: NewHistoryItem) -> HistoryItem:
        try:
            record = self.backend.insert(user_id, item)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to save history item: {exc}", operation="append") from exc
        logger.info("history_write event=appended user_id=%s item_id=%s type=%s", user_id, record.id, record.type)
        self._publish(user_id)
        return record

    def import_documents(self, user_id: str, documents: Iterable[dict[str, Any]]) -> list[HistoryItem]:
        """Insert exported history documents written under either record layout."""
        records: list[HistoryItem] = []
        try:
            for document in documents:
                records.append(self.backend.insert(user_id, new_item_from_document(document)))
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to import history: {exc}", operation="import") from exc
        finally:
            if records:
                self._publish(user_id)
        logger.info("history_write event=imported user_id=%s count=%d", user_id, len(records))
        return records

    def get_item(self, user_id: str, item_id: str) -> HistoryItem | None:
        try:
            return self.backend.get_item(user_id, item_id)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to read history item: {exc}", operation="get") from exc

    def delete_one(self, user_id: str, item_id: str) -> bool:
        try:
            removed = self.backend.delete(user_id, item_id)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to delete history item: {exc}", operation="delete") from exc
        if removed:
            self._publish(user_id)
        return removed

    def delete_all(self, user_id: str) -> int:
        try:
            removed = self.backend.delete_all(user_id)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to clear history: {exc}", operation="delete_all") from exc
        logger.info("history_write event=cleared user_id=%s count=%d", user_id, removed)
        self._publish(user_id)
        return removed

    def load_settings(self, user_id: str) -> UserSettings:
        try:
            raw = self.backend.get_settings(user_id)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to load settings: {exc}", operation="load_settings") from exc
        return UserSettings.model_validate(raw or {})

    def save_settings(self, user_id: str, settings: UserSettings) -> UserSettings:
        try:
            merged = self.backend.merge_settings(user_id, settings.to_document())
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to save settings: {exc}", operation="save_settings") from exc
        logger.info("history_settings event=saved user_id=%s keep_forever=%s", user_id, settings.keep_forever)
        # Turning keep-forever off makes expired items eligible again.
        self._publish(user_id)
        return UserSettings.model_validate(merged)

    def sweep_expired(
        self,
        user_id: str,
        items: Iterable[HistoryItem],
        *,
        now: int | None = None,
        settings: UserSettings | None = None,
    ) -> list[str]:
        """Delete items older than the retention window in one atomic batch."""
        current = settings if settings is not None else self.load_settings(user_id)
        if current.keep_forever:
            return []
        cutoff = (now if now is not None else self._clock()) - self.retention_ms
        expired = [item.id for item in items if item.timestamp < cutoff]
        if not expired:
            return []
        try:
            removed = self.backend.delete_many(user_id, expired)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to delete expired history: {exc}", operation="sweep") from exc
        logger.info(
            "history_sweep event=deleted user_id=%s expired=%d removed=%d",
            user_id,
            len(expired),
            removed,
        )
        if removed:
            self._publish(user_id)
        return expired

    def _unregister(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.user_id, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                self._subscriptions.pop(subscription.user_id, None)
        logger.info("history_subscription event=closed user_id=%s", subscription.user_id)

    def _publish(self, user_id: str) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.get(user_id, []))
        for subscription in subscriptions:
            self._deliver(subscription)

    def _deliver(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        try:
            items = self.backend.list_recent(subscription.user_id, subscription.limit)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "history_subscription event=failed user_id=%s reason=%s",
                subscription.user_id,
                exc,
            )
            subscription._fail(PersistenceError(str(exc), operation="list"))
            return
        subscription._deliver(HistorySnapshot(user_id=subscription.user_id, items=tuple(items)))
        self._sweep_after_delivery(subscription.user_id, items)

    def _sweep_after_delivery(self, user_id: str, items: list[HistoryItem]) -> None:
        cutoff = self._clock() - self.retention_ms
        if not any(item.timestamp < cutoff for item in items):
            return
        with self._lock:
            if user_id in self._sweeping:
                return
            self._sweeping.add(user_id)
        try:
            deleted = self.sweep_expired(user_id, items)
        except Exception as exc:  # noqa: BLE001
            logger.warning("history_sweep event=failed user_id=%s reason=%s", user_id, exc)
            return
        finally:
            with self._lock:
                self._sweeping.discard(user_id)
        if deleted:
            logger.info("history_sweep event=completed user_id=%s count=%d", user_id, len(deleted))
