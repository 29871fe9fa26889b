"""Lifecycle of one browser session's view of its history.

States:
- disconnected: no identity yet, or the session was closed.
- authenticating: anonymous sign-in in flight.
- subscribed: live history page and settings are loaded; re-entered on every
  push from the subscription.
- error: sign-in failed or the live subscription was lost. Nothing is retried
  automatically; the reason is kept in ``status``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from codeshift.conversion.models import ConversionItem, ConversionResult
from codeshift.conversion.tasks import TaskConfig, find_task
from codeshift.history.codec import decode_output
from codeshift.history.errors import PersistenceError
from codeshift.history.models import HistoryItem, HistorySnapshot, NewHistoryItem, UserSettings, now_ms
from codeshift.history.store import HistoryStore, Subscription
from codeshift.session.identity import IdentityError, IdentityProvider

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


@dataclass(frozen=True)
class ReplayedConversion:
    """A history entry decoded for display in its converter."""

    item_id: str
    type: str
    input_text: str
    items: list[ConversionItem]
    analysis: str
    timestamp: int


class HistorySession:
    def __init__(
        self,
        *,
        identity: IdentityProvider,
        store: HistoryStore,
        limit: int | None = None,
        on_change: Callable[[HistorySession], None] | None = None,
    ) -> None:
        self.identity = identity
        self.store = store
        self.limit = limit
        self.state = SessionState.DISCONNECTED
        self.status = "Connecting..."
        self.user_id: str | None = None
        self.history: tuple[HistoryItem, ...] = ()
        self.settings = UserSettings()
        self._on_change = on_change
        self._subscription: Subscription | None = None
        self._auth_unsubscribe: Callable[[], None] | None = None

    def connect(self) -> None:
        if self.state in (SessionState.AUTHENTICATING, SessionState.SUBSCRIBED):
            return
        self._set(SessionState.AUTHENTICATING, "Attempting anonymous sign-in...")
        if self._auth_unsubscribe is None:
            self._auth_unsubscribe = self.identity.on_auth_state_changed(self._on_auth_state_changed)
        try:
            self.identity.sign_in_anonymously()
        except IdentityError as exc:
            logger.error("session event=auth_failed code=%s reason=%s", exc.code, exc)
            self._release_subscription()
            self.history = ()
            self._set(SessionState.ERROR, f"Auth Error: {exc.code}")

    def close(self) -> None:
        self._release_subscription()
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        self.history = ()
        self._set(SessionState.DISCONNECTED, "")

    def toggle_keep_forever(self) -> UserSettings:
        user_id = self._require_user()
        desired = self.settings.model_copy(update={"keep_forever": not self.settings.keep_forever})
        self.settings = self.store.save_settings(user_id, desired)
        return self.settings

    def delete_item(self, item_id: str) -> bool:
        return self.store.delete_one(self._require_user(), item_id)

    def clear_all(self) -> int:
        return self.store.delete_all(self._require_user())

    def record_conversion(self, task: TaskConfig, input_text: str, result: ConversionResult) -> HistoryItem | None:
        """Persist a displayed result; a failed write never raises."""
        if self.user_id is None:
            return None
        item = NewHistoryItem(
            type=task.kind,
            input_text=input_text,
            serialized_output=result.serialize_items(),
            analysis=result.analysis,
            timestamp=now_ms(),
        )
        try:
            return self.store.append(self.user_id, item)
        except PersistenceError as exc:
            logger.error("session event=save_failed user_id=%s reason=%s", self.user_id, exc)
            return None

    def replay(self, item_id: str) -> ReplayedConversion | None:
        item = next((entry for entry in self.history if entry.id == item_id), None)
        if item is None and self.user_id is not None:
            item = self.store.get_item(self.user_id, item_id)
        if item is None:
            return None
        return replay_item(item)

    def _on_auth_state_changed(self, user_id: str | None) -> None:
        if user_id is None:
            self._release_subscription()
            self.user_id = None
            self.history = ()
            self._set(SessionState.DISCONNECTED, "Signed out.")
            return
        if user_id == self.user_id and self._subscription is not None and self._subscription.active:
            return

        self._release_subscription()
        self.user_id = user_id
        try:
            self.settings = self.store.load_settings(user_id)
        except PersistenceError as exc:
            self._on_subscription_error(exc)
            return
        self._set(SessionState.SUBSCRIBED, "")
        self._subscription = self.store.subscribe(
            user_id,
            self._on_snapshot,
            limit=self.limit,
            on_error=self._on_subscription_error,
        )

    def _on_snapshot(self, snapshot: HistorySnapshot) -> None:
        self.history = snapshot.items
        self._set(SessionState.SUBSCRIBED, "")

    def _on_subscription_error(self, exc: Exception) -> None:
        code = exc.operation if isinstance(exc, PersistenceError) else type(exc).__name__
        logger.warning("session event=subscription_lost user_id=%s code=%s", self.user_id, code)
        self._release_subscription()
        # Stale data is never shown once the live view is gone.
        self.history = ()
        self._set(SessionState.ERROR, f"Database Error: {code}")

    def _release_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _require_user(self) -> str:
        if self.user_id is None:
            raise RuntimeError("Session has no signed-in user")
        return self.user_id

    def _set(self, state: SessionState, status: str) -> None:
        self.state = state
        self.status = status
        if self._on_change is not None:
            self._on_change(self)


def replay_item(item: HistoryItem) -> ReplayedConversion:
    return ReplayedConversion(
        item_id=item.id,
        type=item.type,
        input_text=item.input_text,
        items=decode_output(item, find_task(item.type)),
        analysis=item.analysis,
        timestamp=item.timestamp,
    )
