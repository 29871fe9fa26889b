"""Anonymous identity collaborator."""

from __future__ import annotations

import logging
import re
import threading
from typing import Callable, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)

AuthListener = Callable[[str | None], None]

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,128}$")


class IdentityError(Exception):
    """Sign-in failed; ``code`` is shown to the user as the status reason."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class IdentityProvider(Protocol):
    def sign_in_anonymously(self) -> str: ...

    def sign_out(self) -> None: ...

    def on_auth_state_changed(self, listener: AuthListener) -> Callable[[], None]: ...


class AnonymousIdentityProvider:
    """Issues opaque anonymous user ids, optionally resuming a known one."""

    def __init__(self, *, user_id: str | None = None) -> None:
        if user_id is not None and not is_valid_user_id(user_id):
            raise IdentityError("auth/invalid-user-token", "Stored anonymous id is malformed")
        self._lock = threading.Lock()
        self._user_id = user_id
        self._listeners: list[AuthListener] = []

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    def sign_in_anonymously(self) -> str:
        with self._lock:
            if self._user_id is None:
                self._user_id = new_user_id()
                logger.info("identity event=signed_in user_id=%s", self._user_id)
            user_id = self._user_id
        self._notify(user_id)
        return user_id

    def sign_out(self) -> None:
        with self._lock:
            self._user_id = None
        self._notify(None)

    def on_auth_state_changed(self, listener: AuthListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, user_id: str | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(user_id)


def new_user_id() -> str:
    return uuid4().hex


def is_valid_user_id(value: str | None) -> bool:
    return bool(value) and _USER_ID_RE.match(value or "") is not None
