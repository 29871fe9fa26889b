"""Anonymous identity and per-session history lifecycle."""

from codeshift.session.identity import (
    AnonymousIdentityProvider,
    IdentityError,
    IdentityProvider,
    is_valid_user_id,
    new_user_id,
)
from codeshift.session.session import HistorySession, ReplayedConversion, SessionState, replay_item

__all__ = [
    "AnonymousIdentityProvider",
    "HistorySession",
    "IdentityError",
    "IdentityProvider",
    "ReplayedConversion",
    "SessionState",
    "is_valid_user_id",
    "new_user_id",
    "replay_item",
]
