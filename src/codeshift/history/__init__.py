"""History storage backends, models and the live history store."""

from codeshift.history.base import HistoryBackend
from codeshift.history.errors import HistoryError, LegacyFormatError, PersistenceError
from codeshift.history.memory import InMemoryHistoryBackend
from codeshift.history.models import HistoryItem, HistorySnapshot, NewHistoryItem, UserSettings
from codeshift.history.postgres import PostgresHistoryBackend
from codeshift.history.store import HistoryStore, Subscription

__all__ = [
    "HistoryBackend",
    "HistoryError",
    "HistoryItem",
    "HistorySnapshot",
    "HistoryStore",
    "InMemoryHistoryBackend",
    "LegacyFormatError",
    "NewHistoryItem",
    "PersistenceError",
    "PostgresHistoryBackend",
    "Subscription",
    "UserSettings",
]
