"""Failures raised by the history store."""

from __future__ import annotations


class HistoryError(Exception):
    pass


class PersistenceError(HistoryError):
    """A store read, write or delete failed."""

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(message)
        self.operation = operation


class LegacyFormatError(HistoryError):
    """A stored output could not be parsed under the current schema."""

    def __init__(self, message: str, *, item_id: str, raw_value: str) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.raw_value = raw_value
