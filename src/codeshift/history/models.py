"""Storage models shared by the history store and its backends."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class NewHistoryItem(BaseModel):
    """Client-written fields of a history record; the store assigns ``id``."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1)
    input_text: str
    serialized_output: str
    analysis: str = ""
    # Epoch milliseconds captured when the result was shown, not when stored.
    timestamp: int


class HistoryItem(NewHistoryItem):
    """Persisted history record."""

    id: str


class UserSettings(BaseModel):
    """Per-user preferences; unknown fields are kept so saves merge cleanly."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    keep_forever: bool = Field(default=False, alias="keepForever")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class HistorySnapshot(BaseModel):
    """One immutable delivery of a user's most recent history page."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    items: tuple[HistoryItem, ...] = ()
    delivered_at: int = Field(default_factory=now_ms)
