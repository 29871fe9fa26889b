"""Run a conversion and record it in the user's history."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from codeshift.conversion.errors import ConversionError
from codeshift.conversion.gateway import ConversionGateway
from codeshift.conversion.models import ConversionResult
from codeshift.conversion.tasks import TaskConfig
from codeshift.history.errors import PersistenceError
from codeshift.history.models import HistoryItem, NewHistoryItem, now_ms
from codeshift.history.store import HistoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOutcome:
    task: TaskConfig
    input_text: str
    result: ConversionResult | None = None
    error: ConversionError | None = None
    history_item: HistoryItem | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def analysis(self) -> str:
        """Text shown above the results; failures are labeled ``Error:``."""
        if self.error is not None:
            return f"Error: {self.error.display()}"
        return self.result.analysis if self.result is not None else ""


class ConversionService:
    def __init__(self, *, gateway: ConversionGateway, store: HistoryStore) -> None:
        self.gateway = gateway
        self.store = store

    def convert(self, task: TaskConfig, input_text: str, *, user_id: str | None = None) -> ConversionOutcome:
        """Convert ``input_text``; failures come back as a labeled outcome, not an exception."""
        try:
            result = self.gateway.convert(input_text, task)
        except ConversionError as exc:
            logger.info(
                "conversion event=failed task=%s error_type=%s message=%s",
                task.kind,
                type(exc).__name__,
                exc,
            )
            return ConversionOutcome(task=task, input_text=input_text, error=exc)

        history_item = self.record(task, input_text, result, user_id=user_id) if user_id else None
        return ConversionOutcome(
            task=task,
            input_text=input_text,
            result=result,
            history_item=history_item,
        )

    def record(
        self,
        task: TaskConfig,
        input_text: str,
        result: ConversionResult,
        *,
        user_id: str,
        timestamp: int | None = None,
    ) -> HistoryItem | None:
        """Append a successful result; a failed write is logged and dropped."""
        item = NewHistoryItem(
            type=task.kind,
            input_text=input_text,
            serialized_output=result.serialize_items(),
            analysis=result.analysis,
            timestamp=timestamp if timestamp is not None else now_ms(),
        )
        try:
            return self.store.append(user_id, item)
        except PersistenceError as exc:
            logger.error("history_write event=save_failed user_id=%s task=%s reason=%s", user_id, task.kind, exc)
            return None
