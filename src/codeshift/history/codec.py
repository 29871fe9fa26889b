"""Read-time migration of stored history records.

Two record layouts exist:
- current: ``{type, input, output, analysis, timestamp}`` (``output`` is the
  JSON-serialized item list)
- single-tool release: ``{css, tailwindData, analysis, timestamp}``

Stored outputs are decoded with the current shape coercion; anything that
fails to parse degrades to one synthetic item instead of failing the load.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from codeshift.conversion.models import ConversionItem, ResultShape
from codeshift.conversion.shapes import items_from_value
from codeshift.conversion.tasks import CSS_TO_TAILWIND, TaskConfig, find_task
from codeshift.history.errors import LegacyFormatError
from codeshift.history.models import HistoryItem, NewHistoryItem, now_ms

logger = logging.getLogger(__name__)

LEGACY_SOURCE_LABEL = "Error"
LEGACY_OUTPUT_LABEL = "Could not parse legacy data"


def parse_output(item: HistoryItem, task: TaskConfig) -> tuple[list[ConversionItem], ResultShape]:
    """Decode ``item.serialized_output``; raises ``LegacyFormatError``."""
    try:
        value = json.loads(item.serialized_output)
    except (json.JSONDecodeError, TypeError) as exc:
        raise LegacyFormatError(
            f"History item {item.id} output is not valid JSON",
            item_id=item.id,
            raw_value=item.serialized_output,
        ) from exc
    if isinstance(value, dict) and "conversions" in value:
        value = value["conversions"]
    return items_from_value(value, task)


def decode_output(item: HistoryItem, task: TaskConfig | None = None) -> list[ConversionItem]:
    """Decode a stored output, degrading to one flagged item on failure."""
    resolved = task or find_task(item.type) or CSS_TO_TAILWIND
    try:
        items, _ = parse_output(item, resolved)
    except LegacyFormatError as exc:
        logger.warning("history_decode event=legacy_fallback item_id=%s reason=%s", exc.item_id, exc)
        return [legacy_item(exc.raw_value, resolved)]
    return items


def legacy_item(raw_value: str, task: TaskConfig) -> ConversionItem:
    return ConversionItem.model_validate(
        {
            task.source_key: LEGACY_SOURCE_LABEL,
            task.output_key: LEGACY_OUTPUT_LABEL,
            "raw": raw_value,
            "legacy": True,
        }
    )


def new_item_from_document(document: dict[str, Any]) -> NewHistoryItem:
    """Map an exported history document (either layout) onto a new record."""
    if "css" in document and "input" not in document:
        input_text = document.get("css")
        output = document.get("tailwindData")
        kind = "css"
    else:
        input_text = document.get("input")
        output = document.get("output")
        kind = document.get("type") or "css"

    if not isinstance(output, str):
        output = json.dumps(output if output is not None else [], ensure_ascii=False)
    timestamp = document.get("timestamp")
    return NewHistoryItem(
        type=str(kind),
        input_text=str(input_text or ""),
        serialized_output=output,
        analysis=str(document.get("analysis") or ""),
        timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else now_ms(),
    )


def preview(text: str, max_chars: int = 30) -> str:
    return text[:max_chars] + ("..." if len(text) > max_chars else "")
