"""Coerce the response shapes the provider has produced over time into items.

The prompt contract asks for ``{"conversions": [...], "analysis": "..."}`` but
earlier prompts (and occasionally the model itself) produced other layouts.
Everything here is best-effort coercion: an object payload always yields a
result, never an error.
"""

from __future__ import annotations

import json
import re
from typing import Any

from codeshift.conversion.models import ConversionItem, ConversionResult, ResultShape
from codeshift.conversion.tasks import TaskConfig

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

# Keys earlier prompt versions used for the converted value.
_OUTPUT_ALIASES = ("output", "classes", "tailwind", "result", "converted")
_SOURCE_ALIASES = ("source", "selector", "input", "original")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences and surrounding whitespace.

    Safe to apply to text without fences; applying it twice is a no-op.
    """
    return _FENCE_RE.sub("", text or "").strip()


def normalize_payload(payload: dict[str, Any], task: TaskConfig) -> ConversionResult:
    """Map a decoded provider object onto a tagged ``ConversionResult``."""
    analysis = _as_text(payload.get("analysis"))
    if "conversions" in payload:
        items, shape = items_from_value(payload["conversions"], task)
        return ConversionResult(items=items, analysis=analysis, shape=shape)

    combined = _first_text(payload, (task.output_key, *_OUTPUT_ALIASES))
    if combined is not None:
        fields = {task.output_key: combined}
        source = _first_text(payload, (task.source_key, *_SOURCE_ALIASES))
        if source is not None:
            fields[task.source_key] = source
        item = ConversionItem.model_validate(fields)
        return ConversionResult(items=[item], analysis=analysis, shape="combined")

    rest = {key: value for key, value in payload.items() if key != "analysis"}
    if rest and all(isinstance(value, str) for value in rest.values()):
        items, _ = items_from_value(rest, task)
        return ConversionResult(items=items, analysis=analysis, shape="selector_map")
    # "legacy" is reserved for items synthesized from undecodable history.
    fields = {key: value for key, value in rest.items() if key != "legacy"}
    items = [ConversionItem.model_validate(fields)] if fields else []
    return ConversionResult(items=items, analysis=analysis, shape="open")


def items_from_value(value: Any, task: TaskConfig) -> tuple[list[ConversionItem], ResultShape]:
    """Coerce a ``conversions`` value (or a stored output) into items."""
    if isinstance(value, list):
        return [_item_from_entry(entry, task) for entry in value], "pairs"
    if isinstance(value, dict):
        items = [
            ConversionItem.model_validate(
                {task.source_key: str(key), task.output_key: _as_text(classes)}
            )
            for key, classes in value.items()
        ]
        return items, "selector_map"
    if isinstance(value, str):
        if not value.strip():
            return [], "combined"
        return [ConversionItem.model_validate({task.output_key: value})], "combined"
    if value is None:
        return [], "open"
    return [ConversionItem.model_validate({task.output_key: _as_text(value)})], "open"


def parse_json_text(text: str) -> Any:
    """Strip fences and decode; raises ``json.JSONDecodeError`` on bad input."""
    return json.loads(strip_code_fences(text))


def _item_from_entry(entry: Any, task: TaskConfig) -> ConversionItem:
    if not isinstance(entry, dict):
        return ConversionItem.model_validate({task.output_key: _as_text(entry)})

    fields: dict[str, Any] = {}
    for key, value in entry.items():
        fields[str(key)] = value if key not in (task.source_key, task.output_key) else _as_text(value)

    # Promote generic pair keys (for example {"selector", "output"}) onto the
    # task's declared keys so downstream readers find them in one place.
    if task.source_key not in fields:
        source = _first_text(entry, _SOURCE_ALIASES)
        if source is not None:
            fields[task.source_key] = source
    if task.output_key not in fields:
        output = _first_text(entry, _OUTPUT_ALIASES)
        if output is not None:
            fields[task.output_key] = output
    fields.pop("legacy", None)
    return ConversionItem.model_validate(fields)


def _first_text(mapping: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, str):
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return " ".join(_as_text(part) for part in value if part is not None)
    return str(value)
