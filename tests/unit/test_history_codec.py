from __future__ import annotations

import json

import pytest

from codeshift.conversion.tasks import CSS_TO_TAILWIND
from codeshift.history.codec import decode_output, new_item_from_document, parse_output, preview
from codeshift.history.errors import LegacyFormatError
from codeshift.history.models import HistoryItem


def _item(serialized_output: str, *, type: str = "css") -> HistoryItem:
    return HistoryItem(
        id="item-1",
        type=type,
        input_text=".a { padding: 1rem; }",
        serialized_output=serialized_output,
        analysis="",
        timestamp=1,
    )


def test_current_layout_decodes_pairs() -> None:
    items = decode_output(_item(json.dumps([{"selector": ".a", "tailwind": "p-4"}])))

    assert [item.to_payload() for item in items] == [{"selector": ".a", "tailwind": "p-4"}]


def test_wrapped_output_is_unwrapped() -> None:
    stored = json.dumps({"conversions": {".a": "p-4"}, "analysis": "old"})

    items, shape = parse_output(_item(stored), CSS_TO_TAILWIND)

    assert shape == "selector_map"
    assert items[0].get("selector") == ".a"


def test_invalid_json_degrades_to_one_flagged_item() -> None:
    items = decode_output(_item("p-4 m-2 {broken"))

    assert len(items) == 1
    assert items[0].legacy is True
    assert items[0].get("selector") == "Error"
    assert items[0].get("tailwind") == "Could not parse legacy data"
    assert items[0].get("raw") == "p-4 m-2 {broken"
    assert items[0].to_payload()["legacy"] is True


def test_parse_output_raises_legacy_format_error() -> None:
    with pytest.raises(LegacyFormatError) as exc_info:
        parse_output(_item("{"), CSS_TO_TAILWIND)

    assert exc_info.value.item_id == "item-1"
    assert exc_info.value.raw_value == "{"


def test_unknown_type_decodes_with_default_task() -> None:
    items = decode_output(_item("not json", type="scss"))

    assert items[0].get("selector") == "Error"


def test_single_tool_document_imports_as_css() -> None:
    item = new_item_from_document(
        {
            "css": ".a { margin: 0; }",
            "tailwindData": [{"selector": ".a", "tailwind": "m-0"}],
            "analysis": "Reset.",
            "timestamp": 1_600_000_000_000,
        }
    )

    assert item.type == "css"
    assert item.input_text == ".a { margin: 0; }"
    assert json.loads(item.serialized_output) == [{"selector": ".a", "tailwind": "m-0"}]
    assert item.analysis == "Reset."
    assert item.timestamp == 1_600_000_000_000


def test_current_document_keeps_string_output_verbatim() -> None:
    item = new_item_from_document(
        {"type": "css", "input": ".b{}", "output": "legacy text", "timestamp": 5}
    )

    assert item.serialized_output == "legacy text"
    assert item.timestamp == 5


def test_preview_truncates_after_thirty_characters() -> None:
    assert preview("a" * 30) == "a" * 30
    assert preview("a" * 31) == "a" * 30 + "..."
