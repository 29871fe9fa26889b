"""Pydantic models for conversion results.

Terms used in this file:
- Item: one mapping from a source construct (a CSS selector) to its converted
  equivalent (a Tailwind class string). Keys are declared by the task prompt,
  so items are open mappings rather than fixed records.
- Shape: which known provider response layout the items were normalized from.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# pairs: [{"selector": ..., "tailwind": ...}]
# selector_map: {".box": "p-4"}
# combined: one class string for the whole input
# open: anything else, kept as-is
ResultShape = Literal["pairs", "selector_map", "combined", "open"]


class ConversionItem(BaseModel):
    """Open string mapping plus optional metadata."""

    model_config = ConfigDict(extra="allow", frozen=True)

    # Set on synthetic items produced when stored output could not be decoded.
    legacy: bool = False

    @property
    def values(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)

    def to_payload(self) -> dict[str, Any]:
        payload = self.values
        if self.legacy:
            payload["legacy"] = True
        return payload


class ConversionResult(BaseModel):
    """Normalized provider reply for one conversion."""

    model_config = ConfigDict(frozen=True)

    items: list[ConversionItem] = Field(default_factory=list)
    analysis: str = ""
    shape: ResultShape = "open"

    def serialize_items(self) -> str:
        """JSON text stored as a history item's output."""
        return json.dumps([item.to_payload() for item in self.items], ensure_ascii=False)

    def joined_output(self, output_key: str) -> str:
        """All output values joined by spaces, skipping items without one."""
        values = [item.get(output_key) for item in self.items]
        return " ".join(str(value) for value in values if value)
