"""Registry of supported conversion tasks."""

from __future__ import annotations

from dataclasses import dataclass, replace

DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass(frozen=True)
class TaskConfig:
    kind: str
    label: str
    description: str
    system_instruction: str
    model_id: str = DEFAULT_MODEL
    # Item keys declared by the prompt contract below.
    source_key: str = "source"
    output_key: str = "output"


CSS_TO_TAILWIND = TaskConfig(
    kind="css",
    label="CSS to Tailwind",
    description=(
        "Convert standard CSS selectors and properties into utility-first Tailwind classes."
    ),
    source_key="selector",
    output_key="tailwind",
    system_instruction="""You are an expert CSS to Tailwind CSS converter.

Task: Analyze the CSS provided by the user and convert it into a structured JSON response.

CRITICAL RULES FOR TAILWIND CONVERSION:
1. Flatten all CSS. Do not use @media blocks in the output. Use Tailwind prefixes instead (e.g., 'md:', 'lg:', 'dark:').
2. Merge pseudo-classes into the main class string (e.g., 'hover:bg-red-500').
3. Output a list of conversions mapping the original CSS selector to the resulting Tailwind class string.

Return ONLY valid JSON with this exact structure:
{
  "conversions": [
    { "selector": ".box", "tailwind": "bg-red-500 p-4" }
  ],
  "analysis": "A concise 1-2 sentence summary of the conversion and key patterns found."
}""",
)


_TASKS: dict[str, TaskConfig] = {
    CSS_TO_TAILWIND.kind: CSS_TO_TAILWIND,
}


def get_task(kind: str) -> TaskConfig:
    try:
        return _TASKS[kind]
    except KeyError as exc:
        raise KeyError(f"Unknown conversion kind: {kind}") from exc


def find_task(kind: str) -> TaskConfig | None:
    return _TASKS.get(kind)


def list_tasks() -> list[TaskConfig]:
    return [_TASKS[kind] for kind in sorted(_TASKS)]


def with_model(task: TaskConfig, model_id: str) -> TaskConfig:
    """Return a copy of ``task`` pointed at a different model."""
    if not model_id or model_id == task.model_id:
        return task
    return replace(task, model_id=model_id)
