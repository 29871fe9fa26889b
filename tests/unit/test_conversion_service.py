from __future__ import annotations

from codeshift.conversion.errors import MalformedResponseError
from codeshift.conversion.service import ConversionService
from codeshift.conversion.tasks import CSS_TO_TAILWIND, find_task, get_task, list_tasks, with_model
from codeshift.history.store import HistoryStore

USER = "service-user-0001"


def test_successful_conversion_is_recorded(store: HistoryStore, fake_gateway) -> None:
    service = ConversionService(gateway=fake_gateway, store=store)

    outcome = service.convert(CSS_TO_TAILWIND, ".box{}", user_id=USER)

    assert outcome.ok
    assert outcome.analysis == "Two selectors converted."
    assert outcome.history_item is not None
    assert store.get_item(USER, outcome.history_item.id).input_text == ".box{}"


def test_failed_conversion_is_labeled_and_not_recorded(store: HistoryStore, fake_gateway) -> None:
    fake_gateway.error = MalformedResponseError("Provider returned JSON list, expected an object", raw_text="[]")
    service = ConversionService(gateway=fake_gateway, store=store)

    outcome = service.convert(CSS_TO_TAILWIND, ".box{}", user_id=USER)

    assert not outcome.ok
    assert outcome.analysis == "Error: AI Service Failed: Provider returned JSON list, expected an object"
    assert store.snapshot(USER).items == ()


def test_history_write_failure_still_returns_result(store: HistoryStore, backend, fake_gateway) -> None:
    backend.fail.add("insert")
    service = ConversionService(gateway=fake_gateway, store=store)

    outcome = service.convert(CSS_TO_TAILWIND, ".box{}", user_id=USER)

    assert outcome.ok
    assert outcome.history_item is None
    assert len(outcome.result.items) == 2


def test_task_registry() -> None:
    assert get_task("css") is CSS_TO_TAILWIND
    assert find_task("scss") is None
    assert list_tasks() == [CSS_TO_TAILWIND]
    assert with_model(CSS_TO_TAILWIND, "gemini-2.5-pro").model_id == "gemini-2.5-pro"
    assert with_model(CSS_TO_TAILWIND, "") is CSS_TO_TAILWIND
