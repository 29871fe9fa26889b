from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from codeshift.api.main import create_app
from codeshift.config.settings import Settings
from codeshift.conversion.errors import ConversionError
from codeshift.conversion.models import ConversionItem, ConversionResult
from codeshift.conversion.tasks import TaskConfig
from codeshift.history.memory import InMemoryHistoryBackend
from codeshift.history.store import HistoryStore

# Fixed "now" for retention tests: 2024-06-01T00:00:00Z.
NOW_MS = 1_717_200_000_000


class FakeGateway:
    """Test double that records calls and replays a canned result or error."""

    def __init__(self, result: ConversionResult | None = None, error: ConversionError | None = None) -> None:
        self.result = result or ConversionResult(
            items=[
                ConversionItem.model_validate({"selector": ".box", "tailwind": "bg-red-500 p-4"}),
                ConversionItem.model_validate({"selector": ".box:hover", "tailwind": "hover:bg-red-600"}),
            ],
            analysis="Two selectors converted.",
            shape="pairs",
        )
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def convert(self, input_text: str, task: TaskConfig) -> ConversionResult:
        self.calls.append((input_text, task.kind))
        if self.error is not None:
            raise self.error
        return self.result


class FlakyBackend(InMemoryHistoryBackend):
    """In-memory backend whose individual operations can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail:
            raise RuntimeError(f"{operation} unavailable")

    def list_recent(self, user_id: str, limit: int) -> list[Any]:
        self._check("list_recent")
        return super().list_recent(user_id, limit)

    def insert(self, user_id: str, item: Any) -> Any:
        self._check("insert")
        return super().insert(user_id, item)

    def delete_many(self, user_id: str, item_ids: list[str]) -> int:
        self._check("delete_many")
        return super().delete_many(user_id, item_ids)

    def delete_all(self, user_id: str) -> int:
        self._check("delete_all")
        return super().delete_all(user_id)

    def get_settings(self, user_id: str) -> dict[str, Any] | None:
        self._check("get_settings")
        return super().get_settings(user_id)


@pytest.fixture
def backend() -> FlakyBackend:
    return FlakyBackend()


@pytest.fixture
def store(backend: FlakyBackend) -> HistoryStore:
    return HistoryStore(backend, page_size=50, retention_days=30, clock=lambda: NOW_MS)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, app_name="CodeShift", gemini_api_key="test-key")


@pytest.fixture
def client(fake_gateway: FakeGateway, test_settings: Settings) -> TestClient:
    app = create_app(
        history_backend=InMemoryHistoryBackend(),
        gateway=fake_gateway,
        settings_override=test_settings,
    )
    return TestClient(app)


@pytest.fixture
def now() -> int:
    return NOW_MS
