from __future__ import annotations

import os
from collections.abc import Iterator
from uuid import uuid4

import pytest

from codeshift.history.postgres import PostgresHistoryBackend


@pytest.fixture
def postgres_backend() -> Iterator[PostgresHistoryBackend]:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and CODESHIFT_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("CODESHIFT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("CODESHIFT_DATABASE_URL is required for integration tests.")

    backend = PostgresHistoryBackend(database_url)
    backend.migrate()
    yield backend


@pytest.fixture
def user_id(postgres_backend: PostgresHistoryBackend) -> Iterator[str]:
    value = f"it-{uuid4().hex}"
    yield value
    postgres_backend.delete_all(value)
