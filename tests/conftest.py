from __future__ import annotations

import pytest

from fakes import FakeLLM
from recap.store import SqliteStore


@pytest.fixture
def store(tmp_path) -> SqliteStore:
    return SqliteStore(tmp_path / "recap.sqlite3")


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()
