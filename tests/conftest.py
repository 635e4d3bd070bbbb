"""Shared fixtures for tiered-context tests."""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path

import pytest

from tiered_context.config import load_config
from tiered_context.engine import TieredContextEngine
from tiered_context.storage.sqlite import SQLiteStore
from tiered_context.types import ContextConfig, SummaryFocus


@pytest.fixture
def tmp_store_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def tmp_sqlite_db(tmp_store_dir):
    return tmp_store_dir / "test_store.db"


@pytest.fixture
def store(tmp_sqlite_db):
    s = SQLiteStore(db_path=tmp_sqlite_db)
    yield s
    s.close()


@pytest.fixture
def small_config() -> ContextConfig:
    """Small windows so tier boundaries show up after a dozen messages."""
    return ContextConfig(
        max_context_tokens=8000,
        recent_message_count=3,
        summary_update_interval=2,
        mid_range_window=2,
        max_summary_tokens=50,
        pinned_message_limit=2,
    )


class MockLLMProvider:
    """Mock LLM provider for testing summarization."""

    def __init__(self, response: str | None = None):
        self.calls: list[dict] = []
        self.response = response if response is not None else "Test summary"

    def complete(self, system: str, user: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        return self.response


class RecordingSummarizer:
    """Deterministic summarizer: names the focus and the snippets it saw."""

    def __init__(self):
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def summarize(self, snippets, focus, max_tokens):
        focus = SummaryFocus(focus)
        with self._lock:
            self.calls.append({"snippets": list(snippets), "focus": focus, "max_tokens": max_tokens})
        if not snippets:
            return None
        return f"{focus.value} summary of {len(snippets)} snippets"

    def calls_for(self, focus: SummaryFocus) -> list[dict]:
        return [c for c in self.calls if c["focus"] == focus]


class FailingSummarizer:
    """Summarizer that always raises."""

    def __init__(self):
        self.call_count = 0

    def summarize(self, snippets, focus, max_tokens):
        self.call_count += 1
        raise RuntimeError("summarizer unavailable")


@pytest.fixture
def recording_summarizer() -> RecordingSummarizer:
    return RecordingSummarizer()


@pytest.fixture
def engine(tmp_sqlite_db, recording_summarizer):
    config = load_config(config_dict={
        "storage": {"sqlite_path": str(tmp_sqlite_db)},
        "context": {
            "recent_message_count": 3,
            "summary_update_interval": 2,
            "mid_range_window": 2,
            "max_summary_tokens": 50,
            "pinned_message_limit": 2,
        },
    })
    e = TieredContextEngine(config=config, summarizer=recording_summarizer, auto_summarize=False)
    yield e
    e.close()


def fill_session(engine, session_id: str, count: int, prefix: str = "message") -> list[str]:
    """Append *count* alternating user/assistant messages. Returns their ids."""
    ids = []
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        ids.append(engine.append(session_id, role, f"{prefix} {i}").message_id)
    return ids
