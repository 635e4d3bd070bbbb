"""All dataclasses, enums, Protocols, and exceptions for tiered-context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, runtime_checkable


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Tier(str, Enum):
    RECENT = "recent"
    MID = "mid"
    HISTORICAL = "historical"


class SummaryFocus(str, Enum):
    """Which running summary a SummaryRecord belongs to."""
    MID = "mid"
    HISTORICAL = "historical"


class EntryCategory(str, Enum):
    SUMMARY = "summary"
    PINNED = "pinned"
    SEMANTIC = "semantic"
    RECENT = "recent"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ContextConfig:
    """Per-session memory policy. Every field may be overridden per session or per call."""
    max_context_tokens: int = 8000
    recent_message_count: int = 10
    summary_update_interval: int = 5
    mid_range_window: int = 20
    max_summary_tokens: int = 500
    enable_semantic_search: bool = True
    pinned_message_limit: int = 5
    semantic_candidate_limit: int = 3
    semantic_similarity_threshold: float = 0.25


@dataclass
class SummarizationConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    max_tokens: int = 600  # hard cap on summarizer output, below max_summary_tokens
    temperature: float = 0.2
    input_char_limit: int = 8000  # tail of the formatted transcript sent to the LLM
    timeout: float = 60.0


@dataclass
class StorageConfig:
    backend: str = "sqlite"
    sqlite_path: str = ".tieredcontext/store.db"


@dataclass
class WorkerConfig:
    auto_summarize: bool = True
    max_concurrent_summaries: int = 2  # parallel mid/historical calls inside one recompute


@dataclass
class TieredContextConfig:
    version: str = "0.1"
    token_counter: str = "estimate"
    context: ContextConfig = field(default_factory=ContextConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    providers: dict[str, dict] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Session & Message
# ---------------------------------------------------------------------------

@dataclass
class Session:
    id: str = field(default_factory=_new_id)
    user_id: str | None = None
    pinned_message_ids: list[str] = field(default_factory=list)  # insertion order
    rolling_summary: str | None = None
    rolling_summary_tokens: int = 0
    mid_summary: str | None = None
    mid_summary_tokens: int = 0
    total_tokens: int = 0
    message_count: int = 0
    config: dict = field(default_factory=dict)  # raw per-session overrides
    generation: int = 0  # bumped on every reset; staleness token for summaries
    last_summary_at: datetime | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class Message:
    session_id: str
    index: int
    role: Role
    content: str
    tokens: int = 0
    pinned: bool = False
    tier: Tier = Tier.RECENT
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)

    def as_snippet(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass
class SummaryRecord:
    """Upserted per (session, tier). Ranges are inclusive message indices."""
    session_id: str
    tier: SummaryFocus
    summary: str
    tokens: int = 0
    range_start: int = 0
    range_end: int = -1
    created_at: datetime = field(default_factory=_now)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

@dataclass
class AppendResult:
    message_id: str
    index: int
    tokens: int
    needs_summary: bool
    message_count: int


@dataclass
class SummaryUpdate:
    """Computed summaries ready to be applied to a session snapshot."""
    session_id: str
    generation: int
    mid_summary: str | None
    mid_range: tuple[int, int]
    historical_summary: str | None
    historical_range: tuple[int, int]


@dataclass
class SummaryRun:
    session_id: str
    applied: bool = False
    stale: bool = False
    mid_start: int = 0
    recent_start: int = 0
    mid_summary: str | None = None
    historical_summary: str | None = None
    fallbacks: list[str] = field(default_factory=list)  # foci that used the truncation fallback


@dataclass
class SummaryRequest:
    session_id: str
    requested_at: datetime = field(default_factory=_now)


@dataclass
class ContextEntry:
    role: Role
    content: str
    tokens: int
    category: EntryCategory
    message_id: str | None = None

    def as_prompt_message(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass
class AssembledContext:
    session_id: str
    messages: list[dict] = field(default_factory=list)
    token_count: int = 0
    pinned_ids: list[str] = field(default_factory=list)
    semantic_ids: list[str] = field(default_factory=list)
    entries: list[ContextEntry] = field(default_factory=list)
    budget_breakdown: dict[str, int] = field(default_factory=dict)
    trimmed: int = 0


@dataclass
class ScoredMessage:
    message: Message
    score: float


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TieredContextError(Exception):
    """Base class for all tiered-context errors."""


class SessionNotFound(TieredContextError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class MessageNotFound(TieredContextError):
    def __init__(self, session_id: str, message_id: str):
        super().__init__(f"Message {message_id} not found in session {session_id}")
        self.session_id = session_id
        self.message_id = message_id


class SummarizationFailure(TieredContextError):
    def __init__(self, message: str, focus: SummaryFocus | str | None = None):
        super().__init__(message)
        self.focus = focus


class StaleSummaryWrite(TieredContextError):
    def __init__(self, session_id: str, expected_generation: int, actual_generation: int):
        super().__init__(
            f"Discarding summaries for session {session_id}: "
            f"generation {expected_generation} is stale (now {actual_generation})"
        )
        self.session_id = session_id
        self.expected_generation = expected_generation
        self.actual_generation = actual_generation


class ConfigError(TieredContextError):
    pass


class LLMProviderError(TieredContextError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class LLMProvider(Protocol):
    def complete(self, system: str, user: str, max_tokens: int) -> str: ...


@runtime_checkable
class Summarizer(Protocol):
    def summarize(
        self,
        snippets: list[dict],
        focus: SummaryFocus,
        max_tokens: int,
    ) -> str | None: ...
