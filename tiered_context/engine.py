"""TieredContextEngine: main entry point tying ledger, summaries, and assembly together."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import load_config, resolve_context_config, validate_config, validate_context_config
from .core.assembler import ContextAssembler
from .core.compactor import LLMSummarizer, TruncatingSummarizer
from .core.ledger import MessageLedger
from .core.locks import SessionLocks
from .core.orchestrator import SummaryOrchestrator
from .core.store import SessionStore
from .core.worker import SummaryWorker
from .providers.factory import build_provider
from .storage.sqlite import SQLiteStore
from .token_counter import create_token_counter
from .types import (
    AppendResult,
    AssembledContext,
    ConfigError,
    LLMProvider,
    Message,
    Role,
    Session,
    SessionNotFound,
    Summarizer,
    SummaryRecord,
    SummaryRun,
    TieredContextConfig,
)

logger = logging.getLogger(__name__)


class TieredContextEngine:
    """Per-session conversation memory with tiered summaries.

    Usage:
        engine = TieredContextEngine(config_path="./tiered-context.yaml")
        session = engine.create_session(user_id="u-1")

        engine.append(session.id, "user", "Do you have a gentle cleanser?")
        context = engine.get_context(session.id)   # -> prompt history
        engine.append(session.id, "assistant", reply)  # may queue summaries

    Summaries are recomputed on a background worker whenever an append
    returns ``needs_summary``; call ``recompute_summaries`` to run one
    synchronously.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        config: TieredContextConfig | None = None,
        store: SessionStore | None = None,
        summarizer: Summarizer | None = None,
        llm_provider: LLMProvider | None = None,
        auto_summarize: bool | None = None,
    ) -> None:
        self.config = config or load_config(config_path)
        errors = validate_config(self.config)
        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))
        self._token_counter = create_token_counter(self.config.token_counter)
        self._locks = SessionLocks()
        self._owns_store = store is None
        self.auto_summarize = (
            self.config.worker.auto_summarize if auto_summarize is None else auto_summarize
        )

        self._init_store(store)
        self._init_summarizer(summarizer, llm_provider)
        self._init_ledger()
        self._init_orchestrator()
        self._init_worker()

    def _init_store(self, store: SessionStore | None) -> None:
        self.store = store or SQLiteStore(db_path=self.config.storage.sqlite_path)

    def _init_summarizer(self, summarizer: Summarizer | None, llm_provider: LLMProvider | None) -> None:
        if summarizer is not None:
            self.summarizer = summarizer
            return
        if llm_provider is None:
            name = self.config.summarization.provider
            llm_provider = build_provider(
                name, self.config.providers.get(name), self.config.summarization,
            )
        if llm_provider is None:
            self.summarizer = TruncatingSummarizer()
        else:
            self.summarizer = LLMSummarizer(llm_provider, self.config.summarization)

    def _init_ledger(self) -> None:
        self.ledger = MessageLedger(
            store=self.store,
            config=self.config.context,
            token_counter=self._token_counter,
            locks=self._locks,
        )

    def _init_orchestrator(self) -> None:
        self.orchestrator = SummaryOrchestrator(
            store=self.store,
            summarizer=self.summarizer,
            config=self.config.context,
            token_counter=self._token_counter,
            locks=self._locks,
            max_concurrent_summaries=self.config.worker.max_concurrent_summaries,
        )

    def _init_worker(self) -> None:
        self.worker = SummaryWorker(self.orchestrator.recompute)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str | None = None,
        config: dict | None = None,
        session_id: str | None = None,
    ) -> Session:
        return self.ledger.create_session(user_id=user_id, config=config, session_id=session_id)

    def get_session(self, session_id: str) -> Session:
        return self.ledger.get_session(session_id)

    def list_sessions(self, user_id: str | None = None) -> list[Session]:
        return self.store.list_sessions(user_id)

    def list_messages(self, session_id: str) -> list[Message]:
        return self.ledger.list_messages(session_id)

    def get_summary_records(self, session_id: str) -> list[SummaryRecord]:
        self.ledger.get_session(session_id)
        return self.store.get_summary_records(session_id)

    def delete_session(self, session_id: str) -> bool:
        return self.ledger.delete_session(session_id)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def append(
        self,
        session_id: str,
        role: Role | str,
        content: str,
        pinned: bool = False,
    ) -> AppendResult:
        """Append a message; queue a background summary run when hinted."""
        result = self.ledger.append(session_id, role, content, pinned=pinned)
        if result.needs_summary and self.auto_summarize:
            self.request_summary(session_id)
        return result

    def pin(self, session_id: str, message_id: str) -> list[str]:
        return self.ledger.pin(session_id, message_id)

    def unpin(self, session_id: str, message_id: str) -> bool:
        return self.ledger.unpin(session_id, message_id)

    def reclassify(self, session_id: str) -> list[Message]:
        return self.ledger.reclassify(session_id)

    def reset(self, session_id: str) -> Session:
        return self.ledger.reset(session_id)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def request_summary(self, session_id: str) -> bool:
        """Queue a background recompute. False if one is already pending."""
        return self.worker.submit(session_id)

    def recompute_summaries(self, session_id: str) -> SummaryRun:
        """Run the summarizer synchronously."""
        return self.orchestrator.recompute(session_id)

    def wait_for_summaries(self) -> None:
        """Block until queued summary runs have finished."""
        self.worker.join()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_context(self, session_id: str, config_override: dict | None = None) -> AssembledContext:
        """Assemble the prompt history for *session_id*. Read-only."""
        with self.store.transaction():
            session = self.store.get_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            messages = self.store.get_messages(session_id)

        # The override replaces the session's own config, layered on the global defaults.
        if config_override is not None:
            config = resolve_context_config(self.config.context, config_override)
        else:
            config = resolve_context_config(self.config.context, session.config)
        errors = validate_context_config(config)
        if errors:
            raise ConfigError("Invalid context config: " + "; ".join(errors))
        return ContextAssembler(config, self._token_counter).assemble(session, messages)

    # ------------------------------------------------------------------

    def close(self) -> None:
        self.worker.stop(wait=True)
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> TieredContextEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
