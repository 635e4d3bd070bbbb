"""SummaryOrchestrator: background compaction of mid and historical tiers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from ..config import resolve_context_config
from ..token_counter import estimate_tokens
from ..types import (
    ContextConfig,
    Message,
    SessionNotFound,
    StaleSummaryWrite,
    Summarizer,
    SummaryFocus,
    SummaryRun,
    SummaryUpdate,
)
from .compactor import fallback_summary
from .locks import SessionLocks
from .store import SessionStore
from .tiers import compute_boundaries

logger = logging.getLogger(__name__)

ROLLING_SUMMARY_ROLE = "summary"


class SummaryOrchestrator:
    """Recompute a session's two running summaries.

    The mid summary is rebuilt from the current mid window every run. The
    historical summary is folded forward: the previous rolling summary plus
    only the messages that dropped below ``mid_start`` since the last run.
    The historical record's ``range_end`` is the fold watermark.

    LLM calls happen outside any lock. Results are applied in one
    transaction that re-checks the session generation, so a reset during
    the run discards them.
    """

    def __init__(
        self,
        store: SessionStore,
        summarizer: Summarizer,
        config: ContextConfig | None = None,
        token_counter: Callable[[str], int] | None = None,
        locks: SessionLocks | None = None,
        max_concurrent_summaries: int = 2,
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.config = config or ContextConfig()
        self.token_counter = token_counter or estimate_tokens
        self.locks = locks or SessionLocks()
        self.max_concurrent_summaries = max(1, max_concurrent_summaries)

    def recompute(self, session_id: str) -> SummaryRun:
        """Summarize the mid window and fold new history. Never raises on summarizer failure."""
        # Consistent snapshot: session row, ledger, and watermark read together.
        with self.store.transaction():
            session = self.store.get_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            messages = self.store.get_messages(session_id)
            historical_record = self.store.get_summary_record(session_id, SummaryFocus.HISTORICAL)

        config = resolve_context_config(self.config, session.config)
        mid_start, recent_start = compute_boundaries(len(messages), config)
        run = SummaryRun(session_id=session_id, mid_start=mid_start, recent_start=recent_start)
        if not messages:
            return run

        mid_messages = messages[mid_start:recent_start]

        prior_summary = session.rolling_summary
        prior_end = historical_record.range_end if (historical_record and prior_summary) else -1
        new_historical = messages[prior_end + 1:mid_start]

        mid_snippets = [m.as_snippet() for m in mid_messages]
        historical_snippets = self._historical_snippets(prior_summary, new_historical)

        with ThreadPoolExecutor(max_workers=self.max_concurrent_summaries) as executor:
            mid_future = executor.submit(
                self._summarize_safe, mid_snippets, SummaryFocus.MID, config.max_summary_tokens, run,
            )
            historical_future = None
            if new_historical:
                historical_future = executor.submit(
                    self._summarize_safe, historical_snippets, SummaryFocus.HISTORICAL,
                    config.max_summary_tokens, run,
                )
            mid_summary = mid_future.result()
            if historical_future is not None:
                historical_summary = historical_future.result()
                historical_range = (0, mid_start - 1)
            else:
                # Nothing new fell out of the mid window: keep the fold as-is.
                historical_summary = prior_summary
                historical_range = (0, prior_end)

        update = SummaryUpdate(
            session_id=session_id,
            generation=session.generation,
            mid_summary=mid_summary,
            mid_range=(mid_start, recent_start - 1),
            historical_summary=historical_summary,
            historical_range=historical_range,
        )
        run.mid_summary = mid_summary
        run.historical_summary = historical_summary

        try:
            with self.locks.get(session_id):
                self.store.apply_summaries(update, self.token_counter)
        except StaleSummaryWrite as e:
            logger.warning("%s", e)
            run.stale = True
            return run

        run.applied = True
        logger.info(
            "Applied summaries for %s: mid [%d, %d], historical [0, %d]%s",
            session_id, mid_start, recent_start - 1, historical_range[1],
            f" (fallback: {', '.join(run.fallbacks)})" if run.fallbacks else "",
        )
        return run

    @staticmethod
    def _historical_snippets(prior_summary: str | None, new_historical: list[Message]) -> list[dict]:
        snippets: list[dict] = []
        if prior_summary:
            snippets.append({"role": ROLLING_SUMMARY_ROLE, "content": prior_summary})
        snippets.extend(m.as_snippet() for m in new_historical)
        return snippets

    def _summarize_safe(
        self,
        snippets: list[dict],
        focus: SummaryFocus,
        max_tokens: int,
        run: SummaryRun,
    ) -> str | None:
        """Call the summarizer; on error or empty output use the truncation fallback."""
        if not snippets:
            return None
        try:
            summary = self.summarizer.summarize(snippets, focus, max_tokens)
        except Exception as e:
            logger.warning("Summarizer failed for %s (%s), using truncation fallback", focus.value, e)
            summary = None
        if summary and summary.strip():
            return summary
        run.fallbacks.append(focus.value)
        return fallback_summary(snippets, max_tokens)
