"""ContextAssembler: build the token-budgeted prompt history for a session."""

from __future__ import annotations

import logging
from typing import Callable

from ..token_counter import estimate_tokens
from ..types import (
    AssembledContext,
    ContextConfig,
    ContextEntry,
    EntryCategory,
    Message,
    Role,
    Session,
)
from .retriever import SemanticRetriever
from .tiers import compute_boundaries

logger = logging.getLogger(__name__)

HISTORICAL_SUMMARY_PREFIX = "Historical summary:\n"
MID_SUMMARY_PREFIX = "Recent context:\n"


class ContextAssembler:
    """Assemble a session's context within its token budget.

    Assembly order (top to bottom in final prompt):
    1. historical summary (system)
    2. mid summary (system)
    3. pinned messages, ledger order
    4. semantic matches, best first
    5. recent window without its pinned messages, ledger order

    Only recent entries are trimmed, oldest first. The latest user turn is
    never trimmed, so the result may stay over budget; ``token_count``
    reports the real total.
    """

    def __init__(
        self,
        config: ContextConfig,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self.config = config
        self.token_counter = token_counter or estimate_tokens
        self.retriever = SemanticRetriever(config)

    def assemble(self, session: Session, messages: list[Message]) -> AssembledContext:
        """Build the context from a snapshot. Pure: reads only its arguments."""
        if not messages and not session.rolling_summary and not session.mid_summary:
            return AssembledContext(session_id=session.id)

        _, recent_start = compute_boundaries(len(messages), self.config)
        pinned_set = set(session.pinned_message_ids)
        recent = messages[recent_start:]

        entries: list[ContextEntry] = []
        if session.rolling_summary:
            entries.append(self._summary_entry(HISTORICAL_SUMMARY_PREFIX, session.rolling_summary))
        if session.mid_summary:
            entries.append(self._summary_entry(MID_SUMMARY_PREFIX, session.mid_summary))

        pinned = [m for m in messages if m.id in pinned_set]
        for message in pinned:
            entries.append(self._message_entry(message, EntryCategory.PINNED))

        semantic = self.retriever.retrieve(messages, pinned_set, recent_start)
        for message in semantic:
            entries.append(self._message_entry(message, EntryCategory.SEMANTIC))

        for message in recent:
            if message.id not in pinned_set:
                entries.append(self._message_entry(message, EntryCategory.RECENT))

        protected: set[str] = set()
        latest_turn = self._latest_turn(recent)
        if latest_turn is not None:
            protected.add(latest_turn.id)

        entries, total, trimmed = self._trim(entries, protected)
        if total > self.config.max_context_tokens:
            logger.debug(
                "Context for %s stays over budget: %d > %d tokens",
                session.id, total, self.config.max_context_tokens,
            )

        breakdown = {c.value: 0 for c in EntryCategory}
        for entry in entries:
            breakdown[entry.category.value] += entry.tokens

        return AssembledContext(
            session_id=session.id,
            messages=[e.as_prompt_message() for e in entries],
            token_count=total,
            pinned_ids=[m.id for m in pinned],
            semantic_ids=[m.id for m in semantic],
            entries=entries,
            budget_breakdown=breakdown,
            trimmed=trimmed,
        )

    def _summary_entry(self, prefix: str, summary: str) -> ContextEntry:
        content = f"{prefix}{summary}"
        return ContextEntry(
            role=Role.SYSTEM,
            content=content,
            tokens=self.token_counter(content),
            category=EntryCategory.SUMMARY,
        )

    @staticmethod
    def _message_entry(message: Message, category: EntryCategory) -> ContextEntry:
        return ContextEntry(
            role=message.role,
            content=message.content,
            tokens=message.tokens,
            category=category,
            message_id=message.id,
        )

    @staticmethod
    def _latest_turn(recent: list[Message]) -> Message | None:
        """The newest user message in the window, else the newest message."""
        for message in reversed(recent):
            if message.role == Role.USER:
                return message
        return recent[-1] if recent else None

    def _trim(
        self,
        entries: list[ContextEntry],
        protected: set[str],
    ) -> tuple[list[ContextEntry], int, int]:
        """Drop unprotected recent entries, oldest first, until within budget."""
        budget = self.config.max_context_tokens
        total = sum(e.tokens for e in entries)
        if total <= budget:
            return entries, total, 0

        kept: list[ContextEntry] = []
        trimmed = 0
        for entry in entries:
            if (
                total > budget
                and entry.category == EntryCategory.RECENT
                and entry.message_id not in protected
            ):
                total -= entry.tokens
                trimmed += 1
                continue
            kept.append(entry)
        return kept, total, trimmed
