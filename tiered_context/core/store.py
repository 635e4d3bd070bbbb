"""SessionStore abstract base class: persistence interface for sessions, messages, summaries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Callable

from ..types import (
    Message,
    Session,
    StaleSummaryWrite,
    SummaryFocus,
    SummaryRecord,
    SummaryUpdate,
    Tier,
)


class SessionStore(ABC):
    """Pluggable storage backend for conversation sessions.

    Backends provide primitive reads/writes plus ``transaction()``; the
    multi-step operations (``reset_session``, ``apply_summaries``) are
    composed here so every backend gets the same atomicity.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Context manager grouping writes atomically. Re-entrant; rolls back on error."""

    # -- sessions --

    @abstractmethod
    def create_session(self, session: Session) -> Session:
        """Insert a new session. Returns it."""

    @abstractmethod
    def get_session(self, session_id: str) -> Session | None:
        """Point lookup. None if not found."""

    @abstractmethod
    def update_session(self, session: Session) -> None:
        """Overwrite the stored session row."""

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Delete session with all its messages and summaries. Returns True if deleted."""

    @abstractmethod
    def list_sessions(self, user_id: str | None = None) -> list[Session]:
        """All sessions (optionally for one user), most recently updated first."""

    # -- messages --

    @abstractmethod
    def insert_message(self, message: Message) -> None:
        """Insert a message. (session_id, index) must be unique."""

    @abstractmethod
    def get_messages(self, session_id: str) -> list[Message]:
        """All messages of a session ordered by index ascending."""

    @abstractmethod
    def get_message(self, message_id: str) -> Message | None:
        """Point lookup by message id."""

    @abstractmethod
    def update_tiers(self, updates: list[tuple[str, Tier]]) -> None:
        """Persist ``(message_id, tier)`` pairs."""

    @abstractmethod
    def set_pinned(self, message_ids: list[str], pinned: bool) -> None:
        """Set the pinned flag on the given messages."""

    @abstractmethod
    def delete_messages(self, session_id: str) -> int:
        """Bulk delete a session's messages. Returns count deleted."""

    # -- summary records --

    @abstractmethod
    def get_summary_record(self, session_id: str, tier: SummaryFocus) -> SummaryRecord | None:
        """Lookup by (session, tier). None if not found."""

    @abstractmethod
    def get_summary_records(self, session_id: str) -> list[SummaryRecord]:
        """All summary records of a session."""

    @abstractmethod
    def upsert_summary_record(self, record: SummaryRecord) -> None:
        """Insert or replace the record for (session, tier)."""

    @abstractmethod
    def delete_summary_records(self, session_id: str, tier: SummaryFocus | None = None) -> int:
        """Delete one tier's record, or all records when *tier* is None."""

    def close(self) -> None:
        """Release backend resources."""

    # ------------------------------------------------------------------
    # Composite operations
    # ------------------------------------------------------------------

    def reset_session(self, session_id: str) -> Session | None:
        """Delete messages and summaries, zero counters, bump generation.

        Returns the reset session, or None if it does not exist.
        """
        with self.transaction():
            session = self.get_session(session_id)
            if session is None:
                return None
            self.delete_messages(session_id)
            self.delete_summary_records(session_id)
            session.pinned_message_ids = []
            session.rolling_summary = None
            session.rolling_summary_tokens = 0
            session.mid_summary = None
            session.mid_summary_tokens = 0
            session.total_tokens = 0
            session.message_count = 0
            session.last_summary_at = None
            session.generation += 1
            session.updated_at = datetime.now(timezone.utc)
            self.update_session(session)
            return session

    def apply_summaries(
        self,
        update: SummaryUpdate,
        token_counter: Callable[[str], int],
    ) -> Session:
        """Write computed summaries if the session is still at ``update.generation``.

        Raises StaleSummaryWrite when the session was reset (or deleted)
        after the snapshot the summaries were computed from, or when a
        newer run has already folded history past ``update.historical_range``.
        """
        with self.transaction():
            session = self.get_session(update.session_id)
            if session is None:
                raise StaleSummaryWrite(update.session_id, update.generation, -1)
            if session.generation != update.generation:
                raise StaleSummaryWrite(
                    update.session_id, update.generation, session.generation,
                )
            existing = self.get_summary_record(session.id, SummaryFocus.HISTORICAL)
            if existing is not None and existing.range_end > update.historical_range[1]:
                # A newer snapshot already folded further; never move the watermark back.
                raise StaleSummaryWrite(
                    update.session_id, update.generation, session.generation,
                )

            now = datetime.now(timezone.utc)
            session.mid_summary = update.mid_summary or None
            session.mid_summary_tokens = token_counter(update.mid_summary) if update.mid_summary else 0
            session.rolling_summary = update.historical_summary or None
            session.rolling_summary_tokens = (
                token_counter(update.historical_summary) if update.historical_summary else 0
            )
            session.last_summary_at = now
            session.updated_at = now
            self.update_session(session)

            self._upsert_or_clear(
                session.id, SummaryFocus.MID, update.mid_summary, update.mid_range, token_counter, now,
            )
            self._upsert_or_clear(
                session.id, SummaryFocus.HISTORICAL, update.historical_summary,
                update.historical_range, token_counter, now,
            )
            return session

    def _upsert_or_clear(
        self,
        session_id: str,
        tier: SummaryFocus,
        summary: str | None,
        summary_range: tuple[int, int],
        token_counter: Callable[[str], int],
        now: datetime,
    ) -> None:
        if not summary:
            self.delete_summary_records(session_id, tier)
            return
        self.upsert_summary_record(SummaryRecord(
            session_id=session_id,
            tier=tier,
            summary=summary,
            tokens=token_counter(summary),
            range_start=summary_range[0],
            range_end=summary_range[1],
            created_at=now,
        ))
