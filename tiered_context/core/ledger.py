"""MessageLedger: append-only per-session message log and session counters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ..config import resolve_context_config, validate_context_config
from ..token_counter import estimate_tokens
from ..types import (
    AppendResult,
    ConfigError,
    ContextConfig,
    Message,
    MessageNotFound,
    Role,
    Session,
    SessionNotFound,
    Tier,
)
from .locks import SessionLocks
from .pins import PinnedSet
from .store import SessionStore
from .tiers import classify

logger = logging.getLogger(__name__)


class MessageLedger:
    """Owns every write to a session except summary application.

    Each mutating call holds the session's lock and runs inside one store
    transaction, so message insert, counters, pins and tier corrections
    land together or not at all.
    """

    def __init__(
        self,
        store: SessionStore,
        config: ContextConfig | None = None,
        token_counter: Callable[[str], int] | None = None,
        locks: SessionLocks | None = None,
    ) -> None:
        self.store = store
        self.config = config or ContextConfig()
        self.token_counter = token_counter or estimate_tokens
        self.locks = locks or SessionLocks()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str | None = None,
        config: dict | None = None,
        session_id: str | None = None,
    ) -> Session:
        errors = validate_context_config(resolve_context_config(self.config, config))
        if errors:
            raise ConfigError("Invalid session config: " + "; ".join(errors))
        session = Session(user_id=user_id, config=dict(config or {}))
        if session_id:
            session.id = session_id
        self.store.create_session(session)
        logger.info("Created session %s (user=%s)", session.id, user_id)
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def resolve_config(self, session: Session, override: dict | None = None) -> ContextConfig:
        return resolve_context_config(self.config, session.config, override)

    def list_messages(self, session_id: str) -> list[Message]:
        self.get_session(session_id)
        return self.store.get_messages(session_id)

    def delete_session(self, session_id: str) -> bool:
        with self.locks.get(session_id):
            deleted = self.store.delete_session(session_id)
        self.locks.discard(session_id)
        if deleted:
            logger.info("Deleted session %s", session_id)
        return deleted

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append(
        self,
        session_id: str,
        role: Role | str,
        content: str,
        pinned: bool = False,
    ) -> AppendResult:
        """Append a message and reclassify tiers.

        ``needs_summary`` is only a hint; the caller decides when to run
        the summarizer. Raises SessionNotFound for unknown sessions.
        """
        role = Role(role)
        with self.locks.get(session_id), self.store.transaction():
            session = self.get_session(session_id)
            config = self.resolve_config(session)
            now = datetime.now(timezone.utc)

            message = Message(
                session_id=session_id,
                index=session.message_count,
                role=role,
                content=content,
                tokens=self.token_counter(content),
                pinned=pinned,
                tier=Tier.RECENT,
                created_at=now,
            )
            self.store.insert_message(message)

            if pinned:
                self._pin_locked(session, message.id, config)

            session.message_count += 1
            session.total_tokens += message.tokens
            session.updated_at = now
            self.store.update_session(session)

            self._reclassify_locked(session_id, config)

        message_count = session.message_count
        needs_summary = (
            role == Role.ASSISTANT
            and message_count >= config.recent_message_count
            and message_count % config.summary_update_interval == 0
        )
        logger.debug(
            "Appended %s message #%d to %s (%d tokens, needs_summary=%s)",
            role.value, message.index, session_id, message.tokens, needs_summary,
        )
        return AppendResult(
            message_id=message.id,
            index=message.index,
            tokens=message.tokens,
            needs_summary=needs_summary,
            message_count=message_count,
        )

    # ------------------------------------------------------------------
    # Pins
    # ------------------------------------------------------------------

    def pin(self, session_id: str, message_id: str) -> list[str]:
        """Pin an existing message. Returns ids evicted by the FIFO limit."""
        with self.locks.get(session_id), self.store.transaction():
            session = self.get_session(session_id)
            message = self.store.get_message(message_id)
            if message is None or message.session_id != session_id:
                raise MessageNotFound(session_id, message_id)
            evicted = self._pin_locked(session, message_id, self.resolve_config(session))
            session.updated_at = datetime.now(timezone.utc)
            self.store.update_session(session)
        return evicted

    def unpin(self, session_id: str, message_id: str) -> bool:
        """Remove a pin explicitly. Returns False if the message was not pinned."""
        with self.locks.get(session_id), self.store.transaction():
            session = self.get_session(session_id)
            pins = PinnedSet(session.pinned_message_ids, self.resolve_config(session).pinned_message_limit)
            if not pins.remove(message_id):
                return False
            session.pinned_message_ids = pins.to_list()
            session.updated_at = datetime.now(timezone.utc)
            self.store.update_session(session)
            self.store.set_pinned([message_id], False)
        logger.debug("Unpinned %s in session %s", message_id, session_id)
        return True

    def _pin_locked(self, session: Session, message_id: str, config: ContextConfig) -> list[str]:
        pins = PinnedSet(session.pinned_message_ids, config.pinned_message_limit)
        pins.add(message_id)
        # includes ids dropped because the session's limit was lowered
        evicted = pins.evicted
        session.pinned_message_ids = pins.to_list()
        self.store.set_pinned([message_id], True)
        if evicted:
            self.store.set_pinned(evicted, False)
            logger.debug(
                "Pinned-set limit %d reached in %s, evicted %s",
                config.pinned_message_limit, session.id, evicted,
            )
        return evicted

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def reclassify(self, session_id: str) -> list[Message]:
        """Recompute and repair every message tier. Returns the ordered ledger."""
        with self.locks.get(session_id), self.store.transaction():
            session = self.get_session(session_id)
            return self._reclassify_locked(session_id, self.resolve_config(session))

    def _reclassify_locked(self, session_id: str, config: ContextConfig) -> list[Message]:
        messages, changed = classify(self.store.get_messages(session_id), config)
        if changed:
            self.store.update_tiers([(m.id, m.tier) for m in changed])
        return messages

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self, session_id: str) -> Session:
        """Empty the session but keep its id. In-flight summaries become stale."""
        with self.locks.get(session_id):
            session = self.store.reset_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        logger.info("Reset session %s (generation %d)", session_id, session.generation)
        return session
