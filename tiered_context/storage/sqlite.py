"""SQLiteStore: primary storage backend using stdlib sqlite3."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from ..core.store import SessionStore
from ..types import Message, Role, Session, SummaryFocus, SummaryRecord, Tier

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    pinned_message_ids TEXT NOT NULL DEFAULT '[]',
    rolling_summary TEXT,
    rolling_summary_tokens INTEGER NOT NULL DEFAULT 0,
    mid_summary TEXT,
    mid_summary_tokens INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    message_count INTEGER NOT NULL DEFAULT 0,
    config_json TEXT NOT NULL DEFAULT '{}',
    generation INTEGER NOT NULL DEFAULT 0,
    last_summary_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    idx INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    tokens INTEGER NOT NULL DEFAULT 0,
    pinned INTEGER NOT NULL DEFAULT 0,
    tier TEXT NOT NULL DEFAULT 'recent',
    created_at TEXT NOT NULL,
    UNIQUE (session_id, idx),
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS summaries (
    session_id TEXT NOT NULL,
    tier TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    tokens INTEGER NOT NULL DEFAULT 0,
    range_start INTEGER NOT NULL DEFAULT 0,
    range_end INTEGER NOT NULL DEFAULT -1,
    created_at TEXT NOT NULL,
    PRIMARY KEY (session_id, tier),
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_messages_session_idx ON messages(session_id, idx);
"""


def _dt_to_str(dt: datetime) -> str:
    return dt.isoformat()


def _str_to_dt(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        user_id=row["user_id"],
        pinned_message_ids=json.loads(row["pinned_message_ids"]),
        rolling_summary=row["rolling_summary"],
        rolling_summary_tokens=row["rolling_summary_tokens"],
        mid_summary=row["mid_summary"],
        mid_summary_tokens=row["mid_summary_tokens"],
        total_tokens=row["total_tokens"],
        message_count=row["message_count"],
        config=json.loads(row["config_json"]),
        generation=row["generation"],
        last_summary_at=_str_to_dt(row["last_summary_at"]) if row["last_summary_at"] else None,
        created_at=_str_to_dt(row["created_at"]),
        updated_at=_str_to_dt(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        index=row["idx"],
        role=Role(row["role"]),
        content=row["content"],
        tokens=row["tokens"],
        pinned=bool(row["pinned"]),
        tier=Tier(row["tier"]),
        created_at=_str_to_dt(row["created_at"]),
    )


def _row_to_record(row: sqlite3.Row) -> SummaryRecord:
    return SummaryRecord(
        session_id=row["session_id"],
        tier=SummaryFocus(row["tier"]),
        summary=row["summary"],
        tokens=row["tokens"],
        range_start=row["range_start"],
        range_end=row["range_end"],
        created_at=_str_to_dt(row["created_at"]),
    )


class SQLiteStore(SessionStore):
    """SQLite-based session storage.

    One connection is shared by all threads and guarded by a re-entrant
    lock. The connection runs in autocommit mode; ``transaction()`` opens
    an explicit ``BEGIN IMMEDIATE`` so grouped writes commit or roll back
    together.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    def _ensure_schema(self) -> None:
        with self._lock:
            self._get_conn().executescript(SCHEMA_SQL)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            conn = self._get_conn()
            outermost = self._tx_depth == 0
            if outermost:
                conn.execute("BEGIN IMMEDIATE")
            self._tx_depth += 1
            try:
                yield
            except BaseException:
                self._tx_depth -= 1
                if outermost:
                    conn.execute("ROLLBACK")
                raise
            else:
                self._tx_depth -= 1
                if outermost:
                    conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        with self._lock:
            self._get_conn().execute(
                """INSERT INTO sessions
                (id, user_id, pinned_message_ids, rolling_summary, rolling_summary_tokens,
                 mid_summary, mid_summary_tokens, total_tokens, message_count,
                 config_json, generation, last_summary_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                self._session_params(session),
            )
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,),
            ).fetchone()
        if not row:
            return None
        return _row_to_session(row)

    def update_session(self, session: Session) -> None:
        params = self._session_params(session)
        with self._lock:
            self._get_conn().execute(
                """UPDATE sessions SET
                user_id = ?, pinned_message_ids = ?, rolling_summary = ?,
                rolling_summary_tokens = ?, mid_summary = ?, mid_summary_tokens = ?,
                total_tokens = ?, message_count = ?, config_json = ?, generation = ?,
                last_summary_at = ?, created_at = ?, updated_at = ?
                WHERE id = ?""",
                params[1:] + (params[0],),
            )

    def delete_session(self, session_id: str) -> bool:
        with self.transaction():
            conn = self._get_conn()
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            conn.execute("DELETE FROM summaries WHERE session_id = ?", (session_id,))
            cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    def list_sessions(self, user_id: str | None = None) -> list[Session]:
        with self._lock:
            conn = self._get_conn()
            if user_id is None:
                rows = conn.execute(
                    "SELECT * FROM sessions ORDER BY updated_at DESC",
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM sessions WHERE user_id = ? ORDER BY updated_at DESC",
                    (user_id,),
                ).fetchall()
        return [_row_to_session(r) for r in rows]

    @staticmethod
    def _session_params(session: Session) -> tuple:
        return (
            session.id,
            session.user_id,
            json.dumps(session.pinned_message_ids),
            session.rolling_summary,
            session.rolling_summary_tokens,
            session.mid_summary,
            session.mid_summary_tokens,
            session.total_tokens,
            session.message_count,
            json.dumps(session.config or {}),
            session.generation,
            _dt_to_str(session.last_summary_at) if session.last_summary_at else None,
            _dt_to_str(session.created_at),
            _dt_to_str(session.updated_at),
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def insert_message(self, message: Message) -> None:
        with self._lock:
            self._get_conn().execute(
                """INSERT INTO messages
                (id, session_id, idx, role, content, tokens, pinned, tier, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    message.id,
                    message.session_id,
                    message.index,
                    message.role.value,
                    message.content,
                    message.tokens,
                    int(message.pinned),
                    message.tier.value,
                    _dt_to_str(message.created_at),
                ),
            )

    def get_messages(self, session_id: str) -> list[Message]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM messages WHERE session_id = ? ORDER BY idx ASC",
                (session_id,),
            ).fetchall()
        return [_row_to_message(r) for r in rows]

    def get_message(self, message_id: str) -> Message | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM messages WHERE id = ?", (message_id,),
            ).fetchone()
        if not row:
            return None
        return _row_to_message(row)

    def update_tiers(self, updates: list[tuple[str, Tier]]) -> None:
        if not updates:
            return
        with self._lock:
            self._get_conn().executemany(
                "UPDATE messages SET tier = ? WHERE id = ?",
                [(tier.value, message_id) for message_id, tier in updates],
            )

    def set_pinned(self, message_ids: list[str], pinned: bool) -> None:
        if not message_ids:
            return
        with self._lock:
            self._get_conn().executemany(
                "UPDATE messages SET pinned = ? WHERE id = ?",
                [(int(pinned), message_id) for message_id in message_ids],
            )

    def delete_messages(self, session_id: str) -> int:
        with self._lock:
            cursor = self._get_conn().execute(
                "DELETE FROM messages WHERE session_id = ?", (session_id,),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Summary records
    # ------------------------------------------------------------------

    def get_summary_record(self, session_id: str, tier: SummaryFocus) -> SummaryRecord | None:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM summaries WHERE session_id = ? AND tier = ?",
                (session_id, tier.value),
            ).fetchone()
        if not row:
            return None
        return _row_to_record(row)

    def get_summary_records(self, session_id: str) -> list[SummaryRecord]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM summaries WHERE session_id = ? ORDER BY tier",
                (session_id,),
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def upsert_summary_record(self, record: SummaryRecord) -> None:
        with self._lock:
            self._get_conn().execute(
                """INSERT OR REPLACE INTO summaries
                (session_id, tier, summary, tokens, range_start, range_end, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.session_id,
                    record.tier.value,
                    record.summary,
                    record.tokens,
                    record.range_start,
                    record.range_end,
                    _dt_to_str(record.created_at),
                ),
            )

    def delete_summary_records(self, session_id: str, tier: SummaryFocus | None = None) -> int:
        with self._lock:
            conn = self._get_conn()
            if tier is None:
                cursor = conn.execute(
                    "DELETE FROM summaries WHERE session_id = ?", (session_id,),
                )
            else:
                cursor = conn.execute(
                    "DELETE FROM summaries WHERE session_id = ? AND tier = ?",
                    (session_id, tier.value),
                )
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
