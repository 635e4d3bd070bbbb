"""Tests for SQLite storage backend."""

import sqlite3

import pytest

from tiered_context.storage.sqlite import SQLiteStore
from tiered_context.token_counter import estimate_tokens
from tiered_context.types import (
    Message,
    Role,
    Session,
    StaleSummaryWrite,
    SummaryFocus,
    SummaryRecord,
    SummaryUpdate,
    Tier,
)


def _make_message(session_id: str, index: int, content: str = "hello") -> Message:
    return Message(
        session_id=session_id,
        index=index,
        role=Role.USER if index % 2 == 0 else Role.ASSISTANT,
        content=content,
        tokens=estimate_tokens(content),
    )


def _update(session: Session, **kwargs) -> SummaryUpdate:
    defaults = dict(
        session_id=session.id,
        generation=session.generation,
        mid_summary="mid",
        mid_range=(2, 3),
        historical_summary="historical",
        historical_range=(0, 1),
    )
    defaults.update(kwargs)
    return SummaryUpdate(**defaults)


class TestSQLiteStore:
    def test_create_and_get_session(self, store):
        session = Session(user_id="u-1", config={"recentMessageCount": 4})
        store.create_session(session)

        retrieved = store.get_session(session.id)
        assert retrieved is not None
        assert retrieved.user_id == "u-1"
        assert retrieved.config == {"recentMessageCount": 4}
        assert retrieved.message_count == 0
        assert retrieved.generation == 0
        assert retrieved.last_summary_at is None

    def test_get_session_not_found(self, store):
        assert store.get_session("nonexistent") is None

    def test_update_session(self, store):
        session = store.create_session(Session())
        session.pinned_message_ids = ["a", "b"]
        session.total_tokens = 42
        store.update_session(session)

        retrieved = store.get_session(session.id)
        assert retrieved.pinned_message_ids == ["a", "b"]
        assert retrieved.total_tokens == 42

    def test_list_sessions_by_user(self, store):
        store.create_session(Session(user_id="u-1"))
        store.create_session(Session(user_id="u-1"))
        store.create_session(Session(user_id="u-2"))
        assert len(store.list_sessions()) == 3
        assert len(store.list_sessions("u-1")) == 2

    def test_messages_ordered_by_index(self, store):
        session = store.create_session(Session())
        for i in (2, 0, 1):
            store.insert_message(_make_message(session.id, i, f"m{i}"))
        messages = store.get_messages(session.id)
        assert [m.index for m in messages] == [0, 1, 2]
        assert messages[0].role == Role.USER
        assert messages[0].tier == Tier.RECENT

    def test_duplicate_index_rejected(self, store):
        session = store.create_session(Session())
        store.insert_message(_make_message(session.id, 0))
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_message(_make_message(session.id, 0))

    def test_update_tiers_and_pinned(self, store):
        session = store.create_session(Session())
        msg = _make_message(session.id, 0)
        store.insert_message(msg)
        store.update_tiers([(msg.id, Tier.HISTORICAL)])
        store.set_pinned([msg.id], True)

        retrieved = store.get_message(msg.id)
        assert retrieved.tier == Tier.HISTORICAL
        assert retrieved.pinned is True

    def test_summary_record_upsert(self, store):
        session = store.create_session(Session())
        store.upsert_summary_record(SummaryRecord(
            session_id=session.id, tier=SummaryFocus.MID, summary="first", range_start=0, range_end=3,
        ))
        store.upsert_summary_record(SummaryRecord(
            session_id=session.id, tier=SummaryFocus.MID, summary="second", range_start=2, range_end=5,
        ))
        records = store.get_summary_records(session.id)
        assert len(records) == 1
        assert records[0].summary == "second"
        assert (records[0].range_start, records[0].range_end) == (2, 5)

    def test_delete_session_cascades(self, store):
        session = store.create_session(Session())
        store.insert_message(_make_message(session.id, 0))
        store.upsert_summary_record(SummaryRecord(
            session_id=session.id, tier=SummaryFocus.MID, summary="s",
        ))
        assert store.delete_session(session.id) is True
        assert store.get_session(session.id) is None
        assert store.get_messages(session.id) == []
        assert store.get_summary_records(session.id) == []
        assert store.delete_session(session.id) is False

    def test_transaction_rolls_back(self, store):
        session = store.create_session(Session())
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert_message(_make_message(session.id, 0))
                session.message_count = 1
                store.update_session(session)
                raise RuntimeError("boom")
        assert store.get_messages(session.id) == []
        assert store.get_session(session.id).message_count == 0

    def test_nested_transaction(self, store):
        session = store.create_session(Session())
        with store.transaction():
            with store.transaction():
                store.insert_message(_make_message(session.id, 0))
            store.insert_message(_make_message(session.id, 1))
        assert len(store.get_messages(session.id)) == 2

    def test_in_memory_database(self):
        s = SQLiteStore(db_path=":memory:")
        session = s.create_session(Session())
        assert s.get_session(session.id) is not None
        s.close()


class TestCompositeOperations:
    def test_reset_session(self, store):
        session = store.create_session(Session(user_id="u-1"))
        store.insert_message(_make_message(session.id, 0))
        session.message_count = 1
        session.total_tokens = 2
        session.pinned_message_ids = ["x"]
        session.rolling_summary = "old"
        store.update_session(session)
        store.upsert_summary_record(SummaryRecord(
            session_id=session.id, tier=SummaryFocus.HISTORICAL, summary="old",
        ))

        reset = store.reset_session(session.id)
        assert reset.id == session.id
        assert reset.generation == 1
        stored = store.get_session(session.id)
        assert stored.message_count == 0
        assert stored.total_tokens == 0
        assert stored.pinned_message_ids == []
        assert stored.rolling_summary is None
        assert stored.user_id == "u-1"
        assert store.get_messages(session.id) == []
        assert store.get_summary_records(session.id) == []

    def test_reset_missing_session(self, store):
        assert store.reset_session("nope") is None

    def test_apply_summaries(self, store):
        session = store.create_session(Session())
        store.apply_summaries(_update(session), estimate_tokens)

        stored = store.get_session(session.id)
        assert stored.mid_summary == "mid"
        assert stored.rolling_summary == "historical"
        assert stored.mid_summary_tokens == estimate_tokens("mid")
        assert stored.last_summary_at is not None

        mid = store.get_summary_record(session.id, SummaryFocus.MID)
        historical = store.get_summary_record(session.id, SummaryFocus.HISTORICAL)
        assert (mid.range_start, mid.range_end) == (2, 3)
        assert (historical.range_start, historical.range_end) == (0, 1)

    def test_apply_empty_summary_clears_record(self, store):
        session = store.create_session(Session())
        store.apply_summaries(_update(session), estimate_tokens)
        store.apply_summaries(_update(session, mid_summary=None), estimate_tokens)

        assert store.get_summary_record(session.id, SummaryFocus.MID) is None
        assert store.get_session(session.id).mid_summary is None
        assert store.get_session(session.id).mid_summary_tokens == 0

    def test_apply_after_reset_is_stale(self, store):
        session = store.create_session(Session())
        update = _update(session)
        store.reset_session(session.id)
        with pytest.raises(StaleSummaryWrite):
            store.apply_summaries(update, estimate_tokens)
        assert store.get_session(session.id).mid_summary is None

    def test_apply_to_deleted_session_is_stale(self, store):
        session = store.create_session(Session())
        update = _update(session)
        store.delete_session(session.id)
        with pytest.raises(StaleSummaryWrite):
            store.apply_summaries(update, estimate_tokens)

    def test_watermark_never_moves_back(self, store):
        session = store.create_session(Session())
        store.apply_summaries(_update(session, historical_range=(0, 5)), estimate_tokens)
        with pytest.raises(StaleSummaryWrite):
            store.apply_summaries(_update(session, historical_range=(0, 3)), estimate_tokens)
        record = store.get_summary_record(session.id, SummaryFocus.HISTORICAL)
        assert record.range_end == 5
