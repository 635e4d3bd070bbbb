"""Tests for ContextAssembler: ordering, budget trimming, pinned and semantic entries."""

from tiered_context.core.assembler import (
    HISTORICAL_SUMMARY_PREFIX,
    MID_SUMMARY_PREFIX,
    ContextAssembler,
)
from tiered_context.token_counter import estimate_tokens
from tiered_context.types import ContextConfig, EntryCategory, Message, Role, Session


def _messages(session: Session, contents: list[str], tokens: int | None = None) -> list[Message]:
    return [
        Message(
            session_id=session.id,
            index=i,
            role=Role.USER if i % 2 == 0 else Role.ASSISTANT,
            content=content,
            tokens=tokens if tokens is not None else estimate_tokens(content),
            id=f"m{i}",
        )
        for i, content in enumerate(contents)
    ]


CONVERSATION = [
    "hello there",
    "my order number is 1234",
    "shipping question",
    "the gentle cleanser is fragrance free",
    "ok",
    "anything else",
    "tell me about the gentle cleanser",
    "sure",
]


class TestEmpty:
    def test_empty_session(self):
        session = Session(id="s")
        context = ContextAssembler(ContextConfig()).assemble(session, [])
        assert context.session_id == "s"
        assert context.messages == []
        assert context.token_count == 0
        assert context.pinned_ids == []
        assert context.semantic_ids == []

    def test_summaries_only(self):
        session = Session(id="s", rolling_summary="facts")
        context = ContextAssembler(ContextConfig()).assemble(session, [])
        assert context.messages == [{"role": "system", "content": f"{HISTORICAL_SUMMARY_PREFIX}facts"}]


class TestOrdering:
    def test_full_assembly_order(self):
        session = Session(id="s", rolling_summary="old facts", mid_summary="recent facts")
        messages = _messages(session, CONVERSATION)
        session.pinned_message_ids = ["m1"]
        config = ContextConfig(recent_message_count=2, mid_range_window=2)

        context = ContextAssembler(config).assemble(session, messages)

        assert context.messages[0] == {"role": "system", "content": "Historical summary:\nold facts"}
        assert context.messages[1] == {"role": "system", "content": "Recent context:\nrecent facts"}
        assert [e.message_id for e in context.entries[2:]] == ["m1", "m3", "m6", "m7"]
        assert [e.category for e in context.entries] == [
            EntryCategory.SUMMARY,
            EntryCategory.SUMMARY,
            EntryCategory.PINNED,
            EntryCategory.SEMANTIC,
            EntryCategory.RECENT,
            EntryCategory.RECENT,
        ]
        assert context.pinned_ids == ["m1"]
        assert context.semantic_ids == ["m3"]
        assert context.trimmed == 0

    def test_token_count_matches_entries(self):
        session = Session(id="s", mid_summary="recent facts")
        messages = _messages(session, CONVERSATION)
        context = ContextAssembler(ContextConfig(recent_message_count=2)).assemble(session, messages)

        assert context.token_count == sum(e.tokens for e in context.entries)
        assert context.budget_breakdown["summary"] == estimate_tokens(f"{MID_SUMMARY_PREFIX}recent facts")
        assert sum(context.budget_breakdown.values()) == context.token_count

    def test_pinned_in_recent_window_not_duplicated(self):
        session = Session(id="s", pinned_message_ids=["m7"])
        messages = _messages(session, CONVERSATION)
        config = ContextConfig(recent_message_count=2, enable_semantic_search=False)

        context = ContextAssembler(config).assemble(session, messages)

        assert [(e.message_id, e.category) for e in context.entries] == [
            ("m7", EntryCategory.PINNED),
            ("m6", EntryCategory.RECENT),
        ]
        assert context.pinned_ids == ["m7"]

    def test_pinned_not_retrieved_again(self):
        session = Session(id="s", pinned_message_ids=["m3"])
        messages = _messages(session, CONVERSATION)
        config = ContextConfig(recent_message_count=2)

        context = ContextAssembler(config).assemble(session, messages)

        ids = [e.message_id for e in context.entries]
        assert ids.count("m3") == 1
        assert context.semantic_ids == []

    def test_semantic_disabled(self):
        session = Session(id="s")
        messages = _messages(session, CONVERSATION)
        config = ContextConfig(recent_message_count=2, enable_semantic_search=False)
        context = ContextAssembler(config).assemble(session, messages)
        assert context.semantic_ids == []
        assert [e.message_id for e in context.entries] == ["m6", "m7"]

    def test_does_not_mutate_inputs(self):
        session = Session(id="s", pinned_message_ids=["m1"])
        messages = _messages(session, CONVERSATION)
        snapshot = [(m.id, m.tier, m.content) for m in messages]
        ContextAssembler(ContextConfig(recent_message_count=2, max_context_tokens=1)).assemble(session, messages)
        assert [(m.id, m.tier, m.content) for m in messages] == snapshot
        assert session.pinned_message_ids == ["m1"]


class TestTrimming:
    def test_trims_oldest_recent_first(self):
        session = Session(id="s")
        messages = _messages(session, ["a", "b", "c", "d"], tokens=4)
        config = ContextConfig(recent_message_count=4, max_context_tokens=10, enable_semantic_search=False)

        context = ContextAssembler(config).assemble(session, messages)

        assert [e.message_id for e in context.entries] == ["m2", "m3"]
        assert context.token_count == 8
        assert context.trimmed == 2

    def test_latest_user_turn_survives(self):
        session = Session(id="s")
        messages = _messages(session, ["a", "b", "c", "d"], tokens=4)
        config = ContextConfig(recent_message_count=4, max_context_tokens=1, enable_semantic_search=False)

        context = ContextAssembler(config).assemble(session, messages)

        # m2 is the newest user message; everything else goes
        assert [e.message_id for e in context.entries] == ["m2"]
        assert context.token_count == 4
        assert context.trimmed == 3

    def test_pinned_recent_message_stays_pinned(self):
        session = Session(id="s", pinned_message_ids=["m0"])
        messages = _messages(session, ["a", "b", "c", "d"], tokens=4)
        config = ContextConfig(recent_message_count=4, max_context_tokens=1, enable_semantic_search=False)

        context = ContextAssembler(config).assemble(session, messages)

        assert [(e.message_id, e.category) for e in context.entries] == [
            ("m0", EntryCategory.PINNED),
            ("m2", EntryCategory.RECENT),
        ]
        assert context.token_count == 8
        assert context.trimmed == 2

    def test_budget_met_or_only_latest_turn_left(self):
        session = Session(id="s", pinned_message_ids=["m0"])
        messages = _messages(session, ["a", "b", "c", "d", "e", "f"], tokens=4)
        for budget in (1, 6, 10, 14, 30):
            config = ContextConfig(
                recent_message_count=6, max_context_tokens=budget, enable_semantic_search=False,
            )
            context = ContextAssembler(config).assemble(session, messages)
            recent = [e.message_id for e in context.entries if e.category == EntryCategory.RECENT]
            assert context.token_count <= budget or recent == ["m4"]

    def test_summaries_never_trimmed(self):
        session = Session(id="s", rolling_summary="word " * 50)
        messages = _messages(session, ["a", "b"], tokens=4)
        config = ContextConfig(recent_message_count=2, max_context_tokens=10, enable_semantic_search=False)

        context = ContextAssembler(config).assemble(session, messages)

        # still over budget: the summary and latest user turn are kept
        assert context.entries[0].category == EntryCategory.SUMMARY
        assert [e.message_id for e in context.entries[1:]] == ["m0"]
        assert context.token_count > config.max_context_tokens
        assert context.trimmed == 1

    def test_within_budget_untouched(self):
        session = Session(id="s")
        messages = _messages(session, ["a", "b", "c"], tokens=1)
        config = ContextConfig(recent_message_count=3, max_context_tokens=3, enable_semantic_search=False)
        context = ContextAssembler(config).assemble(session, messages)
        assert context.trimmed == 0
        assert len(context.entries) == 3
