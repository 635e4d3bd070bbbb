"""Tests for LLMSummarizer and the truncation fallback."""

import pytest

from tiered_context.core.compactor import (
    HISTORICAL_SYSTEM_PROMPT,
    MID_SYSTEM_PROMPT,
    LLMSummarizer,
    TruncatingSummarizer,
    fallback_summary,
    format_snippets,
)
from tiered_context.types import SummarizationConfig, SummarizationFailure, SummaryFocus

from conftest import MockLLMProvider


SNIPPETS = [
    {"role": "user", "content": "Do you have a gentle cleanser?"},
    {"role": "assistant", "content": "Yes, the oat cleanser is fragrance free."},
]


def test_format_snippets():
    assert format_snippets(SNIPPETS) == (
        "USER: Do you have a gentle cleanser?\n"
        "ASSISTANT: Yes, the oat cleanser is fragrance free."
    )


class TestFallbackSummary:
    def test_keeps_tail(self):
        snippets = [{"role": "user", "content": "x" * 100}]
        result = fallback_summary(snippets, max_tokens=5)
        assert result == "x" * 20

    def test_short_transcript_kept_whole(self):
        assert fallback_summary(SNIPPETS, max_tokens=500) == format_snippets(SNIPPETS)

    def test_empty(self):
        assert fallback_summary([], max_tokens=10) is None

    def test_truncating_summarizer(self):
        summarizer = TruncatingSummarizer()
        assert summarizer.summarize(SNIPPETS, SummaryFocus.MID, 500) == format_snippets(SNIPPETS)


class TestLLMSummarizer:
    def test_mid_prompt(self):
        llm = MockLLMProvider(response="Customer asked about cleansers.")
        summarizer = LLMSummarizer(llm_provider=llm)
        result = summarizer.summarize(SNIPPETS, SummaryFocus.MID, max_tokens=500)

        assert result == "Customer asked about cleansers."
        assert len(llm.calls) == 1
        assert llm.calls[0]["system"] == MID_SYSTEM_PROMPT
        assert "USER: Do you have a gentle cleanser?" in llm.calls[0]["user"]

    def test_historical_prompt(self):
        llm = MockLLMProvider()
        LLMSummarizer(llm_provider=llm).summarize(SNIPPETS, SummaryFocus.HISTORICAL, max_tokens=500)
        assert llm.calls[0]["system"] == HISTORICAL_SYSTEM_PROMPT

    def test_output_capped(self):
        llm = MockLLMProvider()
        summarizer = LLMSummarizer(llm_provider=llm, config=SummarizationConfig(max_tokens=600))
        summarizer.summarize(SNIPPETS, SummaryFocus.MID, max_tokens=2000)
        summarizer.summarize(SNIPPETS, SummaryFocus.MID, max_tokens=100)
        assert [c["max_tokens"] for c in llm.calls] == [600, 100]

    def test_input_truncated_to_tail(self):
        llm = MockLLMProvider()
        summarizer = LLMSummarizer(llm_provider=llm, config=SummarizationConfig(input_char_limit=30))
        snippets = [{"role": "user", "content": "a" * 50}, {"role": "assistant", "content": "final words"}]
        summarizer.summarize(snippets, SummaryFocus.MID, max_tokens=100)
        user_prompt = llm.calls[0]["user"]
        assert "ASSISTANT: final words" in user_prompt
        assert "USER:" not in user_prompt

    def test_empty_snippets_skip_llm(self):
        llm = MockLLMProvider()
        assert LLMSummarizer(llm_provider=llm).summarize([], SummaryFocus.MID, 100) is None
        assert llm.calls == []

    def test_strips_fences_and_thinking(self):
        llm = MockLLMProvider(response="```\n<think>hmm</think>Clean summary\n```")
        result = LLMSummarizer(llm_provider=llm).summarize(SNIPPETS, SummaryFocus.MID, 100)
        assert result == "Clean summary"

    def test_empty_response_raises(self):
        llm = MockLLMProvider(response="   ")
        with pytest.raises(SummarizationFailure) as exc_info:
            LLMSummarizer(llm_provider=llm).summarize(SNIPPETS, SummaryFocus.MID, 100)
        assert exc_info.value.focus == SummaryFocus.MID

    def test_provider_error_wrapped(self):
        class BrokenLLM:
            def complete(self, system, user, max_tokens):
                raise ConnectionError("down")

        with pytest.raises(SummarizationFailure, match="down"):
            LLMSummarizer(llm_provider=BrokenLLM()).summarize(SNIPPETS, SummaryFocus.HISTORICAL, 100)
