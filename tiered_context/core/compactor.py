"""LLMSummarizer: condenses conversation snippets into mid / historical summaries."""

from __future__ import annotations

import logging
import re

from ..types import (
    LLMProvider,
    SummarizationConfig,
    SummarizationFailure,
    SummaryFocus,
)

logger = logging.getLogger(__name__)

MID_SYSTEM_PROMPT = """\
You summarise the latest portion of an assistant conversation. Capture actionable
requests, clarifications, and unresolved questions in under 120 words.
Output plain prose only. No markdown headers, no preamble."""

HISTORICAL_SYSTEM_PROMPT = """\
You maintain a rolling high-level summary of an assistant conversation. The input
may start with the previous summary (role SUMMARY); fold the new messages into it.
Capture enduring facts, preferences, and decisions in under 200 words.
Output plain prose only. No markdown headers, no preamble."""

USER_PROMPT = "Summarise the following snippets:\n\n{transcript}"

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)


def format_snippets(snippets: list[dict]) -> str:
    """Format snippets as 'ROLE: content' lines."""
    return "\n".join(
        f"{str(s.get('role', '')).upper()}: {s.get('content', '')}"
        for s in snippets
    )


def fallback_summary(snippets: list[dict], max_tokens: int) -> str | None:
    """Deterministic stand-in when the summarizer fails: the transcript's tail.

    Keeps the last ``max_tokens * 4`` characters. None for empty input.
    """
    if not snippets:
        return None
    text = format_snippets(snippets)
    if not text.strip():
        return None
    return text[-(max_tokens * 4):]


class LLMSummarizer:
    """Summarize snippets with a configurable LLM provider.

    Raises SummarizationFailure on provider errors or empty output; callers
    are expected to fall back (see ``fallback_summary``).
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        config: SummarizationConfig | None = None,
    ) -> None:
        self.llm = llm_provider
        self.config = config or SummarizationConfig()

    def summarize(
        self,
        snippets: list[dict],
        focus: SummaryFocus,
        max_tokens: int,
    ) -> str | None:
        if not snippets:
            return None
        focus = SummaryFocus(focus)
        transcript = format_snippets(snippets)[-self.config.input_char_limit:]

        system = MID_SYSTEM_PROMPT if focus == SummaryFocus.MID else HISTORICAL_SYSTEM_PROMPT
        try:
            response_text = self.llm.complete(
                system=system,
                user=USER_PROMPT.format(transcript=transcript),
                max_tokens=min(max_tokens, self.config.max_tokens),
            )
        except Exception as e:
            raise SummarizationFailure(f"LLM {focus.value} summarization failed: {e}", focus) from e

        summary = self._clean_response(response_text or "")
        if not summary:
            raise SummarizationFailure(f"LLM returned an empty {focus.value} summary", focus)
        return summary

    @staticmethod
    def _clean_response(response: str) -> str:
        """Strip markdown fences and thinking blocks."""
        text = response.strip()

        if text.startswith("```"):
            lines = text.split("\n")
            lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines)

        if "<think>" in text:
            text = _THINK_BLOCK.sub("", text)

        return text.strip()


class TruncatingSummarizer:
    """Summarizer used when no LLM provider is configured: keeps the transcript tail."""

    def summarize(
        self,
        snippets: list[dict],
        focus: SummaryFocus,
        max_tokens: int,
    ) -> str | None:
        return fallback_summary(snippets, max_tokens)
