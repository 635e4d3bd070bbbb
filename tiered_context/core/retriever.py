"""SemanticRetriever: resurface older messages lexically close to the latest user turn."""

from __future__ import annotations

import logging
import re
import unicodedata

from ..types import ContextConfig, Message, Role, ScoredMessage

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _NON_WORD.sub(" ", stripped)
    return _WHITESPACE.sub(" ", stripped).strip()


def tokenize(text: str) -> set[str]:
    normalized = normalize_text(text)
    if not normalized:
        return set()
    return set(normalized.split(" "))


def jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def latest_user_message(messages: list[Message]) -> Message | None:
    for message in reversed(messages):
        if message.role == Role.USER:
            return message
    return None


class SemanticRetriever:
    """Rank candidate messages by Jaccard similarity against a query.

    Lexical only: no stemming and no embeddings.
    """

    def __init__(self, config: ContextConfig) -> None:
        self.config = config

    def candidates(
        self,
        messages: list[Message],
        pinned_ids: set[str],
        recent_start: int,
    ) -> list[Message]:
        """Messages eligible for retrieval: unpinned, older than the recent window, non-system."""
        return [
            m for m in messages
            if m.id not in pinned_ids
            and m.index < recent_start
            and m.role != Role.SYSTEM
        ]

    def rank(self, query: str, candidates: list[Message]) -> list[ScoredMessage]:
        """Score, threshold, and truncate *candidates* in ledger order for ties."""
        if not self.config.enable_semantic_search:
            return []
        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        threshold = self.config.semantic_similarity_threshold
        scored = [
            ScoredMessage(message=m, score=jaccard(query_tokens, tokenize(m.content)))
            for m in candidates
        ]
        scored = [s for s in scored if s.score >= threshold]
        # sorted() is stable, so equal scores keep ledger order
        scored.sort(key=lambda s: s.score, reverse=True)
        selected = scored[: self.config.semantic_candidate_limit]
        if selected:
            logger.debug(
                "Semantic retrieval: %d/%d candidates >= %.2f, kept %d",
                len(scored), len(candidates), threshold, len(selected),
            )
        return selected

    def retrieve(
        self,
        messages: list[Message],
        pinned_ids: set[str],
        recent_start: int,
    ) -> list[Message]:
        """Top matches for the latest user turn in *messages*."""
        if not self.config.enable_semantic_search:
            return []
        query = latest_user_message(messages)
        if query is None:
            return []
        pool = self.candidates(messages, pinned_ids, recent_start)
        return [s.message for s in self.rank(query.content, pool)]
