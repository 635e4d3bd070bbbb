"""Token counting utilities."""

from __future__ import annotations

import math
import re
from typing import Callable

AVERAGE_CHARS_PER_TOKEN = 4

_WHITESPACE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def estimate_tokens(text: str) -> int:
    """Rough estimate: the larger of ~4 chars per token and the word count."""
    if not text:
        return 0
    normalized = _normalize(text)
    if not normalized:
        return 0
    char_estimate = math.ceil(len(normalized) / AVERAGE_CHARS_PER_TOKEN)
    word_estimate = len(normalized.split(" "))
    return max(char_estimate, word_estimate)


def create_token_counter(mode: str = "estimate") -> Callable[[str], int]:
    """Factory for token counters.

    Modes:
        "estimate" - whitespace-normalized chars/4 vs word count (zero deps)
        "tiktoken" - requires tiktoken package
        "callable:module.path:func" - custom callable
    """
    if mode == "estimate":
        return estimate_tokens

    if mode == "tiktoken":
        try:
            import tiktoken
            enc = tiktoken.encoding_for_model("gpt-4o-mini")
            return lambda text: len(enc.encode(text)) if text else 0
        except ImportError:
            raise ImportError(
                "tiktoken not installed. Install with: pip install tiered-context[tiktoken]"
            )

    if mode.startswith("callable:"):
        # Format: callable:module.path:func_name
        parts = mode[len("callable:"):].rsplit(":", 1)
        if len(parts) != 2:
            raise ValueError(f"Invalid callable spec: {mode}. Expected callable:module:func")
        module_path, func_name = parts
        import importlib
        mod = importlib.import_module(module_path)
        return getattr(mod, func_name)

    raise ValueError(f"Unknown token counter mode: {mode}")
