"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from .types import (
    ContextConfig,
    StorageConfig,
    SummarizationConfig,
    TieredContextConfig,
    WorkerConfig,
)

CONFIG_FILENAMES = [
    "tiered-context.yaml",
    "tiered-context.yml",
    "tiered-context.json",
]

# Session configs written by older clients use camelCase keys.
_CAMEL_ALIASES = {
    "maxContextTokens": "max_context_tokens",
    "recentMessageCount": "recent_message_count",
    "summaryUpdateInterval": "summary_update_interval",
    "midRangeWindow": "mid_range_window",
    "maxSummaryTokens": "max_summary_tokens",
    "enableSemanticSearch": "enable_semantic_search",
    "pinnedMessageLimit": "pinned_message_limit",
    "semanticCandidateLimit": "semantic_candidate_limit",
    "semanticSimilarityThreshold": "semantic_similarity_threshold",
}

_CONTEXT_FIELDS = {f.name for f in fields(ContextConfig)}


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _context_overrides(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a raw override dict to known ContextConfig field names."""
    if not raw:
        return {}
    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        name = _CAMEL_ALIASES.get(key, key)
        if name in _CONTEXT_FIELDS and value is not None:
            overrides[name] = value
    return overrides


def resolve_context_config(
    base: ContextConfig,
    *overrides: dict[str, Any] | None,
) -> ContextConfig:
    """Layer override dicts (session config, per-call override) on top of *base*.

    Later dicts win. Unknown keys are ignored.
    """
    merged: dict[str, Any] = {}
    for raw in overrides:
        merged.update(_context_overrides(raw))
    if not merged:
        return replace(base)
    return replace(base, **merged)


def _build_config(raw: dict[str, Any]) -> TieredContextConfig:
    """Build a TieredContextConfig from a raw dict."""
    context = resolve_context_config(ContextConfig(), raw.get("context", {}))

    summ_raw = raw.get("summarization", {})
    summarization = SummarizationConfig(
        provider=summ_raw.get("provider", "openai"),
        model=summ_raw.get("model", "gpt-4o-mini"),
        max_tokens=summ_raw.get("max_tokens", 600),
        temperature=summ_raw.get("temperature", 0.2),
        input_char_limit=summ_raw.get("input_char_limit", 8000),
        timeout=summ_raw.get("timeout", 60.0),
    )

    storage_raw = raw.get("storage", {})
    storage = StorageConfig(
        backend=storage_raw.get("backend", "sqlite"),
        sqlite_path=storage_raw.get("sqlite_path", ".tieredcontext/store.db"),
    )

    worker_raw = raw.get("worker", {})
    worker = WorkerConfig(
        auto_summarize=worker_raw.get("auto_summarize", True),
        max_concurrent_summaries=worker_raw.get("max_concurrent_summaries", 2),
    )

    return TieredContextConfig(
        version=str(raw.get("version", "0.1")),
        token_counter=raw.get("token_counter", "estimate"),
        context=context,
        summarization=summarization,
        storage=storage,
        worker=worker,
        providers=raw.get("providers", {}),
    )


def validate_context_config(config: ContextConfig) -> list[str]:
    errors: list[str] = []
    for name in (
        "max_context_tokens",
        "recent_message_count",
        "summary_update_interval",
        "max_summary_tokens",
        "pinned_message_limit",
    ):
        if getattr(config, name) < 1:
            errors.append(f"{name} must be >= 1")
    for name in ("mid_range_window", "semantic_candidate_limit"):
        if getattr(config, name) < 0:
            errors.append(f"{name} must be >= 0")
    threshold = config.semantic_similarity_threshold
    if not 0.0 <= threshold <= 1.0:
        errors.append(
            f"semantic_similarity_threshold ({threshold}) must be between 0 and 1"
        )
    return errors


def validate_config(config: TieredContextConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors = validate_context_config(config.context)

    if config.storage.backend != "sqlite":
        errors.append(f"Unknown storage backend '{config.storage.backend}'")

    if config.worker.max_concurrent_summaries < 1:
        errors.append("max_concurrent_summaries must be >= 1")

    # Check that summarization provider exists in providers
    if config.providers and config.summarization.provider not in config.providers:
        errors.append(
            f"Summarization provider '{config.summarization.provider}' "
            f"not found in providers section"
        )

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> TieredContextConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
