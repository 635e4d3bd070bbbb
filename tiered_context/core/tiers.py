"""Tier classification: partition a session's ledger into historical / mid / recent."""

from __future__ import annotations

from ..types import ContextConfig, Message, Tier


def compute_boundaries(message_count: int, config: ContextConfig) -> tuple[int, int]:
    """Return ``(mid_start, recent_start)`` for a ledger of *message_count* messages.

    Historical is ``[0, mid_start)``, mid is ``[mid_start, recent_start)``,
    recent is ``[recent_start, message_count)``.
    """
    recent_start = max(0, message_count - config.recent_message_count)
    mid_start = max(0, recent_start - config.mid_range_window)
    return mid_start, recent_start


def tier_for_index(index: int, message_count: int, config: ContextConfig) -> Tier:
    mid_start, recent_start = compute_boundaries(message_count, config)
    if index >= recent_start:
        return Tier.RECENT
    if index >= mid_start:
        return Tier.MID
    return Tier.HISTORICAL


def classify(
    messages: list[Message],
    config: ContextConfig,
) -> tuple[list[Message], list[Message]]:
    """Assign every message its target tier.

    *messages* must be ordered by index. Tiers are always recomputed from
    position, never carried forward. Returns ``(messages, changed)`` where
    ``changed`` holds only the messages whose tier moved and therefore need
    to be written back.
    """
    mid_start, recent_start = compute_boundaries(len(messages), config)
    changed: list[Message] = []
    for position, message in enumerate(messages):
        if position >= recent_start:
            target = Tier.RECENT
        elif position >= mid_start:
            target = Tier.MID
        else:
            target = Tier.HISTORICAL
        if message.tier != target:
            message.tier = target
            changed.append(message)
    return messages, changed
