"""PinnedSet: bounded FIFO set of message ids exempt from tiering and trimming."""

from __future__ import annotations

from collections import OrderedDict


class PinnedSet:
    """Insertion-ordered set capped at *limit*.

    Overflow evicts the id that was pinned earliest, regardless of the
    pinned message's position in the ledger.
    """

    def __init__(self, ids: list[str] | None = None, limit: int = 5) -> None:
        if limit < 1:
            raise ValueError("pinned message limit must be >= 1")
        self.limit = limit
        self._ids: OrderedDict[str, None] = OrderedDict((i, None) for i in ids or [])
        self.evicted: list[str] = []
        # A lowered limit takes effect on load.
        self._evict_overflow(room_for=0)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def add(self, message_id: str) -> list[str]:
        """Pin *message_id*. Returns ids evicted to make room (oldest first)."""
        if message_id in self._ids:
            return []
        evicted = self._evict_overflow(room_for=1)
        self._ids[message_id] = None
        return evicted

    def remove(self, message_id: str) -> bool:
        if message_id not in self._ids:
            return False
        del self._ids[message_id]
        return True

    def to_list(self) -> list[str]:
        return list(self._ids)

    def _evict_overflow(self, room_for: int) -> list[str]:
        evicted: list[str] = []
        while self._ids and len(self._ids) + room_for > self.limit:
            oldest, _ = self._ids.popitem(last=False)
            evicted.append(oldest)
        self.evicted.extend(evicted)
        return evicted
