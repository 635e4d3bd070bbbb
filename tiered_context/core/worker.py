"""SummaryWorker: consumes summarization requests off the append path."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable

from ..types import SessionNotFound, SummaryRequest, SummaryRun

logger = logging.getLogger(__name__)

_STOP = object()


class SummaryWorker:
    """Single daemon thread draining a queue of SummaryRequests.

    Requests for a session that is already queued are coalesced: the run
    that eventually executes reads the latest snapshot anyway.
    """

    def __init__(
        self,
        recompute: Callable[[str], SummaryRun],
        name: str = "tiered-context-summarizer",
    ) -> None:
        self._recompute = recompute
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.completed: int = 0
        self.failed: int = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._start_lock:
            if self.running:
                return
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def submit(self, session_id: str) -> bool:
        """Queue a recompute for *session_id*. Returns False if one is already pending."""
        with self._pending_lock:
            if session_id in self._pending:
                return False
            self._pending.add(session_id)
        self._queue.put(SummaryRequest(session_id=session_id))
        self.start()
        return True

    def join(self) -> None:
        """Block until every queued request has been processed."""
        self._queue.join()

    def stop(self, wait: bool = True) -> None:
        with self._start_lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                return
            self._queue.put(_STOP)
            self._thread = None
        if wait:
            thread.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._process(item)
            finally:
                self._queue.task_done()

    def _process(self, request: SummaryRequest) -> None:
        with self._pending_lock:
            self._pending.discard(request.session_id)
        try:
            self._recompute(request.session_id)
            self.completed += 1
        except SessionNotFound:
            logger.info("Skipping summaries for deleted session %s", request.session_id)
        except Exception:
            self.failed += 1
            logger.exception("Summary recompute failed for session %s", request.session_id)
