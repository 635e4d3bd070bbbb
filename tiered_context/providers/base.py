"""BaseProvider: one summarization completion over HTTP, with retries."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import httpx

from ..types import LLMProviderError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BACKOFF = [1.0, 2.0, 4.0]
RETRYABLE_STATUS = {408, 429}


class BaseProvider(ABC):
    """Shared request/retry loop for summarization backends.

    Subclasses describe the wire format (URL, headers, payload, response
    text). ``complete()`` retries timeouts, transport errors, rate limits and
    5xx responses; other HTTP errors fail immediately.
    """

    name = "base"

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout
        self.last_usage: dict = {}

    @abstractmethod
    def _get_url(self) -> str: ...

    @abstractmethod
    def _get_headers(self) -> dict: ...

    @abstractmethod
    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict: ...

    @abstractmethod
    def _extract_text(self, data: dict) -> str: ...

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout)

    def complete(self, system: str, user: str, max_tokens: int) -> str:
        """Return the completion text for one summarization prompt."""
        payload = self._build_payload(system, user, max_tokens)
        last_error: LLMProviderError | None = None

        for attempt in range(MAX_ATTEMPTS):
            try:
                response = self._post(payload)
            except httpx.HTTPError as e:
                last_error = LLMProviderError(f"HTTP error: {e}", provider=self.name)
                self._wait(attempt, None, str(e))
                continue

            if response.status_code == 200:
                return self._parse(response)

            last_error = LLMProviderError(
                f"HTTP {response.status_code}: {response.text}",
                provider=self.name,
                status_code=response.status_code,
            )
            if response.status_code not in RETRYABLE_STATUS and response.status_code < 500:
                raise last_error
            self._wait(attempt, response.headers.get("retry-after"), f"HTTP {response.status_code}")

        raise last_error or LLMProviderError("Max retries exceeded", provider=self.name)

    def _post(self, payload: dict) -> httpx.Response:
        with self._client() as client:
            return client.post(self._get_url(), headers=self._get_headers(), json=payload)

    def _parse(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise LLMProviderError(f"Invalid JSON response: {e}", provider=self.name) from e
        self.last_usage = data.get("usage", {}) or {}
        return self._extract_text(data)

    def _wait(self, attempt: int, retry_after: str | None, reason: str) -> None:
        if attempt >= MAX_ATTEMPTS - 1:
            return
        delay = RETRY_BACKOFF[attempt]
        if retry_after and retry_after.isdigit():
            delay = max(delay, float(retry_after))
        logger.debug("%s: %s, retrying in %.1fs", self.name, reason, delay)
        time.sleep(delay)
