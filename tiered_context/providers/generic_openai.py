"""GenericOpenAIProvider: OpenAI-compatible endpoint via httpx.

Works with OpenAI itself, Ollama, vLLM, LM Studio, or any server exposing
/v1/chat/completions.
"""

from __future__ import annotations

import os

from .base import BaseProvider

OPENAI_BASE_URL = "https://api.openai.com/v1"


class GenericOpenAIProvider(BaseProvider):
    """LLM provider using any OpenAI-compatible chat completions API."""

    name = "generic_openai"

    def __init__(
        self,
        base_url: str = OPENAI_BASE_URL,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        timeout: float = 120.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.api_key = api_key or os.environ.get(api_key_env, "") or "not-needed"

    def _get_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _get_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }

    def _extract_text(self, data: dict) -> str:
        choices = data.get("choices", [])
        if choices:
            return choices[0].get("message", {}).get("content", "") or ""
        return ""
