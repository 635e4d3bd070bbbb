from .anthropic import AnthropicProvider
from .base import BaseProvider
from .factory import build_provider
from .generic_openai import GenericOpenAIProvider
from ..types import LLMProviderError

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GenericOpenAIProvider",
    "LLMProviderError",
    "build_provider",
]
