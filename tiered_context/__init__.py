"""tiered-context: token-budgeted, tiered conversation memory for chat sessions."""

from .config import load_config
from .engine import TieredContextEngine
from .token_counter import estimate_tokens
from .types import (
    AppendResult,
    AssembledContext,
    ContextConfig,
    Message,
    Role,
    Session,
    SessionNotFound,
    SummarizationFailure,
    SummaryRecord,
    SummaryRun,
    StaleSummaryWrite,
    Tier,
    TieredContextConfig,
)

__version__ = "0.1.0"

__all__ = [
    "TieredContextEngine",
    "load_config",
    "estimate_tokens",
    "AppendResult",
    "AssembledContext",
    "ContextConfig",
    "Message",
    "Role",
    "Session",
    "SessionNotFound",
    "SummarizationFailure",
    "SummaryRecord",
    "SummaryRun",
    "StaleSummaryWrite",
    "Tier",
    "TieredContextConfig",
]
