"""Schemas for the assistant client."""

from .conversation import ConversationState, Lang, StrategyLevel
from .request import (
    AiMode,
    AskOpts,
    BusinessContext,
    ChatHistoryMsg,
    ChatRole,
    GatewayRequest,
    ReasoningTier,
)
from .responses import (
    ActionItem,
    ActionValidation,
    AiMeta,
    ParseReport,
    Priority,
    RejectedAction,
    ValidAction,
)

__all__ = [
    "ConversationState",
    "Lang",
    "StrategyLevel",
    "AiMode",
    "AskOpts",
    "BusinessContext",
    "ChatHistoryMsg",
    "ChatRole",
    "GatewayRequest",
    "ReasoningTier",
    "ActionItem",
    "ActionValidation",
    "AiMeta",
    "ParseReport",
    "Priority",
    "RejectedAction",
    "ValidAction",
]
