"""Gateway transport, streaming, output parsing and typing simulation."""

from .errors import (
    AssistantError,
    EmptyInputError,
    EmptyReplyError,
    GatewayNetworkError,
    GatewayResponseError,
    GatewayTimeoutError,
    InputTooLongError,
    RequestCancelledError,
)
from .markers import REPLY_MARKER, ACTIONS_MARKER
from .output_parser import OutputParser, extract_reply, validate_action
from .typewriter import ChunkMode, RevealOutcome, Typewriter, TypingOptions

__all__ = [
    "AssistantError",
    "EmptyInputError",
    "EmptyReplyError",
    "GatewayNetworkError",
    "GatewayResponseError",
    "GatewayTimeoutError",
    "InputTooLongError",
    "RequestCancelledError",
    "REPLY_MARKER",
    "ACTIONS_MARKER",
    "OutputParser",
    "extract_reply",
    "validate_action",
    "ChunkMode",
    "RevealOutcome",
    "Typewriter",
    "TypingOptions",
]
