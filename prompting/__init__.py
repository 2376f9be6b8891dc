"""Prompt assembly for the assistant gateway."""

from .builder import (
    PromptBuilder,
    PromptPackage,
    sanitize_context,
    sanitize_history,
    MAX_MESSAGE_CHARS,
    MAX_HISTORY_ITEMS,
    MAX_HISTORY_TEXT_CHARS,
    MAX_PACKED_CHARS_TO_SEND,
)
from .language import LanguageHeuristic, is_short_ambiguous

__all__ = [
    "PromptBuilder",
    "PromptPackage",
    "sanitize_context",
    "sanitize_history",
    "MAX_MESSAGE_CHARS",
    "MAX_HISTORY_ITEMS",
    "MAX_HISTORY_TEXT_CHARS",
    "MAX_PACKED_CHARS_TO_SEND",
    "LanguageHeuristic",
    "is_short_ambiguous",
]
