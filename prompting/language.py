"""Language stabilizer for short or ambiguous AUTO-mode messages."""

import re
from typing import Iterable, List, Optional

from schemas.conversation import Lang
from schemas.request import ChatHistoryMsg, ChatRole
from utils.text import clean

SHORT_MESSAGE_MAX_CHARS = 26
SHORT_MESSAGE_MAX_WORDS = 3
MIN_HISTORY_CHARS = 6

_WORD_RE = re.compile(r"[a-z']+")


def is_short_ambiguous(message: str) -> bool:
    """A message is ambiguous if it is at most 26 chars or 3 words."""
    text = clean(message)
    if not text:
        return True
    words = text.split()
    return len(text) <= SHORT_MESSAGE_MAX_CHARS or len(words) <= SHORT_MESSAGE_MAX_WORDS


class LanguageHeuristic:
    """Lexical Swahili/English classifier based on function-word hits."""

    def __init__(self, markers: Iterable[str], threshold: int = 2):
        """
        Args:
            markers: Lower-case Swahili function words
            threshold: Distinct hits needed to call a text Swahili
        """
        self.markers = {m.strip().lower() for m in markers if m and m.strip()}
        self.threshold = threshold

    def score(self, text: str) -> int:
        words = set(_WORD_RE.findall(text.lower()))
        return len(words & self.markers)

    def classify(self, text: str) -> Lang:
        return Lang.SW if self.score(text) >= self.threshold else Lang.EN

    def last_user_lang(self, history: List[ChatHistoryMsg]) -> Optional[Lang]:
        """
        Classify the most recent user turn that is long enough to judge.

        Args:
            history: Chat history, most recent last

        Returns:
            Lang.SW / Lang.EN, or None if no usable user turn exists
        """
        for msg in reversed(history):
            if msg.role != ChatRole.USER:
                continue
            text = clean(msg.text)
            if len(text) < MIN_HISTORY_CHARS:
                continue
            return self.classify(text)
        return None
