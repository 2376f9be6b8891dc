"""Simulated typing: paces the visible reveal of an already-known reply."""

import random
import re
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

from utils.cancellation import CancellationToken

BASE_MS = 38
JITTER_MS = 26
WORD_PAUSE_MS = 65
DEFAULT_MAX_MS = 25_000
MIN_MAX_MS = 1_000

_PUNCTUATION_END = re.compile(r"[.!?…,;:]$")


class ChunkMode(str, Enum):
    WORD = "word"
    CHAR = "char"


class TypingOptions(BaseModel):
    """Pacing knobs for a reveal."""
    base_ms: int = BASE_MS
    jitter_ms: int = JITTER_MS
    word_pause_ms: int = WORD_PAUSE_MS
    chunk: ChunkMode = ChunkMode.WORD
    max_ms: int = DEFAULT_MAX_MS


class RevealOutcome(str, Enum):
    COMPLETED = "completed"
    TIME_CAPPED = "time_capped"
    CANCELLED = "cancelled"


def tokenize(text: str, chunk: ChunkMode) -> List[str]:
    """Split text into char tokens, or word tokens with whitespace kept as its own token."""
    if chunk == ChunkMode.CHAR:
        return list(text)
    return [t for t in re.split(r"(\s+)", text) if t]


class Typewriter:
    """
    Emits growing prefixes of a final text with human-like delays.

    The wall-clock ceiling guarantees termination: once exceeded, the full
    text is emitted and the reveal stops.
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None
    ):
        self.sleep = sleep
        self.clock = clock
        self.rng = rng or random.Random()

    def _delay_ms(self, token: str, options: TypingOptions) -> int:
        delay = max(0, options.base_ms) + self.rng.randint(0, max(0, options.jitter_ms))
        if token.strip() and _PUNCTUATION_END.search(token.strip()):
            delay += max(0, options.word_pause_ms)
        return delay

    def reveal(
        self,
        final_text: str,
        on_update: Callable[[str], None],
        options: Optional[TypingOptions] = None,
        cancel: Optional[CancellationToken] = None
    ) -> RevealOutcome:
        """
        Reveal `final_text` token by token.

        Args:
            final_text: Text to reveal
            on_update: Receives the growing prefix
            options: Pacing options
            cancel: Optional caller cancellation

        Returns:
            How the reveal ended
        """
        options = options or TypingOptions()
        max_seconds = max(MIN_MAX_MS, options.max_ms) / 1000.0
        start = self.clock()

        if not final_text:
            on_update("")
            return RevealOutcome.COMPLETED

        out = ""
        for token in tokenize(final_text, options.chunk):
            if cancel is not None and cancel.cancelled:
                return RevealOutcome.CANCELLED

            out += token
            on_update(out)

            seconds = self._delay_ms(token, options) / 1000.0
            if cancel is not None:
                if cancel.sleep(seconds):
                    return RevealOutcome.CANCELLED
            else:
                self.sleep(seconds)

            if self.clock() - start > max_seconds:
                if out != final_text:
                    on_update(final_text)
                    return RevealOutcome.TIME_CAPPED
                return RevealOutcome.COMPLETED

        return RevealOutcome.COMPLETED
