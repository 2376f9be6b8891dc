"""Tests for the typing simulation engine."""

import random
from llm.typewriter import (
    ChunkMode,
    RevealOutcome,
    Typewriter,
    TypingOptions,
    tokenize,
)
from utils.cancellation import CancellationToken


class FakeTime:
    """Clock that only moves when slept on."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def clock(self):
        return self.now


class TestTokenize:

    def test_word_mode_keeps_whitespace(self):
        assert tokenize("Hi  there\nfriend", ChunkMode.WORD) == ["Hi", "  ", "there", "\n", "friend"]

    def test_char_mode(self):
        assert tokenize("abc", ChunkMode.CHAR) == ["a", "b", "c"]

    def test_tokens_rebuild_text(self):
        text = " leading and trailing "
        assert "".join(tokenize(text, ChunkMode.WORD)) == text


class TestTypewriter:
    """Reveal pacing, ceiling and cancellation."""

    def setup_method(self):
        self.time = FakeTime()
        self.typewriter = Typewriter(
            sleep=self.time.sleep,
            clock=self.time.clock,
            rng=random.Random(7)
        )
        self.updates = []

    def test_prefixes_grow_to_final_text(self):
        outcome = self.typewriter.reveal("Habari ya leo", self.updates.append)

        assert outcome == RevealOutcome.COMPLETED
        assert self.updates[-1] == "Habari ya leo"
        for earlier, later in zip(self.updates, self.updates[1:]):
            assert later.startswith(earlier)
            assert len(later) > len(earlier)

    def test_char_mode_one_update_per_char(self):
        self.typewriter.reveal("abcd", self.updates.append, TypingOptions(chunk=ChunkMode.CHAR))
        assert self.updates == ["a", "ab", "abc", "abcd"]

    def test_empty_text(self):
        outcome = self.typewriter.reveal("", self.updates.append)

        assert outcome == RevealOutcome.COMPLETED
        assert self.updates == [""]
        assert self.time.sleeps == []

    def test_punctuation_pause(self):
        options = TypingOptions(base_ms=10, jitter_ms=0, word_pause_ms=100, chunk=ChunkMode.WORD)
        self.typewriter.reveal("Done. ok", self.updates.append, options)

        # "Done." / " " / "ok"
        assert self.time.sleeps == [0.11, 0.01, 0.01]

    def test_jitter_bounds(self):
        options = TypingOptions(base_ms=38, jitter_ms=26, chunk=ChunkMode.CHAR)
        self.typewriter.reveal("abcdefghij", self.updates.append, options)

        assert all(0.038 <= s <= 0.064 for s in self.time.sleeps)

    def test_ceiling_terminates_long_text(self):
        text = " ".join(["neno"] * 5000)
        outcome = self.typewriter.reveal(text, self.updates.append, TypingOptions(max_ms=1000))

        assert outcome == RevealOutcome.TIME_CAPPED
        assert self.updates[-1] == text
        # ceiling plus at most one token's delay
        assert self.time.now <= 1.0 + (38 + 26 + 65) / 1000.0
        assert len(self.updates) < 100

    def test_ceiling_has_a_floor(self):
        text = " ".join(["neno"] * 5000)
        self.typewriter.reveal(text, self.updates.append, TypingOptions(max_ms=10))

        assert self.time.now > 1.0
        assert self.updates[-1] == text

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()

        outcome = self.typewriter.reveal("hello world", self.updates.append, cancel=token)

        assert outcome == RevealOutcome.CANCELLED
        assert self.updates == []

    def test_cancel_during_reveal(self):
        token = CancellationToken()

        def on_update(text):
            self.updates.append(text)
            if len(self.updates) == 2:
                token.cancel()

        outcome = self.typewriter.reveal("one two three four", on_update, cancel=token)

        assert outcome == RevealOutcome.CANCELLED
        assert self.updates == ["one", "one "]
