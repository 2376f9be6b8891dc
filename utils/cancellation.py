"""Caller-initiated cancellation ("stop generating")."""

import threading
from typing import Optional


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a request.

    Transports check it between attempts and stream chunks; the typing
    engine checks it between tokens. Sleeping through the token wakes up
    as soon as the caller cancels.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller"):
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to `seconds`.

        Returns:
            True if the token was cancelled while sleeping
        """
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
