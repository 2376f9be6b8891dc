"""Background scheduler for fire-and-forget side effects."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

ErrorListener = Callable[[str, BaseException], None]


class BackgroundScheduler:
    """
    Runs side effects (durable memory writes, task creation) off the
    request path.

    A single worker keeps jobs in submission order, so a later memory
    write can never be overtaken by an earlier one. Job failures never
    reach the submitter; they go to the log and to any registered error
    listeners instead.
    """

    def __init__(self, max_workers: int = 1, inline: bool = False):
        """
        Initialize scheduler.

        Args:
            max_workers: Worker thread count
            inline: Run jobs synchronously on the submitting thread (tests, CLI)
        """
        self.inline = inline
        self._executor: Optional[ThreadPoolExecutor] = None
        if not inline:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="bms-background"
            )
        self._listeners: List[ErrorListener] = []
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self._closed = False

    def add_error_listener(self, listener: ErrorListener):
        """Register a callback invoked with (job_name, exception) on failure."""
        self._listeners.append(listener)

    def submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> Optional[Future]:
        """
        Schedule a job.

        Args:
            name: Job label used in logs and error notifications
            fn: Callable to run

        Returns:
            Future for the job, or None when run inline or after shutdown
        """
        if self._closed:
            logger.warning(f"Scheduler closed, dropping job '{name}'")
            return None

        if self.inline:
            self._run(name, fn, args, kwargs)
            return None

        future = self._executor.submit(self._run, name, fn, args, kwargs)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _run(self, name: str, fn: Callable[..., Any], args: tuple, kwargs: dict):
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Background job '{name}' failed: {e}")
            for listener in self._listeners:
                try:
                    listener(name, e)
                except Exception as listener_error:
                    logger.error(f"Error listener failed for job '{name}': {listener_error}")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every job submitted so far.

        Returns:
            True if all jobs finished within the timeout
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, cancel_pending: bool = False):
        """Stop accepting jobs; optionally cancel the ones not yet started."""
        self._closed = True
        if self._executor:
            self._executor.shutdown(wait=not cancel_pending, cancel_futures=cancel_pending)
