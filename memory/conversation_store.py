"""Two-tier short-term memory per conversation key."""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Set

from pydantic import ValidationError

from schemas.conversation import ConversationState, Lang
from schemas.request import AskOpts
from utils.background import BackgroundScheduler
from utils.text import clean
from .kv_store import BaseKeyValueStore, memory_key

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"
DEFAULT_TTL_SECONDS = 6 * 60 * 60


def conversation_key(opts: Optional[AskOpts]) -> str:
    """
    Derive the conversation key for a request.

    Args:
        opts: Request options (may be None)

    Returns:
        The org id from the context, or "global"
    """
    ctx = opts.context if opts else None
    if ctx is None:
        return GLOBAL_KEY
    org_id = clean(ctx.org_id) or clean(ctx.active_org_id)
    return org_id or GLOBAL_KEY


class ConversationMemoryStore:
    """
    Conversation continuity state with a TTL.

    The in-process cache is authoritative. The durable store is read at
    most once per key per store lifetime (lazy hydration) and written in
    the background; durable failures are logged and otherwise ignored.
    """

    def __init__(
        self,
        kv_store: Optional[BaseKeyValueStore] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize memory store.

        Args:
            kv_store: Durable backend; None keeps memory process-local
            scheduler: Runs durable writes off the request path
            ttl_seconds: Maximum age before a state is discarded
            clock: Returns the current time in epoch seconds
        """
        self.kv_store = kv_store
        self.scheduler = scheduler or BackgroundScheduler(inline=True)
        self.ttl_seconds = ttl_seconds
        self.clock = clock

        self._cache: Dict[str, ConversationState] = {}
        self._hydrated: Set[str] = set()
        # Bumped by reset; writes queued under an older generation are dropped
        self._generations: Dict[str, int] = {}
        self._lock = threading.RLock()

    def is_expired(self, state: Optional[ConversationState]) -> bool:
        """A state is expired once now - updated_at exceeds the TTL."""
        if state is None or not state.updated_at:
            return False
        return self.clock() - state.updated_at > self.ttl_seconds

    def get(self, key: str) -> Optional[ConversationState]:
        """
        Read live state for a key, hydrating from the durable store once.

        Args:
            key: Conversation key

        Returns:
            A copy of the state, or None if absent or expired
        """
        self.hydrate(key)

        with self._lock:
            state = self._cache.get(key)
            if state is None:
                return None
            if self.is_expired(state):
                del self._cache[key]
                expired = True
            else:
                expired = False

        if expired:
            logger.info(f"Conversation memory expired for key '{key}'")
            self._persist(key, None)
            return None

        return state.model_copy()

    def hydrate(self, key: str):
        """Load durable state into the cache the first time a key is seen."""
        with self._lock:
            if key in self._hydrated:
                return
            # Marked before the read so concurrent callers never double-hydrate
            self._hydrated.add(key)
            generation = self._generations.get(key, 0)
            cached = self._cache.get(key)
            if cached is not None and not self.is_expired(cached):
                return

        if self.kv_store is None:
            return

        try:
            stored = self.kv_store.get_json(memory_key(key))
        except Exception as e:
            logger.warning(f"Memory hydration failed for key '{key}': {e}")
            return

        if not stored:
            return

        try:
            state = ConversationState.model_validate(stored)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable stored memory for key '{key}': {e}")
            self._persist(key, None)
            return

        if self.is_expired(state):
            with self._lock:
                self._cache.pop(key, None)
            self._persist(key, None)
            return

        with self._lock:
            if self._generations.get(key, 0) != generation:
                return  # reset while reading
            # A merge that landed while we were reading is newer; keep it
            self._cache.setdefault(key, state)

    def merge(
        self,
        prev: Optional[ConversationState],
        incoming: Optional[ConversationState]
    ) -> Optional[ConversationState]:
        """
        Merge incoming state over previous state.

        Non-empty incoming fields win; otherwise the previous value is kept.
        updated_at is always stamped with the current time.

        Returns:
            Merged state, or None if no meaningful field is set
        """
        a = prev or ConversationState()
        b = incoming or ConversationState()

        merged = ConversationState(
            topic=clean(b.topic) or clean(a.topic) or None,
            objective=clean(b.objective) or clean(a.objective) or None,
            last_plan=clean(b.last_plan) or clean(a.last_plan) or None,
            strategy_level=b.strategy_level or a.strategy_level,
            lang=b.lang or a.lang,
            updated_at=self.clock(),
        )

        if merged.is_empty():
            return None
        return merged

    def set(self, key: str, state: Optional[ConversationState]):
        """
        Replace the state for a key.

        The cache is updated immediately; the durable write is scheduled.
        """
        with self._lock:
            if state is None:
                self._cache.pop(key, None)
            else:
                self._cache[key] = state
        self._persist(key, state)

    def remember(
        self,
        key: str,
        memory: Optional[ConversationState] = None,
        lang: Optional[Lang] = None
    ) -> Optional[ConversationState]:
        """
        Absorb what a reply taught us about the conversation.

        Args:
            key: Conversation key
            memory: Memory delta returned by the model
            lang: Reply language, used when no memory delta was returned

        Returns:
            The new stored state (or None)
        """
        if memory is not None:
            incoming = memory
        elif lang is not None:
            incoming = ConversationState(lang=lang)
        else:
            incoming = None

        with self._lock:
            merged = self.merge(self.get(key), incoming)
            self.set(key, merged)
        return merged

    def reset(self, key: str):
        """
        Forget a conversation: cache, hydration flag and durable copy.

        Durable writes still queued for the key are discarded, so an older
        write can never restore the state after the delete.
        """
        with self._lock:
            self._cache.pop(key, None)
            self._hydrated.discard(key)
            self._generations[key] = self._generations.get(key, 0) + 1

            if self.kv_store is None:
                return
            try:
                self.kv_store.set_json(memory_key(key), None)
            except Exception as e:
                logger.warning(f"Failed to clear durable memory for key '{key}': {e}")
        logger.info(f"Conversation memory reset for key '{key}'")

    def _persist(self, key: str, state: Optional[ConversationState]):
        if self.kv_store is None:
            return
        value = state.model_dump(mode="json", by_alias=True) if state else None
        with self._lock:
            generation = self._generations.get(key, 0)
        self.scheduler.submit(
            f"persist-memory:{key}",
            self._write_durable,
            key,
            value,
            generation
        )

    def _write_durable(self, key: str, value: Optional[dict], generation: int):
        with self._lock:
            if self._generations.get(key, 0) != generation:
                logger.debug(f"Dropping stale memory write for key '{key}'")
                return
            self.kv_store.set_json(memory_key(key), value)
