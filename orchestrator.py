"""Main orchestrator for the BMS business assistant client."""

import logging
from typing import Callable, Optional

from config.settings import Settings
from schemas.request import AskOpts
from schemas.responses import AiMeta

# Memory components
from memory.kv_store import BaseKeyValueStore, InMemoryKeyValueStore, SQLiteKeyValueStore
from memory.conversation_store import ConversationMemoryStore, GLOBAL_KEY

# Prompt + gateway components
from prompting.builder import PromptBuilder
from llm.output_parser import OutputParser
from llm.gateway_client import GatewayClient
from llm.streaming_client import StreamingGatewayClient
from llm.typewriter import RevealOutcome, Typewriter, TypingOptions

# Side effects
from tasks.task_sink import BaseTaskSink, NullTaskSink, RpcTaskSink
from utils.background import BackgroundScheduler
from utils.cancellation import CancellationToken
from utils.text import clean

logger = logging.getLogger(__name__)


class AssistantOrchestrator:
    """
    Owns one isolated set of assistant components.

    Each instance has its own conversation memory, so tests and multiple
    organizations in one process never share state.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        kv_store: Optional[BaseKeyValueStore] = None,
        task_sink: Optional[BaseTaskSink] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        typewriter: Optional[Typewriter] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            kv_store: Durable memory backend (default from settings)
            task_sink: Downstream task creator (default from settings)
            scheduler: Background scheduler for side effects
            typewriter: Typing engine
        """
        self.settings = settings or Settings()
        self.scheduler = scheduler or BackgroundScheduler()
        self.scheduler.add_error_listener(self._on_background_error)

        # Initialize memory
        self.kv_store = kv_store if kv_store is not None else self._init_kv_store()
        self.memory_store = ConversationMemoryStore(
            kv_store=self.kv_store,
            scheduler=self.scheduler,
            ttl_seconds=self.settings.memory_ttl_seconds
        )

        # Initialize task sink
        self.task_sink = task_sink or self._init_task_sink()

        # Initialize gateway clients
        self.typewriter = typewriter or Typewriter()
        self.prompt_builder = PromptBuilder(self.memory_store)
        self.gateway = GatewayClient(
            settings=self.settings,
            prompt_builder=self.prompt_builder,
            memory_store=self.memory_store,
            parser=OutputParser(),
            task_sink=self.task_sink,
            scheduler=self.scheduler
        )
        self.streaming = StreamingGatewayClient(
            settings=self.settings,
            gateway=self.gateway,
            typewriter=self.typewriter
        )

        logger.info(f"Assistant initialized: gateway={self.settings.gateway_url}")

    def _init_kv_store(self) -> Optional[BaseKeyValueStore]:
        """Pick the durable memory backend from settings."""
        if not self.settings.memory_persist:
            return None

        if self.settings.memory_db_path:
            try:
                return SQLiteKeyValueStore(db_path=self.settings.memory_db_path)
            except Exception as e:
                logger.error(f"Failed to open memory database, using in-process memory: {e}")

        return InMemoryKeyValueStore()

    def _init_task_sink(self) -> BaseTaskSink:
        if self.settings.task_rpc_url:
            return RpcTaskSink(
                rpc_url=self.settings.task_rpc_url,
                api_key=self.settings.task_rpc_key
            )
        return NullTaskSink()

    def _on_background_error(self, job_name: str, error: BaseException):
        if self.settings.verbose:
            logger.warning(f"Side effect '{job_name}' failed: {error}")

    def ask(self, message: str, opts: Optional[AskOpts] = None) -> str:
        """Reply text only."""
        return self.ask_with_meta(message, opts).text

    def ask_with_meta(
        self,
        message: str,
        opts: Optional[AskOpts] = None,
        cancel: Optional[CancellationToken] = None
    ) -> AiMeta:
        """
        Synchronous exchange returning the full typed result.

        Args:
            message: User message
            opts: Request options
            cancel: Optional caller cancellation

        Returns:
            AiMeta
        """
        return self.gateway.exchange(message, opts, cancel)

    def ask_streaming(
        self,
        message: str,
        opts: Optional[AskOpts],
        on_partial: Callable[[str], None],
        cancel: Optional[CancellationToken] = None
    ) -> AiMeta:
        """Streaming exchange with live partial updates (falls back transparently)."""
        return self.streaming.exchange_streaming(message, opts, on_partial, cancel)

    def ask_typing(
        self,
        message: str,
        opts: Optional[AskOpts],
        on_update: Callable[[str], None],
        typing_options: Optional[TypingOptions] = None,
        cancel: Optional[CancellationToken] = None
    ) -> AiMeta:
        """
        Synchronous exchange followed by a simulated typing reveal.

        Returns:
            AiMeta once the reveal has finished
        """
        meta = self.gateway.exchange(message, opts, cancel)
        options = typing_options or TypingOptions(max_ms=self.settings.typing_max_ms)
        outcome = self.typewriter.reveal(meta.text, on_update, options, cancel)
        if outcome == RevealOutcome.TIME_CAPPED:
            logger.info("Typing reveal hit its time ceiling")
        return meta

    def preview_prompt(self, message: str, opts: Optional[AskOpts] = None) -> str:
        """Full packed prompt for diagnostics, even when too large to send."""
        return self.prompt_builder.build(message, opts).packed

    def clear_memory(self, org_id: Optional[str] = None):
        """Start a new conversation for an org (or the global conversation)."""
        key = clean(org_id) or GLOBAL_KEY
        self.memory_store.reset(key)

    def close(self, cancel_pending: bool = False):
        """Stop background side effects."""
        self.scheduler.shutdown(cancel_pending=cancel_pending)


def create_assistant(settings: Optional[Settings] = None, **components) -> AssistantOrchestrator:
    """Factory: one independent assistant per caller."""
    return AssistantOrchestrator(settings=settings, **components)
