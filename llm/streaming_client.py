"""Streaming (server-sent events) variant of the gateway exchange."""

import logging
import time
from typing import Callable, List, Optional

import requests

from config.settings import Settings
from schemas.request import AskOpts
from schemas.responses import AiMeta
from utils.cancellation import CancellationToken
from utils.text import clean
from .errors import GatewayTimeoutError, RequestCancelledError
from .gateway_client import GatewayClient, validate_message
from .output_parser import extract_reply
from .sse import SSEEvent, SSEParser
from .typewriter import ChunkMode, RevealOutcome, Typewriter, TypingOptions

logger = logging.getLogger(__name__)

PLACEHOLDER = "…"
NO_RESPONSE = "No response"


class StreamingGatewayClient:
    """
    Streams a reply from the gateway's SSE endpoint.

    Every failure mode (bad status, non-streaming response, `error` event,
    empty stream, any exception including the timeout ceiling) falls back
    to the synchronous exchange followed by a simulated typing reveal, so
    callers always see a live-looking reply.

    The `stream_timeout` ceiling is checked each time a chunk arrives. The
    same value is the `requests` read timeout, so a stalled stream is cut
    off after at most one more read timeout.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: GatewayClient,
        typewriter: Optional[Typewriter] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize streaming client.

        Args:
            settings: Endpoint and timeout configuration
            gateway: Synchronous client, used as the fallback path
            typewriter: Typing engine for the fallback reveal
            clock: Monotonic clock for the streaming ceiling
        """
        self.settings = settings
        self.gateway = gateway
        self.typewriter = typewriter or Typewriter()
        self.clock = clock

    def exchange_streaming(
        self,
        message: str,
        opts: Optional[AskOpts],
        on_partial: Callable[[str], None],
        cancel: Optional[CancellationToken] = None
    ) -> AiMeta:
        """
        Run one exchange, emitting the growing reply as it arrives.

        Args:
            message: User message
            opts: Request options
            on_partial: Receives the current partial reply text
            cancel: Optional caller cancellation

        Returns:
            Parsed AiMeta
        """
        text = validate_message(message)

        try:
            meta = self._stream(text, opts, on_partial, cancel)
        except RequestCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Streaming failed ({type(e).__name__}: {e}), falling back")
            meta = None

        if meta is None:
            return self._fallback_typed(text, opts, on_partial, cancel)
        return meta

    def _stream(
        self,
        text: str,
        opts: Optional[AskOpts],
        on_partial: Callable[[str], None],
        cancel: Optional[CancellationToken]
    ) -> Optional[AiMeta]:
        """Returns None whenever the caller should be served by the fallback."""
        package = self.gateway.prompt_builder.build(text, opts)
        deadline = self.clock() + self.settings.stream_timeout

        response = requests.post(
            self.settings.stream_url(),
            json=package.request.to_payload(),
            headers={
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            },
            stream=True,
            timeout=self.settings.stream_timeout
        )

        parts: List[str] = []
        try:
            if not 200 <= response.status_code < 300:
                logger.info(f"Stream endpoint returned {response.status_code}")
                return None

            content_type = response.headers.get("Content-Type", "") or ""
            if "text/event-stream" not in content_type:
                logger.info(f"Stream endpoint is not streaming (Content-Type: {content_type!r})")
                return None

            parser = SSEParser()
            on_partial(PLACEHOLDER)

            outcome = None
            for chunk in response.iter_content(chunk_size=None):
                if cancel is not None and cancel.cancelled:
                    raise RequestCancelledError(cancel.reason)
                if self.clock() > deadline:
                    raise GatewayTimeoutError("Stream exceeded its time ceiling")
                if not chunk:
                    continue

                outcome = self._consume(parser.feed(chunk), parts, on_partial)
                if outcome:
                    break
            else:
                # Connection closed without a `done` event
                outcome = self._consume(parser.flush(), parts, on_partial)

            if outcome == "error":
                return None
        finally:
            response.close()

        raw_final = clean("".join(parts))
        if not raw_final:
            logger.info("Stream ended without usable text")
            return None

        meta = self.gateway.parser.parse(raw_final)
        self.gateway.absorb(package.conversation_key, opts, meta)

        on_partial(meta.text or extract_reply(raw_final) or NO_RESPONSE)
        return meta

    def _consume(
        self,
        events: List[SSEEvent],
        parts: List[str],
        on_partial: Callable[[str], None]
    ) -> Optional[str]:
        """Apply events to the reply so far; returns "error" or "done" when the stream should stop."""
        for event in events:
            name = clean(event.event)
            if name == "error":
                logger.warning(f"Stream sent an error event: {event.data[:200]}")
                return "error"
            if name == "delta":
                parts.append(event.data)
                on_partial(extract_reply("".join(parts)) or PLACEHOLDER)
            elif name == "done":
                return "done"
        return None

    def _fallback_typed(
        self,
        text: str,
        opts: Optional[AskOpts],
        on_partial: Callable[[str], None],
        cancel: Optional[CancellationToken]
    ) -> AiMeta:
        meta = self.gateway.exchange(text, opts, cancel)

        on_partial(PLACEHOLDER)
        outcome = self.typewriter.reveal(
            meta.text,
            on_partial,
            TypingOptions(chunk=ChunkMode.WORD, max_ms=self.settings.fallback_typing_max_ms),
            cancel
        )
        if outcome != RevealOutcome.CANCELLED:
            on_partial(meta.text or NO_RESPONSE)
        return meta
