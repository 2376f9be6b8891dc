"""Synchronous request/response exchange with the AI gateway."""

import logging
import time
from typing import Any, Callable, Optional

import requests

from config.settings import Settings
from memory.conversation_store import ConversationMemoryStore
from prompting.builder import PromptBuilder, MAX_MESSAGE_CHARS
from schemas.request import AskOpts
from schemas.responses import AiMeta
from tasks.task_sink import BaseTaskSink, NullTaskSink, forward_actions
from utils.background import BackgroundScheduler
from utils.cancellation import CancellationToken
from utils.text import clean, safe_slice
from .errors import (
    EmptyInputError,
    EmptyReplyError,
    GatewayNetworkError,
    GatewayResponseError,
    GatewayTimeoutError,
    InputTooLongError,
    RequestCancelledError,
)
from .output_parser import OutputParser

logger = logging.getLogger(__name__)

NETWORK_ERROR_HINTS = ("network", "failed to fetch", "timeout", "timed out", "connection aborted")
MAX_ERROR_TEXT_CHARS = 700


def validate_message(message: str) -> str:
    """
    Trim and bound-check a user message before any network activity.

    Raises:
        EmptyInputError: Message is blank
        InputTooLongError: Message exceeds the character ceiling
    """
    text = clean(message)
    if not text:
        raise EmptyInputError()
    if len(text) > MAX_MESSAGE_CHARS:
        raise InputTooLongError(MAX_MESSAGE_CHARS)
    return text


def is_transient_exception(error: Exception) -> bool:
    """Timeouts, aborts and unreachable-network errors are worth one retry."""
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in NETWORK_ERROR_HINTS)


def _safe_json(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


def _safe_text(response: requests.Response) -> str:
    try:
        return response.text or ""
    except Exception:
        return ""


class GatewayClient:
    """
    Sends one assistant request to the gateway's chat endpoint.

    At most two attempts: the second only after a transient status
    (502/503/504 by default) or a timeout/network exception. On success the
    reply is parsed, memory is updated and action items are handed to the
    task sink in the background.

    Both attempts share one deadline (`request_timeout`). Each attempt gets
    the time left as its `requests` timeout, which bounds the connect and
    each socket read, not the whole transfer: a gateway that keeps
    trickling bytes can hold one attempt past the deadline. The deadline is
    checked again before the next attempt.
    """

    def __init__(
        self,
        settings: Settings,
        prompt_builder: PromptBuilder,
        memory_store: ConversationMemoryStore,
        parser: Optional[OutputParser] = None,
        task_sink: Optional[BaseTaskSink] = None,
        scheduler: Optional[BackgroundScheduler] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize gateway client.

        Args:
            settings: Endpoint, timeout and retry configuration
            prompt_builder: Builds the outbound request
            memory_store: Absorbs memory/lang from replies
            parser: Output parser (default OutputParser())
            task_sink: Receives accepted action items
            scheduler: Runs task creation off the request path
            sleep: Used for retry backoff
            clock: Monotonic clock for the timeout ceiling
        """
        self.settings = settings
        self.prompt_builder = prompt_builder
        self.memory_store = memory_store
        self.parser = parser or OutputParser()
        self.task_sink = task_sink or NullTaskSink()
        self.scheduler = scheduler or BackgroundScheduler(inline=True)
        self.sleep = sleep
        self.clock = clock

    def _get_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def exchange(
        self,
        message: str,
        opts: Optional[AskOpts] = None,
        cancel: Optional[CancellationToken] = None
    ) -> AiMeta:
        """
        Run one synchronous exchange.

        Args:
            message: User message
            opts: Request options
            cancel: Optional caller cancellation

        Returns:
            Parsed AiMeta

        Raises:
            AssistantError: Input, transport or gateway failure
        """
        text = validate_message(message)
        package = self.prompt_builder.build(text, opts)

        raw = self._post_with_retry(package.request.to_payload(), cancel)
        meta = self.parser.parse(raw)

        self.absorb(package.conversation_key, opts, meta)
        return meta

    def absorb(self, key: str, opts: Optional[AskOpts], meta: AiMeta):
        """Write reply memory back and schedule task creation."""
        self.memory_store.remember(key, memory=meta.memory, lang=meta.lang)

        if opts is not None and opts.task_autosave and meta.actions:
            self.scheduler.submit(
                "create-tasks",
                forward_actions,
                self.task_sink,
                opts,
                list(meta.actions)
            )

    def _backoff(self, cancel: Optional[CancellationToken]):
        if cancel is not None:
            if cancel.sleep(self.settings.retry_backoff):
                raise RequestCancelledError(cancel.reason)
        else:
            self.sleep(self.settings.retry_backoff)

    def _post_with_retry(self, payload: dict, cancel: Optional[CancellationToken]) -> str:
        url = self.settings.chat_url()
        deadline = self.clock() + self.settings.request_timeout
        attempts = max(1, self.settings.max_attempts)

        for attempt in range(attempts):
            if cancel is not None and cancel.cancelled:
                raise RequestCancelledError(cancel.reason)

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise GatewayTimeoutError()

            is_last = attempt == attempts - 1

            try:
                response = requests.post(
                    url,
                    json=payload,
                    headers=self._get_headers(),
                    timeout=remaining
                )
            except requests.exceptions.RequestException as e:
                if not is_last and is_transient_exception(e):
                    logger.warning(f"Gateway attempt {attempt + 1} failed ({e}), retrying")
                    self._backoff(cancel)
                    continue
                logger.error(f"Gateway request failed after {attempt + 1} attempt(s): {e}")
                raise self._transport_error(e) from e

            data = _safe_json(response)

            if not 200 <= response.status_code < 300:
                if not is_last and response.status_code in self.settings.transient_statuses:
                    logger.warning(
                        f"Gateway attempt {attempt + 1} returned {response.status_code}, retrying"
                    )
                    self._backoff(cancel)
                    continue
                raise self._response_error(response, data, url)

            raw = ""
            if isinstance(data, dict):
                raw = clean(data.get("reply")) or clean(data.get("text"))
            if not raw:
                raise EmptyReplyError()

            logger.info(f"Gateway replied on attempt {attempt + 1} ({len(raw)} chars)")
            return raw

        # Only reachable when every attempt was consumed by retries
        raise GatewayNetworkError()

    @staticmethod
    def _transport_error(error: Exception) -> Exception:
        if isinstance(error, requests.exceptions.Timeout) or "timeout" in str(error).lower():
            return GatewayTimeoutError()
        return GatewayNetworkError()

    def _response_error(
        self,
        response: requests.Response,
        data: Optional[Any],
        url: str
    ) -> GatewayResponseError:
        status = response.status_code
        body = data if isinstance(data, dict) else {}

        fallback_text = "" if data is not None else safe_slice(_safe_text(response), MAX_ERROR_TEXT_CHARS)
        error_message = (
            clean(body.get("error"))
            or clean(body.get("message"))
            or clean(body.get("details"))
            or clean(fallback_text)
            or f"AI request failed ({status})"
        )

        request_id = clean(body.get("requestId")) or clean(body.get("request_id")) or None
        if self.settings.verbose:
            extra = f"\n[debug] url={url}"
            if request_id:
                extra += f"\n[debug] requestId={request_id}"
        elif request_id:
            extra = f" (requestId: {request_id})"
        else:
            extra = ""

        logger.error(f"Gateway returned {status}: {error_message}")
        return GatewayResponseError(
            f"{error_message} [{status}]{extra}",
            status=status,
            request_id=request_id
        )
