"""Tests for the synchronous gateway transport."""

import json
import pytest
import requests
from unittest.mock import Mock, patch

from config.settings import Settings
from llm.errors import (
    EmptyInputError,
    EmptyReplyError,
    GatewayNetworkError,
    GatewayResponseError,
    GatewayTimeoutError,
    InputTooLongError,
    RequestCancelledError,
)
from llm.gateway_client import GatewayClient, is_transient_exception
from llm.markers import REPLY_MARKER, ACTIONS_MARKER
from memory.conversation_store import ConversationMemoryStore
from prompting.builder import PromptBuilder
from schemas.request import AskOpts, BusinessContext, ChatHistoryMsg
from tasks.task_sink import BaseTaskSink
from utils.cancellation import CancellationToken

GATEWAY = "https://gw.test"


def make_response(status=200, body=None, text=""):
    response = Mock()
    response.status_code = status
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    response.text = text
    return response


def model_output(reply, payload):
    return f"{REPLY_MARKER}\n{reply}\n{ACTIONS_MARKER}\n{json.dumps(payload)}"


ORG_OPTS = AskOpts(context=BusinessContext(org_id="org-1", active_store_id="store-9"))


class TestTransientClassification:

    def test_requests_timeouts_and_connection_errors(self):
        assert is_transient_exception(requests.exceptions.ReadTimeout("read"))
        assert is_transient_exception(requests.exceptions.ConnectionError("refused"))

    def test_message_hints(self):
        assert is_transient_exception(RuntimeError("Failed to fetch"))
        assert not is_transient_exception(ValueError("bad payload"))


class TestGatewayClient:
    """Validation, retry policy, error mapping and reply absorption."""

    def setup_method(self):
        self.settings = Settings(gateway_url=GATEWAY)
        self.memory = ConversationMemoryStore()
        self.sink = Mock(spec=BaseTaskSink)
        self.sink.create_task.return_value = True
        self.sleeps = []
        self.client = self._client(self.settings)

    def _client(self, settings, clock=None):
        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        return GatewayClient(
            settings=settings,
            prompt_builder=PromptBuilder(self.memory),
            memory_store=self.memory,
            task_sink=self.sink,
            sleep=self.sleeps.append,
            **kwargs
        )

    @patch("requests.post")
    def test_empty_input(self, mock_post):
        with pytest.raises(EmptyInputError):
            self.client.exchange("   \n ")
        mock_post.assert_not_called()

    @patch("requests.post")
    def test_input_too_long(self, mock_post):
        with pytest.raises(InputTooLongError):
            self.client.exchange("x" * 12_001)
        mock_post.assert_not_called()

    @patch("requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = make_response(200, {
            "reply": model_output("Anza na bei.", {"lang": "sw", "actions": []})
        })

        meta = self.client.exchange("  Nisaidie kupanga bei  ")

        assert meta.text == "Anza na bei."
        assert mock_post.call_count == 1
        args, kwargs = mock_post.call_args
        assert args[0] == f"{GATEWAY}/v1/chat"
        assert kwargs["json"]["text"] == "Nisaidie kupanga bei"
        assert kwargs["json"]["mode"] == "AUTO"
        assert 0 < kwargs["timeout"] <= 45.0

    @patch("requests.post")
    def test_text_key_accepted(self, mock_post):
        mock_post.return_value = make_response(200, {"text": "plain answer"})
        assert self.client.exchange("hi").text == "plain answer"

    @patch("requests.post")
    def test_two_transient_statuses(self, mock_post):
        mock_post.return_value = make_response(503, {"error": "Service unavailable"})

        with pytest.raises(GatewayResponseError) as exc_info:
            self.client.exchange("hi")

        assert mock_post.call_count == 2
        assert self.sleeps == [0.35]
        assert exc_info.value.status == 503
        assert str(exc_info.value) == "Service unavailable [503]"

    @patch("requests.post")
    def test_transient_then_success(self, mock_post):
        mock_post.side_effect = [
            make_response(502, text="Bad gateway"),
            make_response(200, {"reply": "ok"}),
        ]

        assert self.client.exchange("hi").text == "ok"
        assert mock_post.call_count == 2

    @patch("requests.post")
    def test_terminal_status_with_request_id(self, mock_post):
        mock_post.return_value = make_response(500, {"error": "boom", "requestId": "req-1"})

        with pytest.raises(GatewayResponseError) as exc_info:
            self.client.exchange("hi")

        assert mock_post.call_count == 1
        assert self.sleeps == []
        assert str(exc_info.value) == "boom [500] (requestId: req-1)"
        assert exc_info.value.request_id == "req-1"

    @patch("requests.post")
    def test_non_json_error_body(self, mock_post):
        mock_post.return_value = make_response(400, text="upstream exploded " + "x" * 2000)

        with pytest.raises(GatewayResponseError) as exc_info:
            self.client.exchange("hi")

        message = str(exc_info.value)
        assert message.startswith("upstream exploded")
        assert message.endswith("[400]")
        assert len(message) <= 700 + len(" [400]")

    @patch("requests.post")
    def test_empty_error_body(self, mock_post):
        mock_post.return_value = make_response(404, text="")

        with pytest.raises(GatewayResponseError) as exc_info:
            self.client.exchange("hi")

        assert str(exc_info.value) == "AI request failed (404) [404]"

    @patch("requests.post")
    def test_verbose_error_includes_url(self, mock_post):
        client = self._client(Settings(gateway_url=GATEWAY, verbose=True))
        mock_post.return_value = make_response(500, {"message": "nope", "requestId": "req-2"})

        with pytest.raises(GatewayResponseError) as exc_info:
            client.exchange("hi")

        assert f"[debug] url={GATEWAY}/v1/chat" in str(exc_info.value)
        assert "[debug] requestId=req-2" in str(exc_info.value)

    @patch("requests.post")
    def test_timeout_twice(self, mock_post):
        mock_post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(GatewayTimeoutError):
            self.client.exchange("hi")
        assert mock_post.call_count == 2

    @patch("requests.post")
    def test_connection_error_twice(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(GatewayNetworkError):
            self.client.exchange("hi")
        assert mock_post.call_count == 2

    @patch("requests.post")
    def test_timeout_then_success(self, mock_post):
        mock_post.side_effect = [
            requests.exceptions.ConnectTimeout("connect timed out"),
            make_response(200, {"reply": "recovered"}),
        ]

        assert self.client.exchange("hi").text == "recovered"
        assert self.sleeps == [0.35]

    @patch("requests.post")
    def test_empty_reply_not_retried(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": "   "})

        with pytest.raises(EmptyReplyError):
            self.client.exchange("hi")
        assert mock_post.call_count == 1

    @patch("requests.post")
    def test_deadline_spans_attempts(self, mock_post):
        client = self._client(self.settings, clock=Mock(side_effect=[0.0, 0.0, 50.0]))
        mock_post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(GatewayTimeoutError):
            client.exchange("hi")

        assert mock_post.call_count == 1
        assert mock_post.call_args[1]["timeout"] == 45.0

    @patch("requests.post")
    def test_retry_gets_remaining_budget(self, mock_post):
        client = self._client(self.settings, clock=Mock(side_effect=[0.0, 0.0, 30.0]))
        mock_post.side_effect = [
            requests.exceptions.ReadTimeout("read timed out"),
            make_response(200, {"reply": "ok"}),
        ]

        assert client.exchange("hi").text == "ok"

        timeouts = [c[1]["timeout"] for c in mock_post.call_args_list]
        assert timeouts == [45.0, 15.0]

    @patch("requests.post")
    def test_cancelled_before_send(self, mock_post):
        token = CancellationToken()
        token.cancel("user pressed stop")

        with pytest.raises(RequestCancelledError):
            self.client.exchange("hi", cancel=token)
        mock_post.assert_not_called()

    @patch("requests.post")
    def test_cancelled_during_backoff(self, mock_post):
        token = CancellationToken()

        def respond(*args, **kwargs):
            token.cancel()
            return make_response(503, {"error": "busy"})

        mock_post.side_effect = respond

        with pytest.raises(RequestCancelledError):
            self.client.exchange("hi", cancel=token)
        assert mock_post.call_count == 1

    @patch("requests.post")
    def test_history_ceilings_in_payload(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": "ok"})
        history = [ChatHistoryMsg(text=f"turn {i} " + "y" * 900) for i in range(15)]

        self.client.exchange("hi", AskOpts(history=history))

        sent = mock_post.call_args[1]["json"]["history"]
        assert len(sent) == 10
        assert sent[0]["text"].startswith("turn 5 ")
        assert all(len(item["text"]) <= 800 for item in sent)

    @patch("requests.post")
    def test_memory_absorbed(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": model_output("Sawa.", {
            "lang": "sw",
            "actions": [],
            "memory": {"topic": "Bei", "strategyLevel": "PLAN"},
        })})

        self.client.exchange("Nisaidie na bei", ORG_OPTS)

        state = self.memory.get("org-1")
        assert state.topic == "Bei"
        assert state.lang.value == "sw"
        assert self.memory.get("global") is None

    @patch("requests.post")
    def test_lang_absorbed_without_memory(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": model_output("Sure.", {"lang": "en"})})

        self.client.exchange("Help me with pricing", ORG_OPTS)

        assert self.memory.get("org-1").lang.value == "en"

    @patch("requests.post")
    def test_actions_saved_when_autosave_on(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": model_output("Plan", {
            "actions": [{"title": "Count stock", "priority": "HIGH"}, {"title": "Call supplier"}],
        })})
        opts = ORG_OPTS.model_copy(update={"task_autosave": True})

        meta = self.client.exchange("plan my week", opts)

        assert len(meta.actions) == 2
        assert self.sink.create_task.call_count == 2
        task = self.sink.create_task.call_args_list[0][0][0]
        assert task.org_id == "org-1"
        assert task.store_id == "store-9"
        assert task.title == "Count stock"

    @patch("requests.post")
    def test_actions_not_saved_without_autosave(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": model_output("Plan", {
            "actions": [{"title": "Count stock"}],
        })})

        self.client.exchange("plan my week", ORG_OPTS)

        self.sink.create_task.assert_not_called()

    @patch("requests.post")
    def test_actions_not_saved_without_org(self, mock_post):
        mock_post.return_value = make_response(200, {"reply": model_output("Plan", {
            "actions": [{"title": "Count stock"}],
        })})

        self.client.exchange("plan my week", AskOpts(task_autosave=True))

        self.sink.create_task.assert_not_called()
