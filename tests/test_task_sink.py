"""Tests for downstream task creation."""

import requests
from unittest.mock import Mock, patch

from schemas.request import AskOpts, BusinessContext
from schemas.responses import ActionItem, Priority
from tasks.task_sink import (
    BaseTaskSink,
    NullTaskSink,
    RpcTaskSink,
    TaskRequest,
    forward_actions,
)


class TestTaskRequest:

    def test_rpc_params(self):
        task = TaskRequest(org_id="org-1", title="Restock", steps=["Order"], priority=Priority.HIGH)

        assert task.to_rpc_params() == {
            "p_org_id": "org-1",
            "p_store_id": None,
            "p_title": "Restock",
            "p_steps": ["Order"],
            "p_priority": "HIGH",
            "p_eta": None,
        }


class TestRpcTaskSink:
    """Test the HTTP remote procedure sink."""

    def setup_method(self):
        self.sink = RpcTaskSink(rpc_url="https://db.test/rest/v1/rpc/", api_key="secret")
        self.task = TaskRequest(org_id="org-1", title="Restock")

    @patch("requests.post")
    def test_posts_to_procedure(self, mock_post):
        mock_post.return_value = Mock(status_code=200)

        assert self.sink.create_task(self.task) is True

        args, kwargs = mock_post.call_args
        assert args[0] == "https://db.test/rest/v1/rpc/create_task_from_ai"
        assert kwargs["json"]["p_title"] == "Restock"
        assert kwargs["headers"]["apikey"] == "secret"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    @patch("requests.post")
    def test_error_status(self, mock_post):
        mock_post.return_value = Mock(status_code=403, text="forbidden")
        assert self.sink.create_task(self.task) is False

    @patch("requests.post")
    def test_transport_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")
        assert self.sink.create_task(self.task) is False

    def test_no_key_no_auth_headers(self):
        headers = RpcTaskSink(rpc_url="https://db.test/rpc")._get_headers()
        assert "apikey" not in headers
        assert "Authorization" not in headers


class TestForwardActions:
    """Gating and per-item forwarding."""

    def setup_method(self):
        self.sink = Mock(spec=BaseTaskSink)
        self.sink.create_task.return_value = True
        self.opts = AskOpts(
            task_autosave=True,
            context=BusinessContext(active_org_id="org-7", active_store_id=" store-1 ")
        )
        self.actions = [
            ActionItem(title="Restock", steps=["Call", "  "], eta=" "),
            ActionItem(title="Discount", priority=Priority.LOW, eta="Friday"),
        ]

    def test_forwards_each_item(self):
        assert forward_actions(self.sink, self.opts, self.actions) == 2

        first = self.sink.create_task.call_args_list[0][0][0]
        assert first.org_id == "org-7"
        assert first.store_id == "store-1"
        assert first.steps == ["Call"]
        assert first.eta is None
        second = self.sink.create_task.call_args_list[1][0][0]
        assert second.priority == Priority.LOW
        assert second.eta == "Friday"

    def test_counts_only_created(self):
        self.sink.create_task.side_effect = [True, False]
        assert forward_actions(self.sink, self.opts, self.actions) == 1

    def test_autosave_off(self):
        opts = self.opts.model_copy(update={"task_autosave": False})
        assert forward_actions(self.sink, opts, self.actions) == 0
        self.sink.create_task.assert_not_called()

    def test_no_org(self):
        assert forward_actions(self.sink, AskOpts(task_autosave=True), self.actions) == 0
        self.sink.create_task.assert_not_called()

    def test_null_sink(self):
        assert forward_actions(NullTaskSink(), self.opts, self.actions) == 0
