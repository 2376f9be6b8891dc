"""Task sinks: turn accepted action items into tasks via a remote procedure."""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import requests
from pydantic import BaseModel, Field

from schemas.request import AskOpts
from schemas.responses import ActionItem, Priority
from utils.text import clean

logger = logging.getLogger(__name__)

CREATE_TASK_PROCEDURE = "create_task_from_ai"


class TaskRequest(BaseModel):
    """One task to create for an organization."""
    org_id: str
    store_id: Optional[str] = None
    title: str
    steps: List[str] = Field(default_factory=list)
    priority: Optional[Priority] = None
    eta: Optional[str] = None

    def to_rpc_params(self) -> dict:
        """Parameter names expected by the remote procedure."""
        return {
            "p_org_id": self.org_id,
            "p_store_id": self.store_id,
            "p_title": self.title,
            "p_steps": self.steps,
            "p_priority": self.priority.value if self.priority else None,
            "p_eta": self.eta,
        }


class BaseTaskSink(ABC):
    """Abstract downstream task creator."""

    @abstractmethod
    def create_task(self, task: TaskRequest) -> bool:
        """
        Create one task.

        Returns:
            True if the task was created
        """
        pass


class NullTaskSink(BaseTaskSink):
    """Used when no task endpoint is configured."""

    def create_task(self, task: TaskRequest) -> bool:
        logger.debug(f"No task sink configured, skipping task '{task.title}'")
        return False


class RpcTaskSink(BaseTaskSink):
    """Calls a secured remote procedure over HTTP, one item at a time."""

    def __init__(
        self,
        rpc_url: str,
        api_key: Optional[str] = None,
        timeout: int = 15,
        procedure: str = CREATE_TASK_PROCEDURE
    ):
        """
        Initialize RPC task sink.

        Args:
            rpc_url: Base URL of the RPC endpoint (e.g. https://db.example.com/rest/v1/rpc)
            api_key: Key sent as `apikey` and bearer token
            timeout: Request timeout in seconds
            procedure: Remote procedure name
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.procedure = procedure

    def _get_headers(self) -> dict:
        """Build request headers."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def create_task(self, task: TaskRequest) -> bool:
        url = f"{self.rpc_url}/{self.procedure}"
        try:
            response = requests.post(
                url,
                json=task.to_rpc_params(),
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"{self.procedure} failed for '{task.title}': {e}")
            return False

        if response.status_code >= 400:
            logger.warning(
                f"{self.procedure} failed for '{task.title}': "
                f"status {response.status_code}: {response.text[:300]}"
            )
            return False

        return True


def forward_actions(sink: BaseTaskSink, opts: Optional[AskOpts], actions: List[ActionItem]) -> int:
    """
    Save accepted action items as tasks, sequentially.

    Gated by opts.task_autosave and a known org id.

    Returns:
        Number of tasks created
    """
    if opts is None or not opts.task_autosave or not actions:
        return 0

    ctx = opts.context
    org_id = (clean(ctx.org_id) or clean(ctx.active_org_id)) if ctx else ""
    if not org_id:
        return 0
    store_id = clean(ctx.active_store_id) or None

    created = 0
    for action in actions:
        title = clean(action.title)
        if not title:
            continue
        task = TaskRequest(
            org_id=org_id,
            store_id=store_id,
            title=title,
            steps=[s for s in (clean(x) for x in action.steps or []) if s],
            priority=action.priority,
            eta=clean(action.eta) or None,
        )
        if sink.create_task(task):
            created += 1

    logger.info(f"Saved {created}/{len(actions)} action(s) as tasks for org {org_id}")
    return created
