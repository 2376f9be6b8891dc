"""Application settings."""

import os
from typing import List, Optional
from pydantic import BaseModel, Field

from utils.text import join_url


DEFAULT_GATEWAY_URL = "https://bms-ai-gateway.workers.dev"


class Settings(BaseModel):
    """Application configuration settings."""

    # Gateway
    gateway_url: str = DEFAULT_GATEWAY_URL
    chat_path: str = "/v1/chat"
    stream_path: str = "/stream"

    # Timeouts (seconds)
    request_timeout: float = 45.0
    stream_timeout: float = 60.0

    # Retry policy: one retry for transient server-side failures
    max_attempts: int = 2
    retry_backoff: float = 0.35
    transient_statuses: List[int] = Field(default_factory=lambda: [502, 503, 504])

    # Conversation memory
    memory_ttl_seconds: float = 6 * 60 * 60
    memory_persist: bool = True
    memory_db_path: Optional[str] = None  # None keeps durable memory in-process

    # Downstream task creation (remote procedure)
    task_rpc_url: Optional[str] = None
    task_rpc_key: Optional[str] = None

    # Typing simulation
    typing_max_ms: int = 25_000
    fallback_typing_max_ms: int = 28_000

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load endpoints and credentials from environment if not provided
        if not data.get("gateway_url"):
            data["gateway_url"] = os.environ.get("AI_GATEWAY_URL") or DEFAULT_GATEWAY_URL

        if data.get("task_rpc_url") is None:
            data["task_rpc_url"] = os.environ.get("BMS_TASK_RPC_URL")

        if data.get("task_rpc_key") is None:
            data["task_rpc_key"] = os.environ.get("BMS_TASK_RPC_KEY")

        if data.get("memory_db_path") is None:
            data["memory_db_path"] = os.environ.get("BMS_MEMORY_DB_PATH")

        super().__init__(**data)

    def chat_url(self) -> str:
        """Full URL of the synchronous chat endpoint."""
        return join_url(self.gateway_url, self.chat_path)

    def stream_url(self) -> str:
        """Full URL of the streaming endpoint."""
        return join_url(self.gateway_url, self.stream_path)
