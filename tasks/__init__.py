"""Downstream task creation from accepted action items."""

from .task_sink import (
    BaseTaskSink,
    NullTaskSink,
    RpcTaskSink,
    TaskRequest,
    forward_actions,
)

__all__ = [
    "BaseTaskSink",
    "NullTaskSink",
    "RpcTaskSink",
    "TaskRequest",
    "forward_actions",
]
