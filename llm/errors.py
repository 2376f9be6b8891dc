"""Errors surfaced to callers of the assistant client."""

from typing import Optional


class AssistantError(Exception):
    """Base class; the message is always safe to show to a user."""


class EmptyInputError(AssistantError):
    """The user message was blank."""

    def __init__(self):
        super().__init__("Empty message")


class InputTooLongError(AssistantError):
    """The user message exceeded the character ceiling."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Message too long (limit {limit:,} chars)")


class GatewayTimeoutError(AssistantError):
    """The gateway did not answer before the timeout ceiling."""

    def __init__(self, message: str = "AI timeout - please try again (network or server is slow)."):
        super().__init__(message)


class GatewayNetworkError(AssistantError):
    """The gateway could not be reached."""

    def __init__(self, message: str = "Network error - could not reach the AI service."):
        super().__init__(message)


class GatewayResponseError(AssistantError):
    """The gateway answered with a non-success status."""

    def __init__(self, message: str, status: int, request_id: Optional[str] = None):
        self.status = status
        self.request_id = request_id
        super().__init__(message)


class EmptyReplyError(AssistantError):
    """The gateway answered successfully but without a usable reply."""

    def __init__(self):
        super().__init__("AI returned empty reply")


class RequestCancelledError(AssistantError):
    """The caller cancelled the request."""

    def __init__(self, reason: str = "cancelled by caller"):
        super().__init__(f"Request cancelled ({reason})")
