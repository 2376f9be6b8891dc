"""Assistant response schemas."""

from enum import Enum
from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field

from .conversation import ConversationState, Lang


class Priority(str, Enum):
    """Action item priority."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ActionItem(BaseModel):
    """An actionable item extracted from a reply."""
    title: str
    steps: Optional[List[str]] = None
    priority: Optional[Priority] = None
    eta: Optional[str] = None


class AiMeta(BaseModel):
    """Typed result of one assistant exchange."""
    text: str
    actions: List[ActionItem] = Field(default_factory=list)
    next_move: Optional[str] = None
    lang: Optional[Lang] = None
    memory: Optional[ConversationState] = None


class ValidAction(BaseModel):
    """Action payload that passed validation."""
    item: ActionItem


class RejectedAction(BaseModel):
    """Action payload that was dropped, with the reason."""
    reason: str
    raw: Any = None


ActionValidation = Union[ValidAction, RejectedAction]


class ParseReport(BaseModel):
    """Parser result plus everything it had to drop."""
    meta: AiMeta
    markers_found: bool = False
    json_valid: bool = False
    rejected: List[RejectedAction] = Field(default_factory=list)
