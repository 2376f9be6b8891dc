"""Caller-facing request schemas."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class AiMode(str, Enum):
    """Language mode selected by the caller."""
    AUTO = "AUTO"
    SW = "SW"
    EN = "EN"


class ReasoningTier(str, Enum):
    """Routing preference the gateway may map to a model."""
    FAST = "FAST"
    BALANCED = "BALANCED"
    DEEP = "DEEP"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatHistoryMsg(BaseModel):
    """One prior chat turn."""
    role: ChatRole = ChatRole.USER
    text: str = ""


class BusinessContext(BaseModel):
    """Ambient business metadata for the current screen/session."""
    model_config = ConfigDict(populate_by_name=True)

    org_id: Optional[str] = Field(None, alias="orgId")
    active_org_id: Optional[str] = Field(None, alias="activeOrgId")
    active_org_name: Optional[str] = Field(None, alias="activeOrgName")
    active_store_id: Optional[str] = Field(None, alias="activeStoreId")
    active_store_name: Optional[str] = Field(None, alias="activeStoreName")
    active_role: Optional[str] = Field(None, alias="activeRole")
    currency: Optional[str] = None
    timezone: Optional[str] = None
    country: Optional[str] = None


class AskOpts(BaseModel):
    """Options for one assistant request."""
    model_config = ConfigDict(populate_by_name=True)

    mode: AiMode = AiMode.AUTO
    history: List[ChatHistoryMsg] = Field(default_factory=list)
    context: Optional[BusinessContext] = None
    task_autosave: bool = Field(False, alias="taskAutosave")
    model_hint: Optional[str] = Field(None, alias="modelHint")
    reasoning_tier: Optional[ReasoningTier] = Field(None, alias="reasoningTier")


class GatewayRequest(BaseModel):
    """JSON body sent to both gateway endpoints."""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    mode: AiMode = AiMode.AUTO
    context: Optional[BusinessContext] = None
    history: List[ChatHistoryMsg] = Field(default_factory=list)
    packed: Optional[str] = None
    model_hint: Optional[str] = Field(None, alias="modelHint")
    reasoning_tier: Optional[ReasoningTier] = Field(None, alias="reasoningTier")

    def to_payload(self) -> dict:
        """Wire form: camelCase keys, unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
