"""Short-term conversation memory schemas."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class StrategyLevel(str, Enum):
    """How far a conversation has moved from ideas towards doing."""
    IDEA = "IDEA"
    PLAN = "PLAN"
    EXECUTION = "EXECUTION"


class Lang(str, Enum):
    """Reply language tag."""
    SW = "sw"
    EN = "en"
    AUTO = "auto"


class ConversationState(BaseModel):
    """Continuity state for one conversation key."""
    model_config = ConfigDict(populate_by_name=True)

    topic: Optional[str] = None
    objective: Optional[str] = None
    last_plan: Optional[str] = Field(None, alias="lastPlan")
    strategy_level: Optional[StrategyLevel] = Field(None, alias="strategyLevel")
    lang: Optional[Lang] = None
    updated_at: float = Field(0.0, alias="updatedAt", description="Epoch seconds")

    def is_empty(self) -> bool:
        """True when no meaningful field is set."""
        return not (
            self.topic
            or self.objective
            or self.last_plan
            or self.strategy_level
            or self.lang
        )
