from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum


MIN_IMPORTANCE = 1.0
MAX_IMPORTANCE = 10.0


class MemoryType(str, Enum):
    """Kind of information a memory holds"""
    INTERACTION = "interaction"
    FACT = "fact"
    PREFERENCE = "preference"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemoryEntry(BaseModel):
    """A single personal fact remembered about the user"""
    id: Optional[int] = Field(None, description="Store-assigned row id")
    content: str = Field(description="Normalized summary of the disclosed information")
    timestamp: str = Field(default_factory=utc_timestamp, description="ISO-8601 creation time")
    importance_score: float = Field(default=MIN_IMPORTANCE, description="Importance on a 1-10 scale")
    memory_type: MemoryType = Field(default=MemoryType.PREFERENCE)
    is_archived: bool = Field(default=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("importance_score")
    @classmethod
    def clamp_importance(cls, value: float) -> float:
        return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, value))


class MemoryStats(BaseModel):
    """Derived memory usage figures; never persisted"""
    active_count: int = 0
    archived_count: int = 0
    total_count: int = 0
    active_token_estimate: int = 0
    context_utilization: float = 0.0
