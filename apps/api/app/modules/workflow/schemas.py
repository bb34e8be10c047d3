from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

TargetName = Literal["characters", "pages"]


class GenerationIn(BaseModel):
    target: TargetName = "characters"
    item_id: Optional[str] = None


class RetryIn(BaseModel):
    target: TargetName = "characters"


class DispatchTicketOut(BaseModel):
    accepted: bool
    status: str
    reason: Optional[str] = None
    item_ids: List[str] = Field(default_factory=list)


class TransitionOut(BaseModel):
    status: str
    changed: bool
    generation: Optional[DispatchTicketOut] = None


class ApproveIn(BaseModel):
    phase: Optional[TargetName] = None


class FeedbackIn(BaseModel):
    note: str = Field(min_length=1)


class ReplyIn(BaseModel):
    text: str = Field(min_length=1)


class ResolveIn(BaseModel):
    mode: Literal["manual", "regenerate"] = "manual"


class ResolveOut(BaseModel):
    item: Dict[str, Any]
    generation: Optional[DispatchTicketOut] = None
