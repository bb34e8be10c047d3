from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PageCreateIn(BaseModel):
    page_number: int = Field(ge=1)
    story_text: str = ""
    scene_description: Optional[str] = None
    character_ids: List[str] = Field(default_factory=list)


class PagesBulkCreateIn(BaseModel):
    pages: List[PageCreateIn] = Field(min_length=1)


class StoryPageOut(BaseModel):
    id: str
    project_id: str
    page_number: int
    story_text: str = ""
    scene_description: Optional[str] = None
    character_ids: List[str] = Field(default_factory=list)
    illustration_url: Optional[str] = None
    original_illustration_url: Optional[str] = None
    sketch_url: Optional[str] = None
    customer_illustration_url: Optional[str] = None
    customer_sketch_url: Optional[str] = None
    generation_error: Optional[str] = None
    feedback_notes: Optional[str] = None
    feedback_history: List[Dict[str, Any]] = Field(default_factory=list)
    is_resolved: bool = False
    admin_reply: Optional[str] = None
    admin_reply_at: Optional[str] = None
    admin_reply_type: Optional[str] = None
    conversation_thread: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class StoryPageReviewOut(BaseModel):
    """Customer view: only what has been sent, plus the live conversation."""
    id: str
    page_number: int
    story_text: str = ""
    illustration_url: Optional[str] = None
    sketch_url: Optional[str] = None
    feedback_notes: Optional[str] = None
    feedback_history: List[Dict[str, Any]] = Field(default_factory=list)
    is_resolved: bool = False
    admin_reply: Optional[str] = None
    admin_reply_type: Optional[str] = None
    conversation_thread: List[Dict[str, Any]] = Field(default_factory=list)
