from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CharacterCreateIn(BaseModel):
    name: str = Field(min_length=1)
    role: Optional[str] = None
    description: Optional[str] = None


class CharacterPatchIn(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    description: Optional[str] = None
    # the only field writable on the main character
    image_url: Optional[str] = None


class CharacterOut(BaseModel):
    id: str
    project_id: str
    name: Optional[str] = None
    role: Optional[str] = None
    description: Optional[str] = None
    is_main: bool = False
    image_url: Optional[str] = None
    sketch_url: Optional[str] = None
    customer_image_url: Optional[str] = None
    customer_sketch_url: Optional[str] = None
    generation_error: Optional[str] = None
    feedback_notes: Optional[str] = None
    feedback_history: List[Dict[str, Any]] = Field(default_factory=list)
    is_resolved: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CharacterReviewOut(BaseModel):
    """Customer view: only what has been sent."""
    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    is_main: bool = False
    image_url: Optional[str] = None
    sketch_url: Optional[str] = None
    feedback_notes: Optional[str] = None
    feedback_history: List[Dict[str, Any]] = Field(default_factory=list)
    is_resolved: bool = False
