from __future__ import annotations

from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Page(SQLModel, table=True):
    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("project_id", "page_number", name="uq_pages_project_id_page_number"),)

    id: str = Field(primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    page_number: int
    story_text: str = Field(default="")
    scene_description: Optional[str] = Field(default=None)
    character_ids_json: str = Field(default="[]")

    illustration_url: Optional[str] = Field(default=None)
    # write-once: first successful generation, used for reset and style anchoring
    original_illustration_url: Optional[str] = Field(default=None)
    sketch_url: Optional[str] = Field(default=None)
    customer_illustration_url: Optional[str] = Field(default=None)
    customer_sketch_url: Optional[str] = Field(default=None)

    feedback_notes: Optional[str] = Field(default=None)
    feedback_history_json: str = Field(default="[]")
    is_resolved: int = Field(default=0)

    admin_reply: Optional[str] = Field(default=None)
    admin_reply_at: Optional[str] = Field(default=None)
    admin_reply_type: Optional[str] = Field(default=None)  # reply|comment
    conversation_thread_json: str = Field(default="[]")

    created_at: str
    updated_at: str
