from __future__ import annotations

from typing import Optional
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


# exactly one is_main=1 row per project; main is immutable except image_url
class Character(SQLModel, table=True):
    __tablename__ = "characters"
    __table_args__ = (
        Index("ux_characters_main_per_project", "project_id", unique=True, sqlite_where=text("is_main = 1")),
    )

    id: str = Field(primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    name: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    is_main: int = Field(default=0)

    # NULL | "error:<reason>" | ref
    image_url: Optional[str] = Field(default=None)
    sketch_url: Optional[str] = Field(default=None)
    customer_image_url: Optional[str] = Field(default=None)
    customer_sketch_url: Optional[str] = Field(default=None)

    feedback_notes: Optional[str] = Field(default=None)
    feedback_history_json: str = Field(default="[]")
    is_resolved: int = Field(default=0)

    created_at: str
    updated_at: str
