from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


# status spellings are a persisted contract, see workflow/status.py
class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(primary_key=True)
    title: str
    author_name: Optional[str] = Field(default=None)
    author_email: Optional[str] = Field(default=None)
    author_phone: Optional[str] = Field(default=None)
    review_token: str = Field(unique=True, index=True)
    status: str = Field(index=True)

    # monotonic; one increment per "sent to customer" event
    character_send_count: int = Field(default=0)
    illustration_send_count: int = Field(default=0)

    style_reference_page_id: Optional[str] = Field(default=None)

    created_at: str
    updated_at: str
