from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from app.modules.characters.schemas import CharacterOut, CharacterReviewOut
from app.modules.pages.schemas import StoryPageOut, StoryPageReviewOut


class PageOut(BaseModel):
    offset: int
    limit: int
    total: int
    has_more: bool


class MainCharacterIn(BaseModel):
    name: str = Field(min_length=1)
    role: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class ProjectCreateIn(BaseModel):
    title: str = Field(min_length=1)
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_phone: Optional[str] = None
    main_character: MainCharacterIn


class ProjectPatchIn(BaseModel):
    title: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_phone: Optional[str] = None
    style_reference_page_id: Optional[str] = None


class ProjectOut(BaseModel):
    id: str
    title: str
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_phone: Optional[str] = None
    review_token: str
    status: str
    character_send_count: int = 0
    illustration_send_count: int = 0
    style_reference_page_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProjectsListOut(BaseModel):
    items: List[ProjectOut]
    page: PageOut


class ProjectDetailOut(BaseModel):
    project: ProjectOut
    characters: List[CharacterOut]
    pages: List[StoryPageOut]


class ReviewOut(BaseModel):
    project_id: str
    title: str
    status: str
    phase: str
    approved: bool = False
    revision_round: int
    characters: List[CharacterReviewOut]
    pages: List[StoryPageReviewOut]
