from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path

from app.modules.workflow.deps import get_store
from app.modules.workflow.store import ArtifactStore

from .schemas import PagesBulkCreateIn, StoryPageOut
from .service import create_pages, get_page, list_pages

router = APIRouter(tags=["pages"])


@router.post("/projects/{project_id}/pages", response_model=List[StoryPageOut])
def api_create_pages(
    body: PagesBulkCreateIn, project_id: str = Path(...), store: ArtifactStore = Depends(get_store)
) -> List[StoryPageOut]:
    return create_pages(store, project_id, [p.model_dump() for p in body.pages])


@router.get("/projects/{project_id}/pages", response_model=List[StoryPageOut])
def api_list_pages(project_id: str = Path(...), store: ArtifactStore = Depends(get_store)) -> List[StoryPageOut]:
    return list_pages(store, project_id)


@router.get("/pages/{page_id}", response_model=StoryPageOut)
def api_get_page(page_id: str = Path(...), store: ArtifactStore = Depends(get_store)) -> StoryPageOut:
    return get_page(store, page_id)
