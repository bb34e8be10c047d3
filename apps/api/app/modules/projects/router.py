from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from app.modules.workflow.deps import get_store
from app.modules.workflow.store import ArtifactStore

from .schemas import PageOut, ProjectCreateIn, ProjectDetailOut, ProjectOut, ProjectPatchIn, ProjectsListOut, ReviewOut
from .service import create_project, get_project_detail, list_projects, patch_project, review_view

router = APIRouter(tags=["projects"])


def _clamp_limit(raw: int | None) -> int:
    if raw is None:
        return 50
    try:
        v = int(raw)
    except Exception:
        return 50
    return min(max(v, 1), 200)


def _clamp_offset(raw: int | None) -> int:
    if raw is None:
        return 0
    try:
        v = int(raw)
    except Exception:
        return 0
    return max(v, 0)


@router.get("/projects", response_model=ProjectsListOut)
def api_list_projects(
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    status: str | None = Query(None),
    store: ArtifactStore = Depends(get_store),
) -> ProjectsListOut:
    lim = _clamp_limit(limit)
    off = _clamp_offset(offset)
    items, total = list_projects(store, limit=lim, offset=off, status=status)
    return ProjectsListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=(off + lim) < total))


@router.post("/projects", response_model=ProjectOut)
def api_create_project(body: ProjectCreateIn, store: ArtifactStore = Depends(get_store)) -> ProjectOut:
    return create_project(
        store,
        title=body.title,
        author_name=body.author_name,
        author_email=body.author_email,
        author_phone=body.author_phone,
        main_character=body.main_character.model_dump(),
    )


@router.get("/projects/{project_id}", response_model=ProjectDetailOut)
def api_get_project(project_id: str = Path(...), store: ArtifactStore = Depends(get_store)) -> ProjectDetailOut:
    return get_project_detail(store, project_id)


@router.patch("/projects/{project_id}", response_model=ProjectOut)
def api_patch_project(
    body: ProjectPatchIn, project_id: str = Path(...), store: ArtifactStore = Depends(get_store)
) -> ProjectOut:
    return patch_project(store, project_id, body.model_dump(exclude_unset=True))


@router.get("/review/{token}", response_model=ReviewOut)
def api_review(token: str = Path(...), store: ArtifactStore = Depends(get_store)) -> ReviewOut:
    return review_view(store, token)
