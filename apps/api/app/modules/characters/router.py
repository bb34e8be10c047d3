from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Response

from app.modules.workflow.deps import get_store
from app.modules.workflow.store import ArtifactStore

from .schemas import CharacterCreateIn, CharacterOut, CharacterPatchIn
from .service import create_character, delete_character, list_characters, patch_character

router = APIRouter(tags=["characters"])


@router.get("/projects/{project_id}/characters", response_model=List[CharacterOut])
def api_list_characters(project_id: str = Path(...), store: ArtifactStore = Depends(get_store)) -> List[CharacterOut]:
    return list_characters(store, project_id)


@router.post("/projects/{project_id}/characters", response_model=CharacterOut)
def api_create_character(
    body: CharacterCreateIn, project_id: str = Path(...), store: ArtifactStore = Depends(get_store)
) -> CharacterOut:
    return create_character(store, project_id, name=body.name, role=body.role, description=body.description)


@router.patch("/characters/{character_id}", response_model=CharacterOut)
def api_patch_character(
    body: CharacterPatchIn, character_id: str = Path(...), store: ArtifactStore = Depends(get_store)
) -> CharacterOut:
    return patch_character(store, character_id, body.model_dump(exclude_unset=True))


@router.delete("/characters/{character_id}", status_code=204)
def api_delete_character(character_id: str = Path(...), store: ArtifactStore = Depends(get_store)) -> Response:
    delete_character(store, character_id)
    return Response(status_code=204)
