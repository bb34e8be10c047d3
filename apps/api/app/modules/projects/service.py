from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import ValidationFailed
from app.modules.characters import service as characters_service
from app.modules.pages import service as pages_service
from app.modules.workflow.ledger import revision_round
from app.modules.workflow.status import APPROVED, CHARACTER_PHASE, normalize_status
from app.modules.workflow.store import ArtifactStore


def _with_canonical_status(p: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(p)
    out["status"] = normalize_status(p["status"]).value
    return out


def create_project(
    store: ArtifactStore,
    *,
    title: str,
    main_character: Dict[str, Any],
    author_name: Optional[str] = None,
    author_email: Optional[str] = None,
    author_phone: Optional[str] = None,
) -> Dict[str, Any]:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("title is required")
    image_url = (main_character.get("image_url") or "").strip() or None
    if image_url and image_url.startswith("error:"):
        raise ValidationFailed("image_url must be an artifact reference")
    project = store.create_project(
        title, author_name=author_name, author_email=author_email, author_phone=author_phone
    )
    store.create_character(
        project["id"],
        name=main_character.get("name"),
        role=main_character.get("role"),
        description=main_character.get("description"),
        is_main=True,
        image_url=image_url,
    )
    return _with_canonical_status(project)


def list_projects(store: ArtifactStore, *, limit: int, offset: int, status: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
    if status:
        try:
            status = normalize_status(status).value
        except ValueError as e:
            raise ValidationFailed(str(e))
    items, total = store.list_projects(limit, offset, status)
    return [_with_canonical_status(p) for p in items], total


def get_project_detail(store: ArtifactStore, project_id: str) -> Dict[str, Any]:
    project = store.get_project(project_id)
    return {
        "project": _with_canonical_status(project),
        "characters": [characters_service.to_out(c) for c in store.list_characters(project_id)],
        "pages": [pages_service.to_out(p) for p in store.list_pages(project_id)],
    }


def patch_project(store: ArtifactStore, project_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    store.get_project(project_id)
    data = {k: v for k, v in patch.items() if v is not None}
    style_id = data.get("style_reference_page_id")
    if style_id and store.get_page(style_id)["project_id"] != project_id:
        raise ValidationFailed("style reference page belongs to another project")
    if "title" in data and not str(data["title"]).strip():
        raise ValidationFailed("title is required")
    return _with_canonical_status(store.update_project(project_id, data))


def review_view(store: ArtifactStore, token: str) -> Dict[str, Any]:
    project = store.get_project_by_token(token)
    status = normalize_status(project["status"])
    phase = "characters" if status in CHARACTER_PHASE else "pages"
    counter = "character_send_count" if phase == "characters" else "illustration_send_count"
    return {
        "project_id": project["id"],
        "title": project["title"],
        "status": status.value,
        "phase": phase,
        "approved": status in APPROVED,
        "revision_round": revision_round(project.get(counter)),
        "characters": [characters_service.to_review(c) for c in store.list_characters(project["id"])],
        "pages": [pages_service.to_review(p) for p in store.list_pages(project["id"])],
    }
