from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.core.errors import InvalidTransition, ValidationFailed
from app.modules.generation.errors import describe_generation_error
from app.modules.workflow.artifacts import Failed, decode
from app.modules.workflow.status import CHARACTER_PHASE, ProjectStatus, normalize_status
from app.modules.workflow.store import ArtifactStore

_EDITABLE = ("name", "role", "description")


def to_out(c: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(c)
    st = decode(c.get("image_url"))
    out["generation_error"] = describe_generation_error(st.reason).message if isinstance(st, Failed) else None
    return out


def to_review(c: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": c["id"],
        "name": c.get("name"),
        "role": c.get("role"),
        "is_main": c["is_main"],
        "image_url": c.get("customer_image_url"),
        "sketch_url": c.get("customer_sketch_url"),
        "feedback_notes": c.get("feedback_notes"),
        "feedback_history": c.get("feedback_history") or [],
        "is_resolved": c["is_resolved"],
    }


def _require_character_phase(store: ArtifactStore, project_id: str) -> None:
    status = normalize_status(store.get_project(project_id)["status"])
    if status not in CHARACTER_PHASE or status == ProjectStatus.CHARACTER_GENERATION:
        raise InvalidTransition(
            f"characters cannot be edited while project is {status.value}",
            details={"status": status.value},
        )


def create_character(
    store: ArtifactStore, project_id: str, *, name: str, role: Optional[str] = None, description: Optional[str] = None
) -> Dict[str, Any]:
    _require_character_phase(store, project_id)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("name is required")
    return to_out(store.create_character(project_id, name=name, role=role, description=description))


def list_characters(store: ArtifactStore, project_id: str) -> List[Dict[str, Any]]:
    store.get_project(project_id)
    return [to_out(c) for c in store.list_characters(project_id)]


def patch_character(store: ArtifactStore, character_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    c = store.get_character(character_id)
    data = {k: v for k, v in patch.items() if v is not None}
    if not data:
        return to_out(c)
    if c["is_main"] and any(k in data for k in _EDITABLE):
        raise ValidationFailed("main character is fixed; only its image can be replaced")
    if "image_url" in data:
        ref = str(data["image_url"]).strip()
        if not ref or ref.startswith("error:"):
            raise ValidationFailed("image_url must be an artifact reference")
        data["image_url"] = ref
        data["sketch_url"] = None
    else:
        _require_character_phase(store, c["project_id"])
    return to_out(store.update_character(character_id, data))


def delete_character(store: ArtifactStore, character_id: str) -> None:
    c = store.get_character(character_id)
    _require_character_phase(store, c["project_id"])
    store.delete_character(character_id)
