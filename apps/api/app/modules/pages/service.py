from __future__ import annotations

from typing import Any, Dict, List

from app.core.errors import ValidationFailed
from app.modules.generation.errors import describe_generation_error
from app.modules.workflow.artifacts import Failed, decode
from app.modules.workflow.store import ArtifactStore


def to_out(p: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(p)
    st = decode(p.get("illustration_url"))
    out["generation_error"] = describe_generation_error(st.reason).message if isinstance(st, Failed) else None
    return out


def to_review(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": p["id"],
        "page_number": p["page_number"],
        "story_text": p.get("story_text") or "",
        "illustration_url": p.get("customer_illustration_url"),
        "sketch_url": p.get("customer_sketch_url"),
        "feedback_notes": p.get("feedback_notes"),
        "feedback_history": p.get("feedback_history") or [],
        "is_resolved": p["is_resolved"],
        "admin_reply": p.get("admin_reply"),
        "admin_reply_type": p.get("admin_reply_type"),
        "conversation_thread": p.get("conversation_thread") or [],
    }


def create_pages(store: ArtifactStore, project_id: str, pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    numbers = [int(p["page_number"]) for p in pages]
    if len(set(numbers)) != len(numbers):
        raise ValidationFailed("page_number values must be unique", details={"page_numbers": numbers})
    known = {c["id"] for c in store.list_characters(project_id)}
    for p in pages:
        unknown = [cid for cid in p.get("character_ids") or [] if cid not in known]
        if unknown:
            raise ValidationFailed("unknown character ids", details={"page_number": p["page_number"], "character_ids": unknown})
    return [to_out(p) for p in store.create_pages(project_id, pages)]


def list_pages(store: ArtifactStore, project_id: str) -> List[Dict[str, Any]]:
    store.get_project(project_id)
    return [to_out(p) for p in store.list_pages(project_id)]


def get_page(store: ArtifactStore, page_id: str) -> Dict[str, Any]:
    return to_out(store.get_page(page_id))
