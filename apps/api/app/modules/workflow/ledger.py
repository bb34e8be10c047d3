"""
Feedback ledger.

Pure functions over a decoded Character/Page record (a dict). Every operation
returns a patch dict for the store and leaves its input untouched.

History rules:
- feedback_history is append-only; existing entries are copied, never edited.
- revision_round is stamped once, when the entry is archived.
- is_resolved=True is only ever written together with feedback_notes=None.

Only pages carry the reply layer (admin_reply*, conversation_thread); for
characters those keys are left out of the patch.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from app.core.errors import ValidationFailed
from app.core.ids import now_iso

REPLY_KEYS = ("admin_reply", "admin_reply_at", "admin_reply_type")


def revision_round(send_count: Optional[int]) -> int:
    return max(int(send_count or 0), 1)


def has_open_feedback(item: Dict[str, Any]) -> bool:
    return bool((item.get("feedback_notes") or "").strip()) and not item.get("is_resolved")


def any_open_feedback(items: Iterable[Dict[str, Any]]) -> bool:
    return any(has_open_feedback(i) for i in items)


def _has_reply_layer(item: Dict[str, Any]) -> bool:
    return "conversation_thread" in item or "admin_reply" in item


def _clean_text(text: Optional[str], what: str) -> str:
    v = (text or "").strip()
    if not v:
        raise ValidationFailed(f"{what} is required")
    return v


def history_entry(
    note: str,
    revision_round: int,
    *,
    conversation_thread: Optional[List[Dict[str, Any]]] = None,
    resolved_by: Optional[str] = None,
    admin_comment: Optional[str] = None,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "note": note,
        "created_at": now or now_iso(),
        "revision_round": int(revision_round),
    }
    if conversation_thread:
        entry["conversation_thread"] = [dict(m) for m in conversation_thread]
    if resolved_by:
        entry["resolved_by"] = resolved_by
    if admin_comment:
        entry["admin_comment"] = admin_comment
    return entry


def _with_entry(item: Dict[str, Any], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    history = item.get("feedback_history") or []
    return [dict(e) for e in history] + [entry]


def _thread(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [dict(m) for m in (item.get("conversation_thread") or [])]


def _cleared_reply() -> Dict[str, Any]:
    return {"admin_reply": None, "admin_reply_at": None, "admin_reply_type": None, "conversation_thread": []}


def _archive_open_note(item: Dict[str, Any], revision_round: int, resolved_by: str, now: Optional[str]) -> Dict[str, Any]:
    patch: Dict[str, Any] = {"feedback_notes": None, "is_resolved": True}
    note = (item.get("feedback_notes") or "").strip()
    if note:
        patch["feedback_history"] = _with_entry(
            item,
            history_entry(
                note,
                revision_round,
                conversation_thread=_thread(item),
                resolved_by=resolved_by,
                now=now,
            ),
        )
    if _has_reply_layer(item):
        patch.update(_cleared_reply())
    return patch


def resolve_by_regeneration(item: Dict[str, Any], revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """Admin answered the feedback with a new artifact."""
    return _archive_open_note(item, revision_round, "regeneration", now)


def resolve_by_override(item: Dict[str, Any], revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """Admin approved the phase over open feedback."""
    return _archive_open_note(item, revision_round, "override", now)


def resolve_on_send(item: Dict[str, Any], revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """Admin sent a new round to the customer; open notes belong to the round just closed."""
    if not has_open_feedback(item):
        return {}
    return _archive_open_note(item, revision_round, "sent", now)


def resolve_manually(item: Dict[str, Any], revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """
    Admin marks the feedback handled without regenerating.

    An existing admin reply stays on the record as a visible comment instead of
    being archived, so the resolved item still shows what the admin said.
    """
    if not has_open_feedback(item):
        raise ValidationFailed("no open feedback to resolve")

    reply = (item.get("admin_reply") or "").strip()
    if not reply:
        return _archive_open_note(item, revision_round, "admin", now)

    patch: Dict[str, Any] = {
        "feedback_notes": None,
        "is_resolved": True,
        "feedback_history": _with_entry(
            item,
            history_entry(
                item["feedback_notes"].strip(),
                revision_round,
                conversation_thread=_thread(item),
                resolved_by="admin",
                now=now,
            ),
        ),
        "admin_reply": reply,
        "admin_reply_at": item.get("admin_reply_at") or (now or now_iso()),
        "admin_reply_type": "comment",
        "conversation_thread": [],
    }
    return patch


def set_admin_reply(item: Dict[str, Any], text: str, now: Optional[str] = None) -> Dict[str, Any]:
    reply = _clean_text(text, "reply text")
    if not has_open_feedback(item):
        raise ValidationFailed("no open feedback to reply to")
    return {"admin_reply": reply, "admin_reply_at": now or now_iso(), "admin_reply_type": "reply"}


def append_follow_up(item: Dict[str, Any], text: str, now: Optional[str] = None) -> Dict[str, Any]:
    """
    Customer answers an admin reply. The original request stays verbatim in
    feedback_notes; the exchange goes to conversation_thread and the admin owes
    a new reply.
    """
    follow_up = _clean_text(text, "follow-up text")
    reply = (item.get("admin_reply") or "").strip()
    if not reply or item.get("admin_reply_type") == "comment":
        raise ValidationFailed("no admin reply to follow up on")
    if not has_open_feedback(item):
        raise ValidationFailed("no open feedback to follow up on")

    ts = now or now_iso()
    thread = _thread(item)
    thread.append({"author": "admin", "text": reply, "at": item.get("admin_reply_at") or ts})
    thread.append({"author": "customer", "text": follow_up, "at": ts})
    return {
        "conversation_thread": thread,
        "admin_reply": None,
        "admin_reply_at": None,
        "admin_reply_type": None,
    }


def accept_reply(item: Dict[str, Any], revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """Customer accepts the admin reply as the answer: resolve with the full thread archived."""
    reply = (item.get("admin_reply") or "").strip()
    if not reply or item.get("admin_reply_type") == "comment":
        raise ValidationFailed("no admin reply to accept")
    if not has_open_feedback(item):
        raise ValidationFailed("no open feedback to resolve")

    ts = now or now_iso()
    thread = _thread(item)
    thread.append({"author": "admin", "text": reply, "at": item.get("admin_reply_at") or ts})
    patch: Dict[str, Any] = {
        "feedback_notes": None,
        "is_resolved": True,
        "feedback_history": _with_entry(
            item,
            history_entry(
                item["feedback_notes"].strip(),
                revision_round,
                conversation_thread=thread,
                resolved_by="customer",
                now=ts,
            ),
        ),
    }
    patch.update(_cleared_reply())
    return patch


def replace_request(item: Dict[str, Any], text: str, revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    """
    Customer replaces feedback outright (not a follow-up). Any previous note is
    archived first; the new note becomes the live, unresolved request.
    """
    note = _clean_text(text, "feedback note")
    patch: Dict[str, Any] = {"feedback_notes": note, "is_resolved": False}

    old = (item.get("feedback_notes") or "").strip()
    if old:
        comment = item.get("admin_reply") if item.get("admin_reply_type") == "comment" else None
        patch["feedback_history"] = _with_entry(
            item,
            history_entry(
                old,
                revision_round,
                conversation_thread=_thread(item),
                resolved_by="replaced",
                admin_comment=comment,
                now=now,
            ),
        )
    if _has_reply_layer(item):
        patch.update(_cleared_reply())
    return patch


def submit_note(item: Dict[str, Any], text: str, revision_round: int, now: Optional[str] = None) -> Dict[str, Any]:
    if item.get("is_resolved"):
        return replace_request(item, text, revision_round, now=now)
    # still open: the customer is editing the live request in place
    return {"feedback_notes": _clean_text(text, "feedback note"), "is_resolved": False}
