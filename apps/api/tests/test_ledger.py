import pytest

from app.core.errors import ValidationFailed
from app.modules.workflow import ledger


def page(**kw):
    base = {
        "id": "p1",
        "feedback_notes": None,
        "feedback_history": [],
        "is_resolved": False,
        "admin_reply": None,
        "admin_reply_at": None,
        "admin_reply_type": None,
        "conversation_thread": [],
    }
    base.update(kw)
    return base


def character(**kw):
    base = {"id": "c1", "feedback_notes": None, "feedback_history": [], "is_resolved": False}
    base.update(kw)
    return base


def apply(item, patch):
    out = dict(item)
    out.update(patch)
    return out


def test_revision_round_starts_at_one() -> None:
    assert ledger.revision_round(None) == 1
    assert ledger.revision_round(0) == 1
    assert ledger.revision_round(3) == 3


def test_resolve_by_regeneration_archives_note() -> None:
    item = page(feedback_notes="fix hat color", conversation_thread=[{"author": "admin", "text": "which hat?", "at": "t0"}])
    patch = ledger.resolve_by_regeneration(item, 2, now="t1")
    assert patch["feedback_notes"] is None
    assert patch["is_resolved"] is True
    assert patch["admin_reply"] is None
    assert patch["conversation_thread"] == []
    (entry,) = patch["feedback_history"]
    assert entry["note"] == "fix hat color"
    assert entry["revision_round"] == 2
    assert entry["resolved_by"] == "regeneration"
    assert entry["conversation_thread"][0]["text"] == "which hat?"
    # input untouched
    assert item["feedback_notes"] == "fix hat color"


def test_characters_get_no_reply_fields() -> None:
    patch = ledger.resolve_by_regeneration(character(feedback_notes="taller"), 1)
    assert "admin_reply" not in patch
    assert "conversation_thread" not in patch


def test_resolve_manually_keeps_admin_reply_as_comment() -> None:
    item = page(feedback_notes="fix hat color", admin_reply="kept it red on purpose", admin_reply_at="t0", admin_reply_type="reply")
    out = apply(item, ledger.resolve_manually(item, 1, now="t1"))
    assert out["is_resolved"] is True
    assert out["feedback_notes"] is None
    assert out["admin_reply"] == "kept it red on purpose"
    assert out["admin_reply_type"] == "comment"
    assert out["feedback_history"][-1]["note"] == "fix hat color"
    assert out["feedback_history"][-1]["resolved_by"] == "admin"


def test_resolve_manually_without_reply_behaves_like_regeneration() -> None:
    item = page(feedback_notes="darker sky")
    out = apply(item, ledger.resolve_manually(item, 1))
    assert out["admin_reply"] is None
    assert out["feedback_history"][-1]["resolved_by"] == "admin"


def test_resolve_manually_requires_open_feedback() -> None:
    with pytest.raises(ValidationFailed):
        ledger.resolve_manually(page(), 1)


def test_follow_up_moves_reply_into_thread() -> None:
    item = page(feedback_notes="fix hat color", admin_reply="done, see v2", admin_reply_at="t0", admin_reply_type="reply")
    out = apply(item, ledger.append_follow_up(item, "still wrong", now="t1"))
    assert out["conversation_thread"] == [
        {"author": "admin", "text": "done, see v2", "at": "t0"},
        {"author": "customer", "text": "still wrong", "at": "t1"},
    ]
    assert out["admin_reply"] is None
    assert out["feedback_notes"] == "fix hat color"
    assert out["is_resolved"] is False


def test_follow_up_needs_a_live_reply() -> None:
    with pytest.raises(ValidationFailed):
        ledger.append_follow_up(page(feedback_notes="x"), "hello")
    comment = page(feedback_notes="x", admin_reply="fyi", admin_reply_type="comment")
    with pytest.raises(ValidationFailed):
        ledger.append_follow_up(comment, "hello")


def test_accept_reply_archives_full_thread() -> None:
    item = page(
        feedback_notes="fix hat color",
        admin_reply="v3 has a blue hat",
        admin_reply_at="t2",
        admin_reply_type="reply",
        conversation_thread=[{"author": "admin", "text": "v2", "at": "t0"}, {"author": "customer", "text": "no", "at": "t1"}],
    )
    out = apply(item, ledger.accept_reply(item, 2, now="t3"))
    assert out["is_resolved"] is True and out["feedback_notes"] is None
    entry = out["feedback_history"][-1]
    assert entry["resolved_by"] == "customer"
    assert [m["text"] for m in entry["conversation_thread"]] == ["v2", "no", "v3 has a blue hat"]
    assert out["conversation_thread"] == []


def test_replace_request_archives_old_note_first() -> None:
    item = page(feedback_notes=None, is_resolved=True, feedback_history=[{"note": "a", "created_at": "t0", "revision_round": 1}])
    out = apply(item, ledger.replace_request(item, "make it night", 2))
    assert out["feedback_notes"] == "make it night"
    assert out["is_resolved"] is False
    assert len(out["feedback_history"]) == 1

    again = apply(out, ledger.replace_request(out, "make it day", 2, now="t5"))
    assert again["feedback_notes"] == "make it day"
    assert [e["note"] for e in again["feedback_history"]] == ["a", "make it night"]
    assert again["feedback_history"][-1]["resolved_by"] == "replaced"


def test_submit_note_edits_open_note_in_place() -> None:
    item = page(feedback_notes="first")
    patch = ledger.submit_note(item, "first, and the dog", 1)
    assert patch == {"feedback_notes": "first, and the dog", "is_resolved": False}


def test_submit_note_rejects_blank() -> None:
    with pytest.raises(ValidationFailed):
        ledger.submit_note(page(), "   ", 1)


def test_resolve_on_send_skips_items_without_open_feedback() -> None:
    assert ledger.resolve_on_send(page(), 1) == {}
    patch = ledger.resolve_on_send(page(feedback_notes="x"), 1)
    assert patch["feedback_history"][-1]["resolved_by"] == "sent"


def test_history_is_append_only_across_operations() -> None:
    item = page(feedback_notes="one")
    seen = []
    steps = [
        lambda i: ledger.set_admin_reply(i, "ok"),
        lambda i: ledger.append_follow_up(i, "not quite"),
        lambda i: ledger.set_admin_reply(i, "better?"),
        lambda i: ledger.accept_reply(i, 1),
        lambda i: ledger.submit_note(i, "two", 2),
        lambda i: ledger.resolve_manually(i, 2),
        lambda i: ledger.submit_note(i, "three", 3),
        lambda i: ledger.resolve_by_override(i, 3),
    ]
    for step in steps:
        item = apply(item, step(item))
        history = item["feedback_history"]
        assert len(history) >= len(seen)
        for old, new in zip(seen, history):
            assert (old["note"], old["created_at"], old["revision_round"]) == (
                new["note"],
                new["created_at"],
                new["revision_round"],
            )
        seen = [dict(e) for e in history]
        if item["is_resolved"]:
            assert not item["feedback_notes"]
    assert [e["note"] for e in seen] == ["one", "two", "three"]
    assert [e["revision_round"] for e in seen] == [1, 2, 3]
