import pytest

from app.core.errors import NotFound, ValidationFailed

from conftest import seed_project


def test_create_project_seeds_main_character(store) -> None:
    project = seed_project(store, names=())
    assert project["status"] == "draft"
    assert project["character_send_count"] == 0
    assert len(project["review_token"]) >= 24
    (main,) = store.list_characters(project["id"])
    assert main["is_main"] is True
    assert main["feedback_history"] == []


def test_review_token_lookup(store) -> None:
    project = seed_project(store, names=())
    assert store.get_project_by_token(project["review_token"])["id"] == project["id"]
    with pytest.raises(NotFound):
        store.get_project_by_token("nope")


def test_second_main_character_rejected(store) -> None:
    project = seed_project(store, names=())
    with pytest.raises(ValidationFailed):
        store.create_character(project["id"], name="Other", is_main=True)


def test_main_character_cannot_be_deleted(store) -> None:
    project = seed_project(store, names=("Ann",))
    main = next(c for c in store.list_characters(project["id"]) if c["is_main"])
    with pytest.raises(ValidationFailed):
        store.delete_character(main["id"])


def test_set_status_is_compare_and_set(store) -> None:
    project = seed_project(store, names=())
    assert store.set_status(project["id"], "character_review", expected=["draft"]) is True
    assert store.set_status(project["id"], "characters_approved", expected=["draft"]) is False
    assert store.get_project(project["id"])["status"] == "character_review"


def test_send_counter_only_grows(store) -> None:
    project = seed_project(store, names=())
    assert store.increment_send_count(project["id"], "character_send_count") == 1
    assert store.increment_send_count(project["id"], "character_send_count") == 2
    with pytest.raises(ValueError):
        store.increment_send_count(project["id"], "status")


def test_json_columns_round_trip_through_patches(store) -> None:
    project = seed_project(store, names=("Ann",))
    ann = next(c for c in store.list_characters(project["id"]) if not c["is_main"])
    entry = {"note": "taller", "created_at": "t0", "revision_round": 1}
    out = store.update_character(ann["id"], {"feedback_history": [entry], "is_resolved": True})
    assert out["feedback_history"] == [entry]
    assert out["is_resolved"] is True


def test_unknown_columns_are_not_writable(store) -> None:
    project = seed_project(store, names=("Ann",))
    ann = next(c for c in store.list_characters(project["id"]) if not c["is_main"])
    with pytest.raises(ValueError):
        store.update_character(ann["id"], {"is_main": True})


def test_pages_unique_per_project_number(store) -> None:
    project = seed_project(store, names=())
    store.create_pages(project["id"], [{"page_number": 1, "story_text": "Once"}])
    with pytest.raises(ValidationFailed):
        store.create_pages(project["id"], [{"page_number": 2}, {"page_number": 1}])
    # the failed bulk insert left nothing behind
    assert [p["page_number"] for p in store.list_pages(project["id"])] == [1]


def test_original_illustration_is_write_once(store) -> None:
    project = seed_project(store, names=())
    (page,) = store.create_pages(project["id"], [{"page_number": 1}])
    first = store.record_page_illustration(page["id"], "storage://v1.png")
    assert first["original_illustration_url"] == "storage://v1.png"
    second = store.record_page_illustration(page["id"], "storage://v2.png", {"sketch_url": None})
    assert second["illustration_url"] == "storage://v2.png"
    assert second["original_illustration_url"] == "storage://v1.png"


def test_missing_records_raise_not_found(store) -> None:
    with pytest.raises(NotFound):
        store.get_project("missing")
    with pytest.raises(NotFound):
        store.update_page("missing", {"story_text": "x"})
