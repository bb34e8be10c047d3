import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.modules.notifications.gateway import NotificationGateway
from app.modules.workflow.deps import build_services

from conftest import MAIN_IMAGE, RecordingChannel, ScriptedGenerator


class ClosableGenerator(ScriptedGenerator):
    closed = False

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def client(settings):
    services = build_services(settings, generator=ScriptedGenerator(), notifier=NotificationGateway([RecordingChannel()]))
    with TestClient(create_app(settings, services)) as c:
        yield c


def _create_project(client, **kw):
    body = {"title": "The Hedgehog", "main_character": {"name": "Mia", "image_url": MAIN_IMAGE}}
    body.update(kw)
    r = client.post("/projects", json=body)
    assert r.status_code == 200, r.text
    return r.json()


def test_health_keys_are_locked(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert set(r.json()) == {"status", "version", "db", "storage", "last_error_summary"}
    assert r.json()["db"]["status"] == "ok"


def test_request_id_is_echoed(client) -> None:
    r = client.get("/health", headers={"X-Request-Id": "RID-1"})
    assert r.headers["X-Request-Id"] == "RID-1"
    assert client.get("/health").headers.get("X-Request-Id")


def test_not_found_uses_error_envelope(client) -> None:
    r = client.get("/projects/nope", headers={"X-Request-Id": "RID-2"})
    assert r.status_code == 404
    body = r.json()
    assert body["error"] == "not_found"
    assert body["request_id"] == "RID-2"
    assert body["details"] == {"project_id": "nope"}


def test_request_validation_uses_error_envelope(client) -> None:
    r = client.post("/projects", json={"title": ""})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


def test_project_detail_lists_main_character(client) -> None:
    project = _create_project(client)
    r = client.get(f"/projects/{project['id']}")
    assert r.status_code == 200
    (main,) = r.json()["characters"]
    assert main["is_main"] is True
    assert main["image_url"] == MAIN_IMAGE


def test_list_projects_pages(client) -> None:
    for i in range(3):
        _create_project(client, title=f"Book {i}")
    r = client.get("/projects", params={"limit": 2})
    body = r.json()
    assert len(body["items"]) == 2
    assert body["page"] == {"offset": 0, "limit": 2, "total": 3, "has_more": True}


def test_main_character_is_fixed(client) -> None:
    project = _create_project(client)
    main = client.get(f"/projects/{project['id']}").json()["characters"][0]
    r = client.patch(f"/characters/{main['id']}", json={"name": "Other"})
    assert r.status_code == 400
    assert client.delete(f"/characters/{main['id']}").status_code == 400


def test_generation_is_accepted_with_202(client) -> None:
    project = _create_project(client)
    client.post(f"/projects/{project['id']}/characters", json={"name": "Ann"})
    r = client.post(f"/projects/{project['id']}/generation", json={"target": "characters"})
    assert r.status_code == 202
    body = r.json()
    assert body["accepted"] is True
    assert body["status"] == "character_generation"
    assert len(body["item_ids"]) == 1


def test_generation_with_nothing_pending_is_200(client) -> None:
    project = _create_project(client)
    r = client.post(f"/projects/{project['id']}/generation")
    assert r.status_code == 200
    assert r.json() == {"accepted": False, "status": "draft", "reason": "no_pending_items", "item_ids": []}


def test_invalid_transition_is_409(client) -> None:
    project = _create_project(client)
    r = client.post(f"/projects/{project['id']}/complete")
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"


def test_customer_review_flow(client) -> None:
    project = _create_project(client)
    pid = project["id"]
    token = project["review_token"]
    main = client.get(f"/projects/{pid}").json()["characters"][0]

    assert client.post(f"/projects/{pid}/send-to-customer").json()["status"] == "character_review"

    view = client.get(f"/review/{token}").json()
    assert view["phase"] == "characters"
    assert view["revision_round"] == 1
    assert view["approved"] is False
    assert view["characters"][0]["image_url"] == MAIN_IMAGE

    r = client.patch(f"/review/{token}/characters/{main['id']}/feedback", json={"note": "rounder face"})
    assert r.status_code == 200
    assert r.json()["feedback_notes"] == "rounder face"

    assert client.post(f"/review/{token}/approve").status_code == 400
    assert client.post(f"/review/{token}/submit").json()["status"] == "character_revision_needed"

    r = client.post(f"/characters/{main['id']}/resolve", json={"mode": "manual"})
    assert r.status_code == 200
    assert r.json()["item"]["is_resolved"] is True

    assert client.post(f"/projects/{pid}/send-to-customer").json()["status"] == "character_review"
    r = client.post(f"/review/{token}/approve")
    assert r.json() == {"status": "characters_approved", "changed": True, "generation": None}
    assert client.get(f"/review/{token}").json()["approved"] is True
    # approving again is fine
    assert client.post(f"/review/{token}/approve").json()["changed"] is False


def test_unknown_token_is_404(client) -> None:
    assert client.get("/review/not-a-token").status_code == 404
    assert client.post("/review/not-a-token/submit").status_code == 404


def test_pages_bulk_create_rejects_duplicates(client) -> None:
    project = _create_project(client)
    r = client.post(f"/projects/{project['id']}/pages", json={"pages": [{"page_number": 1}, {"page_number": 1}]})
    assert r.status_code == 400
    r = client.post(f"/projects/{project['id']}/pages", json={"pages": [{"page_number": 1, "story_text": "Once"}]})
    assert r.status_code == 200
    assert r.json()[0]["story_text"] == "Once"


def test_shutdown_closes_the_generation_client(settings) -> None:
    generator = ClosableGenerator()
    services = build_services(settings, generator=generator, notifier=NotificationGateway([RecordingChannel()]))
    with TestClient(create_app(settings, services)) as c:
        assert c.get("/health").status_code == 200
        assert not generator.closed
    assert generator.closed
