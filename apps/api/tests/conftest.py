# apps/api/tests/conftest.py
import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set

import pytest

from app.core.db import init_db
from app.core.settings import load_settings
from app.core.storage import BlobStorage
from app.core.tasks import TaskSupervisor
from app.modules.generation.providers.base import GenerationKind, GenerationResult
from app.modules.notifications.gateway import NotificationGateway
from app.modules.projects.service import create_project
from app.modules.workflow.orchestrator import WorkflowOrchestrator
from app.modules.workflow.store import ArtifactStore

MAIN_IMAGE = "storage://seed/main.png"


@dataclass
class Call:
    kind: GenerationKind
    input_refs: List[str]
    prompt: str


@dataclass
class ScriptedGenerator:
    """Succeeds unless a marker in `fail_on` / `raise_on` appears in the prompt."""
    name: str = "scripted"
    fail_on: Set[str] = field(default_factory=set)
    raise_on: Set[str] = field(default_factory=set)
    fail_kinds: Set[GenerationKind] = field(default_factory=set)
    delay: float = 0.0
    # when set, every call waits until this many calls are in flight at once
    barrier: Optional[int] = None
    calls: List[Call] = field(default_factory=list)
    _in_flight: int = 0
    _gate: Optional[asyncio.Event] = None

    def portrait_calls(self, kind: GenerationKind = GenerationKind.CHARACTER_PORTRAIT) -> List[Call]:
        return [c for c in self.calls if c.kind == kind]

    async def generate(self, *, kind, input_refs, prompt, request_id=None) -> GenerationResult:
        self.calls.append(Call(kind, list(input_refs), prompt))
        if self.barrier:
            if self._gate is None:
                self._gate = asyncio.Event()
            self._in_flight += 1
            if self._in_flight >= self.barrier:
                self._gate.set()
            await asyncio.wait_for(self._gate.wait(), timeout=2)
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(m in prompt for m in self.raise_on):
            raise RuntimeError("provider exploded")
        if kind in self.fail_kinds or any(m in prompt for m in self.fail_on):
            return GenerationResult.failed("503 model overloaded")
        return GenerationResult.ok(f"{kind.value}:{prompt}".encode("utf-8"))


@dataclass
class RecordingChannel:
    name: str = "recording"
    sent: List[Dict[str, Any]] = field(default_factory=list)

    async def send(self, event, payload) -> None:
        self.sent.append({"event": event, "payload": dict(payload)})


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path}/app.db")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("GENERATION_PROVIDER", "mock")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    return replace(load_settings(), generation_timeout_s=2.0)


@pytest.fixture
def store(settings) -> ArtifactStore:
    init_db(settings.database_url)
    return ArtifactStore(settings.database_url)


@pytest.fixture
def supervisor() -> TaskSupervisor:
    return TaskSupervisor()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def orchestrator(store, settings, supervisor, generator, channel) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        store,
        generator,
        NotificationGateway([channel]),
        BlobStorage(settings.storage_root),
        supervisor,
        generation_timeout=settings.generation_timeout_s,
        review_base_url="http://review.test",
    )


def seed_project(store: ArtifactStore, names=("Ann", "Bob", "Cid"), main_image: Optional[str] = MAIN_IMAGE) -> Dict[str, Any]:
    project = create_project(store, title="The Hedgehog", main_character={"name": "Mia", "image_url": main_image})
    for n in names:
        store.create_character(project["id"], name=n, description=f"{n} the friend")
    return store.get_project(project["id"])


def character_by_name(store: ArtifactStore, project_id: str, name: str) -> Dict[str, Any]:
    return next(c for c in store.list_characters(project_id) if c["name"] == name)
