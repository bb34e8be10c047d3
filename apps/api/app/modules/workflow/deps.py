"""
Process-wide collaborators.

Built once at startup (main.py lifespan) and hung on app.state; routers reach
them through the FastAPI dependencies below, tests swap in fakes the same way.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core.settings import Settings
from app.core.storage import BlobStorage
from app.core.tasks import TaskSupervisor
from app.modules.generation.providers.base import GenerationClient
from app.modules.generation.providers.registry import get_provider
from app.modules.notifications.gateway import NotificationGateway, build_gateway

from .orchestrator import WorkflowOrchestrator
from .store import ArtifactStore


@dataclass
class Services:
    store: ArtifactStore
    supervisor: TaskSupervisor
    orchestrator: WorkflowOrchestrator


def build_services(
    settings: Settings,
    *,
    generator: Optional[GenerationClient] = None,
    notifier: Optional[NotificationGateway] = None,
) -> Services:
    store = ArtifactStore(settings.database_url)
    supervisor = TaskSupervisor()
    orchestrator = WorkflowOrchestrator(
        store,
        generator or get_provider(settings),
        notifier or build_gateway(settings.slack_webhook_url),
        BlobStorage(settings.storage_root),
        supervisor,
        generation_timeout=settings.generation_timeout_s,
        review_base_url=settings.public_base_url,
    )
    return Services(store=store, supervisor=supervisor, orchestrator=orchestrator)


def get_store(request: Request) -> ArtifactStore:
    return request.app.state.services.store


def get_orchestrator(request: Request) -> WorkflowOrchestrator:
    return request.app.state.services.orchestrator
