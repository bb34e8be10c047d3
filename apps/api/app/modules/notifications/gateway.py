"""
Notification Gateway.

Fire-and-forget fan-out to chat/log channels. `notify` never raises: every
channel failure is caught and logged, and workflow progress never waits on it.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from app.core.logging import emit


class NotificationEvent(str, Enum):
    SENT_TO_CUSTOMER = "sent_to_customer"
    CUSTOMER_SUBMITTED = "customer_submitted"
    CUSTOMER_FOLLOW_UP = "customer_follow_up"
    GENERATION_FINISHED = "generation_finished"
    PROJECT_APPROVED = "project_approved"
    PROJECT_COMPLETED = "project_completed"


class NotificationChannel(Protocol):
    name: str

    async def send(self, event: NotificationEvent, payload: Dict[str, Any]) -> None:
        ...


def summarize(event: NotificationEvent, payload: Dict[str, Any]) -> str:
    title = payload.get("project_title") or payload.get("project_id") or "project"
    parts = [f"[{event.value}] {title}"]
    for key in ("status", "phase", "succeeded", "failed", "review_url"):
        if payload.get(key) is not None:
            parts.append(f"{key}={payload[key]}")
    return " ".join(parts)


class LogChannel:
    name = "log"

    async def send(self, event: NotificationEvent, payload: Dict[str, Any]) -> None:
        emit("info", f"notify.{event.value}", summarize(event, payload), payload.get("request_id"), __name__)


class SlackWebhookChannel:
    name = "slack"

    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def send(self, event: NotificationEvent, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.webhook_url, json={"text": summarize(event, payload)})
            resp.raise_for_status()


class NotificationGateway:
    def __init__(self, channels: Optional[Sequence[NotificationChannel]] = None) -> None:
        self.channels: List[NotificationChannel] = list(channels or [])

    async def notify(self, event: NotificationEvent, payload: Dict[str, Any]) -> None:
        for ch in self.channels:
            try:
                await ch.send(event, payload)
            except Exception as e:
                emit(
                    "warning",
                    "notify.failed",
                    f"{ch.name}: {e}",
                    payload.get("request_id"),
                    __name__,
                    notify_event=event.value,
                    type=type(e).__name__,
                )


def build_gateway(slack_webhook_url: Optional[str]) -> NotificationGateway:
    channels: List[NotificationChannel] = [LogChannel()]
    if slack_webhook_url:
        channels.append(SlackWebhookChannel(slack_webhook_url))
    return NotificationGateway(channels)
