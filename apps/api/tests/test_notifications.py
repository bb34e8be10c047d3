import pytest

from app.modules.notifications.gateway import (
    LogChannel,
    NotificationEvent,
    NotificationGateway,
    SlackWebhookChannel,
    build_gateway,
    summarize,
)

from conftest import RecordingChannel


class BoomChannel:
    name = "boom"

    async def send(self, event, payload) -> None:
        raise ConnectionError("webhook down")


@pytest.mark.asyncio
async def test_failing_channel_is_swallowed_and_others_still_run(capsys) -> None:
    rec = RecordingChannel()
    gw = NotificationGateway([BoomChannel(), rec])

    await gw.notify(NotificationEvent.SENT_TO_CUSTOMER, {"project_id": "p1", "project_title": "Book"})

    assert len(rec.sent) == 1
    assert "notify.failed" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_log_channel_emits_event_line(capsys) -> None:
    await LogChannel().send(NotificationEvent.PROJECT_COMPLETED, {"project_id": "p1", "status": "completed"})
    out = capsys.readouterr().out
    assert "notify.project_completed" in out
    assert "status=completed" in out


def test_summary_uses_title_over_id() -> None:
    text = summarize(NotificationEvent.GENERATION_FINISHED, {"project_id": "p1", "project_title": "Book", "failed": 0})
    assert text == "[generation_finished] Book failed=0"


def test_slack_channel_only_when_configured() -> None:
    assert [c.name for c in build_gateway(None).channels] == ["log"]
    channels = build_gateway("https://hooks.example.test/x").channels
    assert isinstance(channels[-1], SlackWebhookChannel)
