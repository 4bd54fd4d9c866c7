import json

import httpx
import pytest

from nepa_integration.domain.events.monitor_events import AlertRaised
from nepa_integration.domain.models.errors import ConfigurationError
from nepa_integration.domain.models.monitoring import AlertSeverity
from nepa_integration.infrastructure.alerts.channels import (
    ALERT_TITLE, HttpAlertChannel, LogAlertChannel, SlackAlertChannel, TeamsAlertChannel, WebhookAlertChannel,
    build_alert_channel,
)


@pytest.fixture
def alert():
    return AlertRaised(
        service_name="banking",
        alert_type="health_issue",
        message="Health issue detected in banking: unhealthy",
        severity=AlertSeverity.CRITICAL,
        metadata={"status": "unhealthy"},
        timestamp=1_700_000_000.0,
    )


def test_slack_payload(alert):
    payload = SlackAlertChannel("https://hooks.slack.test").build_payload(alert)
    attachment = payload["attachments"][0]

    assert attachment["color"] == "danger"
    assert attachment["title"] == ALERT_TITLE
    assert {"title": "status", "value": "unhealthy", "short": True} in attachment["fields"]


def test_teams_payload(alert):
    payload = TeamsAlertChannel("https://teams.test").build_payload(alert)

    assert payload["@type"] == "MessageCard"
    assert payload["themeColor"] == "FF0000"
    assert {"name": "status", "value": "unhealthy"} in payload["sections"][0]["facts"]


@pytest.mark.asyncio
async def test_webhook_channel_posts_alert(alert, mock_http):
    client = mock_http(lambda request: httpx.Response(200))
    channel = WebhookAlertChannel("https://alerts.test/hook", http_client=client)

    await channel.send(alert)

    body = json.loads(client.requests[0].content)
    assert body["alert"]["serviceName"] == "banking"
    assert body["alert"]["severity"] == "critical"
    assert "timestamp" in body
    await client.aclose()


@pytest.mark.asyncio
async def test_channel_raises_on_rejected_delivery(alert, mock_http):
    client = mock_http(lambda request: httpx.Response(500))
    channel = SlackAlertChannel("https://hooks.slack.test", http_client=client)

    with pytest.raises(httpx.HTTPStatusError):
        await channel.send(alert)
    await client.aclose()


@pytest.mark.asyncio
async def test_log_channel_writes_to_logger(alert, caplog):
    channel = LogAlertChannel(logger_name="nepa.alerts.test")

    with caplog.at_level("WARNING", logger="nepa.alerts.test"):
        await channel.send(alert)

    assert "Health issue detected in banking" in caplog.text


def test_build_alert_channel():
    assert isinstance(build_alert_channel({"type": "slack", "webhook_url": "https://s.test"}), SlackAlertChannel)
    assert isinstance(build_alert_channel({"type": "teams", "webhook_url": "https://t.test"}), TeamsAlertChannel)
    assert isinstance(build_alert_channel({"type": "webhook", "url": "https://w.test"}), WebhookAlertChannel)
    assert isinstance(build_alert_channel({"type": "email"}), LogAlertChannel)

    with pytest.raises(ConfigurationError):
        build_alert_channel({"type": "pager"})
    with pytest.raises(ConfigurationError):
        build_alert_channel({"type": "slack"})


def test_http_channel_requires_a_payload_builder():
    with pytest.raises(TypeError):
        HttpAlertChannel("https://hooks.test/alerts")
