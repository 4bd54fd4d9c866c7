"""Alert channel implementations.

Each channel turns an AlertRaised event into the payload its receiver
expects and POSTs it. Failures are raised to the monitor.
"""

import abc
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from nepa_integration.domain.events.monitor_events import AlertRaised
from nepa_integration.domain.interfaces.alert_channel import AlertChannel
from nepa_integration.domain.models.common import AlertChannelSpec
from nepa_integration.domain.models.errors import ConfigurationError
from nepa_integration.domain.models.monitoring import AlertSeverity

logger = logging.getLogger(__name__)

ALERT_TITLE = "NEPA Integration Alert"
CHANNEL_TIMEOUT_SECONDS = 10.0

SLACK_COLORS = {
    AlertSeverity.CRITICAL: "danger",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "good",
}
TEAMS_COLORS = {
    AlertSeverity.CRITICAL: "FF0000",
    AlertSeverity.WARNING: "FFA500",
    AlertSeverity.INFO: "00FF00",
}


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class HttpAlertChannel(AlertChannel):
    """Base for channels that POST a JSON document to a URL."""

    def __init__(self, url: str, http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = CHANNEL_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout
        self._client = http_client

    @abc.abstractmethod
    def build_payload(self, alert: AlertRaised) -> Dict[str, Any]:
        """Returns the JSON document the receiver expects."""
        pass

    async def send(self, alert: AlertRaised) -> None:
        payload = self.build_payload(alert)
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug(f"Alert '{alert.alert_type}' sent via {self.channel_type}")


class WebhookAlertChannel(HttpAlertChannel):
    """Posts ``{alert, timestamp}`` to a generic webhook receiver."""

    channel_type = "webhook"

    def build_payload(self, alert: AlertRaised) -> Dict[str, Any]:
        return {
            "alert": alert.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class SlackAlertChannel(HttpAlertChannel):
    channel_type = "slack"

    def build_payload(self, alert: AlertRaised) -> Dict[str, Any]:
        fields = [
            {"title": key, "value": str(value), "short": True}
            for key, value in alert.metadata.items()
        ]
        return {
            "text": alert.message,
            "attachments": [{
                "color": SLACK_COLORS.get(alert.severity, "warning"),
                "title": ALERT_TITLE,
                "text": alert.message,
                "fields": [
                    {"title": "Service", "value": alert.service_name, "short": True},
                    {"title": "Severity", "value": alert.severity.value, "short": True},
                    *fields,
                ],
                "ts": int(alert.timestamp),
            }],
        }


class TeamsAlertChannel(HttpAlertChannel):
    channel_type = "teams"

    def build_payload(self, alert: AlertRaised) -> Dict[str, Any]:
        facts = [{"name": "Service", "value": alert.service_name},
                 {"name": "Severity", "value": alert.severity.value},
                 {"name": "Time", "value": _iso(alert.timestamp)}]
        facts.extend({"name": key, "value": str(value)} for key, value in alert.metadata.items())
        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "themeColor": TEAMS_COLORS.get(alert.severity, "FFA500"),
            "summary": alert.message,
            "sections": [{
                "activityTitle": ALERT_TITLE,
                "activitySubtitle": alert.message,
                "facts": facts,
            }],
        }


class LogAlertChannel(AlertChannel):
    """Writes alerts to the standard logger instead of an external receiver."""

    channel_type = "log"

    def __init__(self, logger_name: str = __name__):
        self._logger = logging.getLogger(logger_name)

    async def send(self, alert: AlertRaised) -> None:
        level = logging.CRITICAL if alert.severity is AlertSeverity.CRITICAL else logging.WARNING
        self._logger.log(level, f"{ALERT_TITLE} [{alert.service_name}] {alert.message} {alert.metadata}")


def build_alert_channel(spec: AlertChannelSpec, http_client: Optional[httpx.AsyncClient] = None) -> AlertChannel:
    """Creates a channel from a configuration record.

    Args:
        spec: Mapping with 'type' plus 'url' (webhook) or 'webhook_url'
            (slack, teams).
        http_client: Optional shared client for the HTTP channels.

    Raises:
        ConfigurationError: Unknown type or missing URL.
    """
    channel_type = str(spec.get("type", "")).lower()
    if channel_type in ("log", "email"):
        return LogAlertChannel()

    channel_classes = {
        "webhook": WebhookAlertChannel,
        "slack": SlackAlertChannel,
        "teams": TeamsAlertChannel,
    }
    if channel_type not in channel_classes:
        raise ConfigurationError(f"Unknown alert channel type: {spec.get('type')!r}")

    url = spec.get("url") or spec.get("webhook_url")
    if not url:
        raise ConfigurationError(f"Alert channel '{channel_type}' requires a url")
    return channel_classes[channel_type](url, http_client=http_client)
