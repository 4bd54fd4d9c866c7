"""Domain Events published by the cross-service monitor."""

from dataclasses import dataclass, field
import time
from typing import Any, Dict

from nepa_integration.domain.events.api_events import DomainEvent
from nepa_integration.domain.models.api import Metrics
from nepa_integration.domain.models.common import Metadata
from nepa_integration.domain.models.monitoring import AlertSeverity, HealthCheck, LogEntry


@dataclass
class LogRecorded(DomainEvent):
    entry: LogEntry


@dataclass
class HealthChecked(DomainEvent):
    health_check: HealthCheck


@dataclass
class MetricsRecorded(DomainEvent):
    service_name: str
    metrics: Metrics


@dataclass
class AlertRaised(DomainEvent):
    """An alert that passed its cooldown gate and is being fanned out."""
    service_name: str
    alert_type: str  # 'high_error_rate' or 'health_issue'
    message: str
    severity: AlertSeverity
    metadata: Metadata = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceName": self.service_name,
            "alertType": self.alert_type,
            "message": self.message,
            "severity": self.severity.value,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
        }
