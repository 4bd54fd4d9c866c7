"""Value objects for the cross-service monitor.

Log entries, health snapshots, metrics history samples, the monitor's
configuration and its summary report.
"""

import enum
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from nepa_integration.domain.models.api import Metrics
from nepa_integration.domain.models.common import Metadata


class LogLevel(str, enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


class AlertSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorDetail:
    name: str
    message: str
    stack: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDetail":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(name=type(exc).__name__, message=str(exc), stack=stack)


@dataclass(frozen=True)
class LogEntry:
    """Immutable structured log record kept by the monitor."""
    timestamp: datetime
    level: LogLevel
    service: str
    operation: str
    message: str
    metadata: Optional[Metadata] = None
    correlation_id: Optional[str] = None
    user_id: Optional[str] = None
    duration: Optional[float] = None
    status_code: Optional[int] = None
    error: Optional[ErrorDetail] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "service": self.service,
            "operation": self.operation,
            "message": self.message,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "correlationId": self.correlation_id,
            "userId": self.user_id,
            "duration": self.duration,
            "statusCode": self.status_code,
            "error": (
                {"name": self.error.name, "message": self.error.message, "stack": self.error.stack}
                if self.error else None
            ),
        }


@dataclass
class CheckResult:
    name: str
    status: CheckStatus
    message: str
    duration: float = 0.0  # Milliseconds


@dataclass
class HealthCheck:
    """Latest health snapshot of one service. Replaced on every cycle."""
    service: str
    status: HealthStatus
    timestamp: datetime
    response_time: float  # Milliseconds spent in the probe
    metrics: Metrics
    recent_errors: List[LogEntry] = field(default_factory=list)
    active_connections: int = 0
    checks: List[CheckResult] = field(default_factory=list)


@dataclass(frozen=True)
class MetricsSample:
    timestamp: datetime
    metrics: Metrics


@dataclass
class AlertConfig:
    enabled: bool = True
    cooldown_seconds: float = 300.0
    channels: List[Any] = field(default_factory=list)  # AlertChannel instances


@dataclass
class MonitoringConfig:
    log_level: LogLevel = LogLevel.INFO
    retention_days: float = 7.0
    max_log_entries: int = 10000
    alert_config: AlertConfig = field(default_factory=AlertConfig)
    health_check_interval: float = 30.0  # Seconds
    metrics_interval: float = 60.0       # Seconds
    metrics_history_size: int = 100


@dataclass
class MonitoringSummary:
    total_services: int
    healthy_services: int
    degraded_services: int
    unhealthy_services: int
    total_logs: int
    error_logs: int
    average_response_time: float
    total_requests: int
    error_rate: float
