"""Domain Events related to API calls and resilience.

Published by the request executor on its own event bus; the monitor
subscribes to them per registered service.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

from nepa_integration.domain.models.api import Metrics


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    url: str
    method: str
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when an API call fails definitively (after retries)."""
    url: str
    method: str
    error: str
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when an API call is deferred due to rate limiting."""
    target: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed API call."""
    url: str
    method: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class MetricsUpdated(DomainEvent):
    """Periodic broadcast of an executor's metrics snapshot."""
    metrics: Metrics
    timestamp: float = field(default_factory=time.time)
