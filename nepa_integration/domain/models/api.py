"""Value objects for the request executor.

Covers the call description handed to the executor, the result envelope it
returns, its running metrics and the configuration records it is built from.
"""

import enum
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from nepa_integration.domain.models.common import AuthCredentials
from nepa_integration.domain.models.errors import ValidationError

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})
READ_METHODS = frozenset({"GET"})


@dataclass
class CallConfig:
    """One outbound call: verb, path relative to the base URL, params and body."""
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    body: Optional[Any] = None
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[float] = None  # Seconds, overrides ApiConfig.timeout

    def __post_init__(self) -> None:
        if not isinstance(self.method, str) or self.method.upper() not in SUPPORTED_METHODS:
            raise ValidationError(f"Unsupported HTTP method: {self.method!r}")
        self.method = self.method.upper()
        if not self.path:
            raise ValidationError("Call path must not be empty")

    @property
    def is_read(self) -> bool:
        return self.method in READ_METHODS


@dataclass
class ApiResult:
    """Result envelope returned by every executor call. Never an exception."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    response_time: float = 0.0  # Milliseconds
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Metrics:
    """Running counters maintained by one executor."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0  # Milliseconds
    rate_limit_hits: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    @property
    def error_rate(self) -> float:
        """Failed over total requests; 0.0 before the first request."""
        if self.total_requests == 0:
            return 0.0
        return self.failed_requests / self.total_requests

    def snapshot(self) -> "Metrics":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_error_time"] = self.last_error_time.isoformat() if self.last_error_time else None
        return data


# --- Configuration records ---

class AuthType(str, enum.Enum):
    OAUTH = "oauth"
    API_KEY = "apikey"
    BEARER = "bearer"


class CacheStrategy(str, enum.Enum):
    LRU = "lru"
    FIFO = "fifo"
    LFU = "lfu"


@dataclass
class AuthConfig:
    type: AuthType
    credentials: AuthCredentials = field(default_factory=dict)


@dataclass
class ApiConfig:
    """Connection settings for one upstream service."""
    base_url: str
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_delay: float = 1.0  # Seconds; doubled on every further attempt
    auth: Optional[AuthConfig] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class RateLimitConfig:
    window_seconds: float = 60.0
    max_requests: int = 100


@dataclass
class CacheConfig:
    enabled: bool = True
    ttl_seconds: float = 300.0
    max_size: int = 1000
    strategy: CacheStrategy = CacheStrategy.LRU


@dataclass
class WebhookRetryPolicy:
    """Declared per subscription. The dispatcher does not act on it."""
    max_retries: int = 3
    backoff_seconds: float = 1.0


@dataclass
class WebhookSubscription:
    url: str
    secret: str
    events: FrozenSet[str] = frozenset()
    retry_policy: WebhookRetryPolicy = field(default_factory=WebhookRetryPolicy)

    def __post_init__(self) -> None:
        self.events = frozenset(self.events)

    def wants(self, event_name: str) -> bool:
        return event_name in self.events
