"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like cache keys and
structured metadata, ensuring consistency and type safety.
"""

from typing import Dict, NewType, Optional, TypedDict, Union

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # SHA-256 hex digest of a request's identity

# === Structured Metadata ===
# Log metadata, event payloads and webhook data are restricted to scalar values.
MetadataValue = Union[str, int, float, bool, None]
Metadata = Dict[str, MetadataValue]

# --- Structured Data ---

class AuthCredentials(TypedDict, total=False):
    """Credentials for the supported authentication schemes."""
    api_key: str       # 'apikey'
    token: str         # 'bearer'
    access_token: str  # 'oauth'


class HealthProbeResult(TypedDict):
    """Outcome of a service's health probe."""
    healthy: bool
    details: Dict[str, object]


class AlertChannelSpec(TypedDict, total=False):
    """Configuration record describing one alert channel."""
    type: str
    url: Optional[str]
    webhook_url: Optional[str]
