"""Error types shared across the integration layer.

The executor and the monitor never let these escape their public
boundary; they are raised internally and converted into result envelopes
or log entries.
"""

from typing import Optional


class IntegrationError(Exception):
    """Base class for all integration-layer errors."""


class TransportError(IntegrationError):
    """Network-level failure (connection refused, DNS, timeout)."""


class ServerError(IntegrationError):
    """Upstream answered with a non-2xx status code."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MaxRetryError(IntegrationError):
    """Exception raised when max retries are exceeded."""

    def __init__(self, original_exception: Exception, attempts: int):
        self.original_exception = original_exception
        self.attempts = attempts
        super().__init__(f"Max retries ({attempts}) exceeded. Last error: {original_exception}")

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.original_exception, "status_code", None)


class ValidationError(IntegrationError):
    """Invalid caller input (unknown verb, malformed payload)."""


class WebhookDeliveryError(IntegrationError):
    """A webhook subscriber could not be reached or rejected the delivery."""

    def __init__(self, subscription_id: str, reason: str):
        self.subscription_id = subscription_id
        super().__init__(f"Webhook '{subscription_id}' delivery failed: {reason}")


class ConfigurationError(IntegrationError):
    """Configuration value is missing or invalid."""
