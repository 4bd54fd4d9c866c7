"""Webhook dispatcher for executor events.

Builds an envelope ``{event, timestamp, data}`` for each subscription that
listens to an event, signs the serialized body with HMAC-SHA256 using the
subscription secret and POSTs it with the hex signature in
``X-Webhook-Signature``.

Delivery is best effort: failures are logged per subscription and never
reach the caller. Subscriptions carry a retry policy, but the dispatcher
makes exactly one delivery attempt per event.
"""

import hmac
import json
import logging
from datetime import datetime, timezone
from hashlib import sha256
from typing import Any, Dict, Mapping, Optional

import httpx

from nepa_integration.domain.models.api import WebhookSubscription
from nepa_integration.domain.models.errors import WebhookDeliveryError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
DELIVERY_TIMEOUT_SECONDS = 10.0


def serialize_envelope(envelope: Mapping[str, Any]) -> bytes:
    """Compact JSON encoding; the signature is computed over these exact bytes."""
    return json.dumps(envelope, separators=(",", ":"), default=str).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of body keyed by secret."""
    return hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()


def verify_signature(body: bytes, secret: str, provided_signature: str) -> bool:
    """Constant-time check of a received signature."""
    return hmac.compare_digest(sign_payload(body, secret), provided_signature)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WebhookDispatcher:
    """Registry of webhook subscriptions plus the delivery logic."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = DELIVERY_TIMEOUT_SECONDS):
        self._client = http_client
        self._owns_client = http_client is None
        self.timeout = timeout
        self._subscriptions: Dict[str, WebhookSubscription] = {}

    @property
    def subscriptions(self) -> Dict[str, WebhookSubscription]:
        return dict(self._subscriptions)

    def add(self, subscription_id: str, subscription: WebhookSubscription) -> None:
        self._subscriptions[subscription_id] = subscription
        logger.info(f"Webhook '{subscription_id}' registered for events: {sorted(subscription.events)}")

    def remove(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.info(f"Webhook '{subscription_id}' removed")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def emit(self, event_name: str, payload: Mapping[str, Any]) -> int:
        """Delivers event_name to every interested subscription.

        Returns:
            Number of subscriptions that accepted the delivery.
        """
        delivered = 0
        for subscription_id, subscription in list(self._subscriptions.items()):
            if not subscription.wants(event_name):
                continue
            try:
                await self._deliver(subscription_id, subscription, event_name, payload)
                delivered += 1
            except WebhookDeliveryError as e:
                logger.error(str(e))
        return delivered

    async def _deliver(
        self,
        subscription_id: str,
        subscription: WebhookSubscription,
        event_name: str,
        payload: Mapping[str, Any],
    ) -> None:
        envelope = {"event": event_name, "timestamp": _utc_timestamp(), "data": dict(payload)}
        body = serialize_envelope(envelope)
        headers = {
            SIGNATURE_HEADER: sign_payload(body, subscription.secret),
            "Content-Type": "application/json",
        }
        try:
            response = await self._get_client().post(
                subscription.url, content=body, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise WebhookDeliveryError(subscription_id, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise WebhookDeliveryError(subscription_id, f"{type(e).__name__}: {e}") from e
        logger.debug(f"Webhook '{subscription_id}' delivered event '{event_name}'")

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
