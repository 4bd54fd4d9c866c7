"""Resilient Request Executor.

Single calling convention for every upstream JSON/HTTP service. Each call
runs through cache lookup, sliding-window rate limiting and retry with
exponential backoff, then updates metrics, publishes a success or failure
event and, on failure, notifies webhook subscribers.

``execute`` and the verb helpers never raise for upstream failures; every
outcome is returned as an ApiResult.
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from nepa_integration.domain.events.api_events import (
    ApiCallDeferred, ApiCallFailed, ApiCallSucceeded, MetricsUpdated
)
from nepa_integration.domain.interfaces.cache import CacheService
from nepa_integration.domain.models.api import (
    ApiConfig, ApiResult, CacheConfig, CallConfig, Metrics, RateLimitConfig, WebhookSubscription
)
from nepa_integration.domain.models.common import HealthProbeResult
from nepa_integration.domain.models.errors import MaxRetryError, ServerError, TransportError
from nepa_integration.infrastructure.cache.caching_service import CachingServiceImpl, make_cache_key
from nepa_integration.infrastructure.events.event_bus import EventBus
from nepa_integration.infrastructure.http.auth import apply_authentication, build_http_client
from nepa_integration.infrastructure.resilience.api_retry import ApiRetryService
from nepa_integration.infrastructure.resilience.rate_limiter import RateLimiter
from nepa_integration.infrastructure.webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
HEALTH_TIMEOUT_SECONDS = 5.0
DEFAULT_METRICS_BROADCAST_INTERVAL = 60.0
API_FAILURE_EVENT = "api_failure"


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestExecutor:
    """Executes calls against one upstream service."""

    def __init__(
        self,
        config: ApiConfig,
        rate_limit_config: Optional[RateLimitConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        *,
        name: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[CacheService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        webhooks: Optional[WebhookDispatcher] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the executor.

        Args:
            config: Connection, retry and authentication settings.
            rate_limit_config: Window and budget; defaults to 100 requests / 60s.
            cache_config: Cache settings; defaults to an enabled 5 minute LRU cache.
            name: Label used in logs and on the event bus (defaults to base URL).
            http_client: Client to use instead of building one from config.
                The executor does not close clients it did not create.
            cache: Cache implementation (defaults to CachingServiceImpl).
            rate_limiter: Shared limiter (defaults to a private one).
            webhooks: Webhook dispatcher (defaults to a private one).
            clock: Monotonic time source in seconds.
            sleep: Coroutine used for backoff and rate-limit waits.
        """
        self.config = config
        self.rate_limit_config = rate_limit_config or RateLimitConfig()
        self.cache_config = cache_config or CacheConfig()
        self.name = name or config.base_url
        self._clock = clock
        self._sleep = sleep

        self.events = EventBus(name=f"executor:{self.name}")
        self.metrics = Metrics()
        self.cache: CacheService = (
            cache if cache is not None else CachingServiceImpl.from_config(self.cache_config, clock=clock)
        )
        self.rate_limiter = (
            rate_limiter if rate_limiter is not None
            else RateLimiter.from_config(self.rate_limit_config, clock=clock, sleep=sleep)
        )
        self.webhooks = webhooks if webhooks is not None else WebhookDispatcher()

        self._client = http_client if http_client is not None else build_http_client(config)
        self._owns_client = http_client is None
        self._retry = self._build_retry_service()
        self._in_flight = 0
        self._broadcast_task: Optional[asyncio.Task] = None

        logger.info(
            f"RequestExecutor '{self.name}' initialized: base_url={config.base_url}, "
            f"retry_attempts={config.retry_attempts}, retry_delay={config.retry_delay}s"
        )

    def _build_retry_service(self) -> ApiRetryService:
        return ApiRetryService(
            max_retries=self.config.retry_attempts,
            initial_backoff_s=self.config.retry_delay,
            backoff_factor=2.0,
            sleep=self._sleep,
            on_retry=self.events.publish,
        )

    @property
    def target_key(self) -> str:
        return self.config.base_url

    @property
    def in_flight(self) -> int:
        """Requests currently between admission and completion."""
        return self._in_flight

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000

    # --- Core pipeline ---

    async def execute(self, call: CallConfig) -> ApiResult:
        """Runs one call through the full pipeline. Never raises."""
        start = self._clock()
        self._in_flight += 1
        try:
            return await self._run(call, start)
        except Exception as e:
            logger.error(f"Unexpected error executing {call.method} {call.path}: {e}", exc_info=True)
            return await self._handle_failure(call, e, start)
        finally:
            self._in_flight -= 1

    async def _run(self, call: CallConfig, start: float) -> ApiResult:
        cacheable = self.cache_config.enabled and call.is_read
        cache_key = make_cache_key(call) if cacheable else None

        if cacheable:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self.metrics.cache_hits += 1
                return ApiResult(success=True, data=cached, cached=True, response_time=self._elapsed_ms(start))
            self.metrics.cache_misses += 1

        waited = await self.rate_limiter.admit(self.target_key)
        if waited > 0:
            self.metrics.rate_limit_hits += 1
            self.events.publish(ApiCallDeferred(target=self.target_key, wait_time_seconds=waited))

        try:
            response = await self._retry.execute_with_retry(self._send, call, url=call.path, method=call.method)
        except MaxRetryError as e:
            return await self._handle_failure(call, e.original_exception, start)

        data = _decode_body(response)
        if cacheable:
            await self.cache.set(cache_key, data)

        response_time = self._elapsed_ms(start)
        self._record_outcome(success=True, response_time=response_time)
        self.events.publish(ApiCallSucceeded(
            url=call.path, method=call.method, status_code=response.status_code, latency_ms=response_time
        ))
        return ApiResult(success=True, data=data, status_code=response.status_code, response_time=response_time)

    def _request_kwargs(self, call: CallConfig) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "params": call.params,
            "headers": apply_authentication(call.headers or {}, self.config.auth),
        }
        if call.body is not None:
            kwargs["json"] = call.body
        if call.timeout is not None:
            kwargs["timeout"] = call.timeout
        return kwargs

    async def _send(self, call: CallConfig) -> httpx.Response:
        """One HTTP attempt, mapping failures onto the retryable error types."""
        try:
            response = await self._client.request(call.method, call.path, **self._request_kwargs(call))
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e or type(e).__name__}") from e
        except httpx.TransportError as e:
            raise TransportError(str(e) or type(e).__name__) from e
        if not response.is_success:
            raise ServerError(f"Request failed with status code {response.status_code}", response.status_code)
        return response

    async def _handle_failure(self, call: CallConfig, error: Exception, start: float) -> ApiResult:
        message = str(error) or type(error).__name__
        status_code = getattr(error, "status_code", None)
        response_time = self._elapsed_ms(start)

        self._record_outcome(success=False, response_time=response_time, error=message)
        self.events.publish(ApiCallFailed(
            url=call.path, method=call.method, error=message, status_code=status_code, latency_ms=response_time
        ))
        await self.webhooks.emit(API_FAILURE_EVENT, {
            "error": message,
            "method": call.method,
            "url": call.path,
            "statusCode": status_code,
            "responseTime": response_time,
        })
        return ApiResult(success=False, error=message, status_code=status_code, response_time=response_time)

    def _record_outcome(self, success: bool, response_time: float, error: Optional[str] = None) -> None:
        metrics = self.metrics
        metrics.total_requests += 1
        if success:
            metrics.successful_requests += 1
        else:
            metrics.failed_requests += 1
            metrics.last_error = error
            metrics.last_error_time = datetime.now(timezone.utc)
        n = metrics.successful_requests + metrics.failed_requests
        metrics.average_response_time = (metrics.average_response_time * (n - 1) + response_time) / n

    # --- HTTP verbs ---

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **options: Any) -> ApiResult:
        return await self.execute(CallConfig("GET", path, params=params, **options))

    async def post(self, path: str, body: Any = None, **options: Any) -> ApiResult:
        return await self.execute(CallConfig("POST", path, body=body, **options))

    async def put(self, path: str, body: Any = None, **options: Any) -> ApiResult:
        return await self.execute(CallConfig("PUT", path, body=body, **options))

    async def delete(self, path: str, **options: Any) -> ApiResult:
        return await self.execute(CallConfig("DELETE", path, **options))

    async def batch(self, calls: Sequence[CallConfig]) -> List[ApiResult]:
        """Runs calls concurrently; results are returned in input order."""
        return list(await asyncio.gather(*(self.execute(call) for call in calls)))

    async def stream(self, call: CallConfig, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """Streams a large response body chunk by chunk.

        Bypasses cache and retry. Errors propagate to the consumer as httpx
        exceptions since the stream is consumed outside the executor.
        """
        await self.rate_limiter.admit(self.target_key)
        async with self._client.stream(call.method, call.path, **self._request_kwargs(call)) as response:
            response.raise_for_status()
            self.metrics.total_requests += 1
            self.metrics.successful_requests += 1
            async for chunk in response.aiter_bytes(chunk_size):
                yield chunk

    # --- Health & metrics ---

    async def health_check(self) -> HealthProbeResult:
        """Probes the upstream health endpoint. Any failure reports unhealthy."""
        start = self._clock()
        try:
            response = await self._client.get(
                HEALTH_PATH,
                timeout=HEALTH_TIMEOUT_SECONDS,
                headers=apply_authentication({}, self.config.auth),
            )
            response.raise_for_status()
        except Exception as e:
            logger.debug(f"Health probe for '{self.name}' failed: {e}")
            return {
                "healthy": False,
                "details": {"error": str(e) or type(e).__name__, "metrics": self.metrics.to_dict()},
            }
        return {
            "healthy": True,
            "details": {
                "responseTime": self._elapsed_ms(start),
                "metrics": self.metrics.to_dict(),
                "cacheSize": self.cache.size,
                "rateLimitEntries": self.rate_limiter.tracked_targets,
            },
        }

    def get_metrics(self) -> Metrics:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics = Metrics()
        logger.info(f"Metrics reset for '{self.name}'")

    def broadcast_metrics(self) -> None:
        self.events.publish(MetricsUpdated(metrics=self.get_metrics()))

    def start_metrics_broadcast(self, interval: float = DEFAULT_METRICS_BROADCAST_INTERVAL) -> None:
        """Publishes MetricsUpdated every interval seconds until aclose()."""
        if self._broadcast_task is not None and not self._broadcast_task.done():
            return
        self._broadcast_task = asyncio.get_running_loop().create_task(self._broadcast_loop(interval))

    async def _broadcast_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.broadcast_metrics()

    async def clear_cache(self) -> None:
        await self.cache.clear()

    # --- Reconfiguration ---

    async def update_config(self, **changes: Any) -> None:
        """Partially updates ApiConfig; rebuilds the HTTP client when owned."""
        self.config = replace(self.config, **changes)
        self._retry = self._build_retry_service()
        if self._owns_client:
            old_client = self._client
            self._client = build_http_client(self.config)
            await old_client.aclose()
        logger.info(f"Configuration updated for '{self.name}': {sorted(changes)}")

    def update_rate_limit_config(self, **changes: Any) -> None:
        config = replace(self.rate_limit_config, **changes)
        self.rate_limiter.update(config)
        self.rate_limit_config = config

    def update_cache_config(self, **changes: Any) -> None:
        self.cache_config = replace(self.cache_config, **changes)
        if isinstance(self.cache, CachingServiceImpl):
            self.cache.reconfigure(self.cache_config)

    # --- Webhooks ---

    def add_webhook(self, subscription_id: str, subscription: WebhookSubscription) -> None:
        self.webhooks.add(subscription_id, subscription)

    def remove_webhook(self, subscription_id: str) -> None:
        self.webhooks.remove(subscription_id)

    # --- Lifecycle ---

    async def aclose(self) -> None:
        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        if self._owns_client:
            await self._client.aclose()
        await self.webhooks.aclose()

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
