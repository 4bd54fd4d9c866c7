import asyncio
import json

import httpx
import pytest

from nepa_integration.core.request_executor import RequestExecutor
from nepa_integration.domain.events.api_events import ApiCallFailed, ApiCallSucceeded, MetricsUpdated
from nepa_integration.domain.models.api import (
    ApiConfig, AuthConfig, AuthType, CacheConfig, CallConfig, RateLimitConfig, WebhookSubscription
)
from nepa_integration.domain.models.errors import ConfigurationError
from nepa_integration.infrastructure.webhooks.dispatcher import SIGNATURE_HEADER, WebhookDispatcher, sign_payload

BASE_URL = "https://banking.test"


@pytest.fixture
def make_executor(mock_http, fake_clock):
    """Builds an executor whose HTTP traffic is served by handler."""
    def factory(handler, **overrides):
        config = overrides.pop("config", ApiConfig(base_url=BASE_URL, retry_attempts=2, retry_delay=0.5))
        client = mock_http(handler, base_url=config.base_url)
        executor = RequestExecutor(
            config,
            overrides.pop("rate_limit_config", None),
            overrides.pop("cache_config", None),
            name="banking",
            http_client=client,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            **overrides,
        )
        return executor, client
    return factory


@pytest.mark.asyncio
async def test_successful_get_returns_decoded_body(make_executor):
    executor, client = make_executor(lambda request: httpx.Response(200, json={"accounts": [1, 2]}))
    received = []
    executor.events.subscribe(ApiCallSucceeded, received.append)

    result = await executor.get("/accounts", params={"page": 1})

    assert result.success is True
    assert result.data == {"accounts": [1, 2]}
    assert result.status_code == 200
    assert result.cached is False
    assert client.requests[0].url.params["page"] == "1"
    assert received[0].url == "/accounts" and received[0].status_code == 200
    metrics = executor.get_metrics()
    assert (metrics.total_requests, metrics.successful_requests, metrics.failed_requests) == (1, 1, 0)


@pytest.mark.asyncio
async def test_repeated_get_is_served_from_cache(make_executor):
    executor, client = make_executor(lambda request: httpx.Response(200, json={"rate": 4.5}))

    first = await executor.get("/rates")
    second = await executor.get("/rates")

    assert first.cached is False
    assert second.cached is True
    assert second.data == {"rate": 4.5}
    assert len(client.requests) == 1
    metrics = executor.get_metrics()
    assert metrics.cache_hits == 1
    assert metrics.cache_misses == 1
    assert metrics.total_requests == 1


@pytest.mark.asyncio
async def test_writes_bypass_cache_and_send_json(make_executor):
    executor, client = make_executor(lambda request: httpx.Response(201, json={"id": "p-1"}))

    await executor.post("/payments", body={"amount": 10})
    await executor.post("/payments", body={"amount": 10})

    assert len(client.requests) == 2
    assert json.loads(client.requests[0].content) == {"amount": 10}
    assert executor.cache.size == 0


@pytest.mark.asyncio
async def test_disabled_cache_always_hits_network(make_executor):
    executor, client = make_executor(
        lambda request: httpx.Response(200, json={}), cache_config=CacheConfig(enabled=False)
    )

    await executor.get("/rates")
    await executor.get("/rates")

    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_failure_after_retries_is_returned_not_raised(make_executor, fake_clock):
    executor, client = make_executor(lambda request: httpx.Response(503, text="unavailable"))
    failures = []
    executor.events.subscribe(ApiCallFailed, failures.append)

    result = await executor.get("/accounts")

    assert result.success is False
    assert result.status_code == 503
    assert "503" in result.error
    assert len(client.requests) == 3
    assert fake_clock.sleeps == [0.5, 1.0]
    assert failures[0].status_code == 503
    metrics = executor.get_metrics()
    assert metrics.failed_requests == 1
    assert metrics.last_error == result.error
    assert metrics.last_error_time is not None


@pytest.mark.asyncio
async def test_network_errors_become_failed_results(make_executor):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    executor, _ = make_executor(handler, config=ApiConfig(base_url=BASE_URL, retry_attempts=0))

    result = await executor.delete("/accounts/1")

    assert result.success is False
    assert result.status_code is None
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_metrics_average_and_failure_ratio(make_executor, fake_clock):
    latencies = iter([0.1, 0.2, 0.3, 0.4])
    statuses = iter([200, 200, 200, 500])

    def handler(request):
        fake_clock.advance(next(latencies))
        return httpx.Response(next(statuses), json={})

    executor, _ = make_executor(
        handler,
        config=ApiConfig(base_url=BASE_URL, retry_attempts=0),
        cache_config=CacheConfig(enabled=False),
    )
    for _ in range(4):
        await executor.get("/accounts")

    metrics = executor.get_metrics()
    assert metrics.total_requests == 4
    assert metrics.error_rate == pytest.approx(0.25)
    assert metrics.average_response_time == pytest.approx(250.0)


@pytest.mark.asyncio
async def test_rate_limited_call_waits_and_counts(make_executor, fake_clock):
    executor, _ = make_executor(
        lambda request: httpx.Response(200, json={}),
        rate_limit_config=RateLimitConfig(window_seconds=1.0, max_requests=2),
        cache_config=CacheConfig(enabled=False),
    )

    for _ in range(3):
        await executor.get("/accounts")

    assert fake_clock.sleeps == [pytest.approx(1.0)]
    assert executor.get_metrics().rate_limit_hits == 1


@pytest.mark.asyncio
async def test_authentication_headers_are_applied(make_executor):
    config = ApiConfig(base_url=BASE_URL, auth=AuthConfig(AuthType.API_KEY, {"api_key": "secret"}))
    executor, client = make_executor(lambda request: httpx.Response(200, json={}), config=config)

    await executor.get("/accounts")

    assert client.requests[0].headers["X-API-Key"] == "secret"


@pytest.mark.asyncio
async def test_failure_notifies_webhook_subscribers(make_executor, mock_http):
    hook_client = mock_http(lambda request: httpx.Response(200))
    webhooks = WebhookDispatcher(http_client=hook_client)
    executor, _ = make_executor(
        lambda request: httpx.Response(500),
        config=ApiConfig(base_url=BASE_URL, retry_attempts=0),
        webhooks=webhooks,
    )
    executor.add_webhook("ops", WebhookSubscription(url="https://hooks.test/ops", secret="k", events={"api_failure"}))

    await executor.get("/accounts")

    delivery = hook_client.requests[0]
    assert delivery.headers[SIGNATURE_HEADER] == sign_payload(delivery.content, "k")
    envelope = json.loads(delivery.content)
    assert envelope["event"] == "api_failure"
    assert envelope["data"]["statusCode"] == 500
    assert envelope["data"]["method"] == "GET"


@pytest.mark.asyncio
async def test_batch_preserves_input_order(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, json={"path": request.url.path}))

    results = await executor.batch([CallConfig("GET", "/a"), CallConfig("GET", "/b"), CallConfig("POST", "/c")])

    assert [result.data["path"] for result in results] == ["/a", "/b", "/c"]


@pytest.mark.asyncio
async def test_stream_yields_body_chunks(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, content=b"x" * 10))

    chunks = [chunk async for chunk in executor.stream(CallConfig("GET", "/export"), chunk_size=4)]

    assert b"".join(chunks) == b"x" * 10
    assert executor.get_metrics().successful_requests == 1


@pytest.mark.asyncio
async def test_health_check_reports_probe_outcome(make_executor):
    def handler(request):
        return httpx.Response(200 if request.url.path == "/health" else 404)

    executor, _ = make_executor(handler)
    probe = await executor.health_check()

    assert probe["healthy"] is True
    assert "metrics" in probe["details"]

    failing, _ = make_executor(lambda request: httpx.Response(503))
    probe = await failing.health_check()

    assert probe["healthy"] is False
    assert "503" in probe["details"]["error"]


@pytest.mark.asyncio
async def test_metrics_broadcast_and_reset(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, json={}))
    broadcasts = []
    executor.events.subscribe(MetricsUpdated, broadcasts.append)

    await executor.get("/accounts")
    executor.broadcast_metrics()
    executor.reset_metrics()

    assert broadcasts[0].metrics.total_requests == 1
    assert executor.get_metrics().total_requests == 0


@pytest.mark.asyncio
async def test_configuration_updates(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, json={}))

    await executor.update_config(retry_attempts=5)
    executor.update_rate_limit_config(max_requests=7)
    executor.update_cache_config(ttl_seconds=1.0)

    assert executor.config.retry_attempts == 5
    assert executor.rate_limiter.max_requests == 7
    assert executor.cache.ttl_seconds == 1.0
    await executor.aclose()


@pytest.mark.asyncio
async def test_periodic_metrics_broadcast_stops_on_close(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, json={}))
    broadcasts = []
    executor.events.subscribe(MetricsUpdated, broadcasts.append)

    executor.start_metrics_broadcast(0.01)
    await asyncio.sleep(0.05)
    await executor.aclose()
    delivered = len(broadcasts)
    await asyncio.sleep(0.03)

    assert delivered > 0
    assert all(isinstance(event.metrics.total_requests, int) for event in broadcasts)
    assert len(broadcasts) == delivered


@pytest.mark.asyncio
async def test_invalid_rate_limit_update_is_rejected(make_executor):
    executor, _ = make_executor(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ConfigurationError):
        executor.update_rate_limit_config(max_requests=0)

    assert executor.rate_limit_config.max_requests == 100
    result = await executor.get("/accounts")
    assert result.success is True
