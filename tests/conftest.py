from typing import Callable, List

import httpx
import pytest
from typer.testing import CliRunner

from nepa_integration.infrastructure.config.settings import clear_test_config


class FakeClock:
    """Manually advanced time source with a matching async sleep."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_http() -> Callable[..., httpx.AsyncClient]:
    """Factory for AsyncClients served by an in-process handler.

    The handler receives an httpx.Request and returns an httpx.Response.
    Every request is appended to ``client.requests`` for inspection.
    """
    def factory(handler, base_url: str = "https://api.test") -> httpx.AsyncClient:
        requests: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler), base_url=base_url)
        client.requests = requests
        return client

    return factory


@pytest.fixture(autouse=True)
def reset_test_config():
    """Clears configuration overrides set by a test."""
    yield
    clear_test_config()
