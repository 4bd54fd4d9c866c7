from nepa_integration.domain.models.api import ApiConfig, AuthConfig, AuthType
from nepa_integration.infrastructure.http.auth import (
    USER_AGENT, apply_authentication, auth_headers, build_http_client
)


def test_auth_headers_per_scheme():
    assert auth_headers(AuthConfig(AuthType.API_KEY, {"api_key": "k"})) == {"X-API-Key": "k"}
    assert auth_headers(AuthConfig(AuthType.BEARER, {"token": "t"})) == {"Authorization": "Bearer t"}
    assert auth_headers(AuthConfig(AuthType.OAUTH, {"access_token": "a"})) == {"Authorization": "Bearer a"}
    assert auth_headers(None) == {}


def test_apply_authentication_returns_copy():
    headers = {"X-Trace": "1"}
    decorated = apply_authentication(headers, AuthConfig(AuthType.API_KEY, {"api_key": "k"}))

    assert decorated == {"X-Trace": "1", "X-API-Key": "k"}
    assert headers == {"X-Trace": "1"}


def test_build_http_client_applies_config():
    config = ApiConfig(base_url="https://banking.test/api", timeout=12.0, headers={"X-Tenant": "nepa"})
    client = build_http_client(config)

    assert str(client.base_url) == "https://banking.test/api/"
    assert client.timeout.read == 12.0
    assert client.headers["User-Agent"] == USER_AGENT
    assert client.headers["Content-Type"] == "application/json"
    assert client.headers["X-Tenant"] == "nepa"
