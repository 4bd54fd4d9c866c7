"""Request decoration for the supported authentication schemes."""

import logging
from typing import Dict, Optional

import httpx

from nepa_integration.domain.models.api import ApiConfig, AuthConfig, AuthType

logger = logging.getLogger(__name__)

USER_AGENT = "NEPA-Integration-Layer/1.0"


def auth_headers(auth: Optional[AuthConfig]) -> Dict[str, str]:
    """Returns the headers that authenticate a request for the given scheme."""
    if auth is None:
        return {}
    credentials = auth.credentials or {}
    if auth.type is AuthType.OAUTH:
        return {"Authorization": f"Bearer {credentials.get('access_token', '')}"}
    if auth.type is AuthType.API_KEY:
        return {"X-API-Key": credentials.get("api_key", "")}
    if auth.type is AuthType.BEARER:
        return {"Authorization": f"Bearer {credentials.get('token', '')}"}
    logger.warning(f"Unknown auth type {auth.type!r}; request left unauthenticated")
    return {}


def apply_authentication(headers: Dict[str, str], auth: Optional[AuthConfig]) -> Dict[str, str]:
    """Returns a copy of headers decorated with authentication."""
    decorated = dict(headers)
    decorated.update(auth_headers(auth))
    return decorated


def build_http_client(config: ApiConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Creates the AsyncClient an executor uses for one upstream service."""
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        **config.headers,
    }
    return httpx.AsyncClient(
        base_url=config.base_url,
        timeout=config.timeout,
        headers=headers,
        transport=transport,
        follow_redirects=True,
    )
