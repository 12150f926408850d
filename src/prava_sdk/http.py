"""HTTP client construction for the Prava SDK.

Two kinds of httpx client exist: the API client, whose requests go
through the middleware pipeline, and the renewal client, used only by the
renewal coordinator. Both are plain httpx clients built by ``_build_client``;
what keeps the renewal client out of the pipeline is that nothing but the
coordinator ever sends on it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .config import PravaClientConfig

USER_AGENT = "prava-sdk/0.1.0 Python"

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json",
    "Content-Type": "application/json",
}


def _timeout(config: PravaClientConfig) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout,
        read=config.timeout,
        write=config.timeout,
        pool=config.timeout,
    )


def _build_client(
    config: PravaClientConfig,
    transport: httpx.AsyncBaseTransport | None,
) -> httpx.AsyncClient:
    # No auth, no event hooks: credentials are attached by middleware only.
    return httpx.AsyncClient(
        base_url=config.base_url_str,
        timeout=_timeout(config),
        headers=DEFAULT_HEADERS,
        follow_redirects=False,
        transport=transport,
    )


def create_async_http_client(
    config: PravaClientConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the API client.

    Args:
        config: SDK configuration.
        transport: Optional transport override (tests, proxies).

    Returns:
        Configured httpx.AsyncClient.
    """
    return _build_client(config, transport)


def create_renewal_client(
    config: PravaClientConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the client used for credential renewal only.

    Returns:
        Configured httpx.AsyncClient with no credentials attached.
    """
    return _build_client(config, transport)
