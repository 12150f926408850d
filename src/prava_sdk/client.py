"""Async Prava API client.

Every request goes through the middleware pipeline: locale and bearer
credential are attached on the way out, 401s are recovered by a single
renewal plus one replay, and forbidden/server/connectivity failures are
announced on the session event bus before being raised to the caller.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Self

import httpx

from .config import PravaClientConfig
from .core.errors import ErrorFactory
from .core.pipeline import Middleware, MiddlewarePipeline, default_middlewares
from .core.renewal import RenewalCoordinator, coordinator_for
from .errors import InvalidConfigError
from .events import ApiErrorKind, SessionEventBus, get_event_bus
from .http import create_async_http_client, create_renewal_client
from .models import ApiEnvelope
from .store import CredentialStore
from .telemetry import get_logger, trace_operation


class AsyncPravaClient:
    """Asynchronous Prava API client with transparent credential renewal."""

    def __init__(
        self,
        config: PravaClientConfig,
        *,
        store: CredentialStore | None = None,
        event_bus: SessionEventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        coordinator: RenewalCoordinator | None = None,
        middlewares: Sequence[Middleware] | None = None,
        error_messages: Mapping[ApiErrorKind, str] | None = None,
    ) -> None:
        """Initialize async client.

        Clients on the same credential store renew through one shared
        coordinator, so at most one renewal is in flight per store.

        Args:
            config: SDK configuration.
            store: Credential store (the coordinator's store, else built
                from ``config.storage``, if not provided).
            event_bus: Session event bus (process-wide bus if not provided).
            transport: Optional httpx transport shared by both clients.
            coordinator: Renewal coordinator for the store. Like a shared
                one, its renewal client is closed with the last client using it.
            middlewares: Replaces the default middleware chain.
            error_messages: Overrides for the messages published with api-error events.

        Raises:
            InvalidConfigError: If ``coordinator`` does not renew ``store``,
                or the store is already renewed by another coordinator.
        """
        self.config = config
        if store is None:
            store = coordinator.store if coordinator else CredentialStore.from_config(config.storage)
        self.store = store
        self.events = event_bus or get_event_bus()

        if coordinator is None:
            coordinator = coordinator_for(
                self.store,
                lambda: RenewalCoordinator(
                    create_renewal_client(config, transport=transport),
                    self.store,
                    refresh_endpoint=config.refresh_endpoint,
                ),
            )
        elif coordinator_for(self.store, lambda: coordinator) is not coordinator:
            raise InvalidConfigError(
                "Credential store is already renewed by another coordinator",
                field="coordinator",
            )
        coordinator.acquire(self.events)
        self.coordinator = coordinator
        self._holds_share = True

        self._http = create_async_http_client(config, transport=transport)

        if middlewares is None:
            middlewares = default_middlewares(
                self.store,
                self.coordinator,
                self.events,
                renewal=config.renewal,
                default_locale=config.default_locale,
                messages=error_messages,
            )
        self.pipeline = MiddlewarePipeline(middlewares, self._send)
        self._logger = get_logger()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the API client and release the shared coordinator."""
        await self._http.aclose()
        if self._holds_share:
            self._holds_share = False
            await self.coordinator.release(self.events)

    async def _send(self, request: httpx.Request) -> httpx.Response:
        return await self._http.send(request)

    async def request(
        self,
        method: str,
        url: str,
        *,
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request through the pipeline.

        Args:
            method: HTTP method.
            url: Path relative to the configured base URL, or absolute URL.
            raise_for_status: Raise for 4xx/5xx final responses.
            **kwargs: Passed to ``httpx.AsyncClient.build_request``.

        Returns:
            HTTP response.

        Raises:
            PravaSDKError: Subclass matching the failure.
        """
        request = self._http.build_request(method, url, **kwargs)

        with trace_operation(
            "prava_request",
            attributes={"http.method": method, "http.url": request.url.path},
        ):
            try:
                response = await self.pipeline(request)
            except httpx.HTTPError as e:
                error = ErrorFactory.from_exception(e)
                self._logger.warning(
                    "Request failed",
                    method=method,
                    url=request.url.path,
                    code=error.code,
                )
                raise error from e

        if raise_for_status and response.is_error:
            error = ErrorFactory.from_http_response(response)
            self._logger.info(
                "Request rejected",
                method=method,
                url=request.url.path,
                status_code=response.status_code,
                code=error.code,
            )
            raise error

        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def request_data(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and return the ``data`` of the response envelope."""
        response = await self.request(method, url, **kwargs)
        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError:
            return response.text
        return ApiEnvelope.unwrap(payload)

    async def refresh_credentials(self) -> str:
        """Renew the credential pair now.

        Joins a renewal already in flight. A failure ends the session, as
        it would for a request rejected with 401.

        Returns:
            The new access credential.
        """
        return await self.coordinator.renew_reactively()
