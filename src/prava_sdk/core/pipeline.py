"""Request pipeline for the Prava SDK.

An explicit, ordered list of middlewares wrapped around the transport.
Each middleware is an async callable taking the outgoing request and the
next handler in the chain:

    async def middleware(request, call_next) -> httpx.Response

The first middleware in the list is the outermost one. Renewal calls are
made with a separate client that never passes through this chain.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING

import httpx

from ..events import ApiErrorKind
from ..telemetry import get_logger
from .token_codec import is_expiring_soon

if TYPE_CHECKING:
    from ..config import RenewalConfig
    from ..events import SessionEventBus
    from ..store import CredentialStore
    from .renewal import RenewalCoordinator

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]
Middleware = Callable[[httpx.Request, Handler], Awaitable[httpx.Response]]

# Per-request markers kept in httpx request extensions
RETRIED_EXTENSION = "prava.retried"
CREDENTIAL_EXTENSION = "prava.credential"

DEFAULT_ERROR_MESSAGES: dict[ApiErrorKind, str] = {
    ApiErrorKind.ACCESS_DENIED: "You do not have permission to perform this action",
    ApiErrorKind.SERVER_ERROR: "Server error, please try again later",
    ApiErrorKind.CONNECTIVITY_ERROR: "Network error, check your connection",
}


class MiddlewarePipeline:
    """Ordered middleware chain around a terminal handler."""

    def __init__(self, middlewares: Sequence[Middleware], handler: Handler) -> None:
        """Initialize pipeline.

        Args:
            middlewares: Middlewares, outermost first.
            handler: Terminal handler that actually sends the request.
        """
        self.middlewares = tuple(middlewares)
        self._handler = handler
        self._entry = self._bind(0)

    def _bind(self, index: int) -> Handler:
        if index == len(self.middlewares):
            return self._handler

        middleware = self.middlewares[index]
        call_next = self._bind(index + 1)

        async def handle(request: httpx.Request) -> httpx.Response:
            return await middleware(request, call_next)

        return handle

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        return await self._entry(request)


class LocaleMiddleware:
    """Attaches the user's locale as ``Accept-Language``."""

    def __init__(self, store: CredentialStore, default_locale: str = "uzl") -> None:
        self._store = store
        self.default_locale = default_locale

    async def __call__(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        request.headers["Accept-Language"] = self._store.locale or self.default_locale
        return await call_next(request)


class BearerAuthMiddleware:
    """Attaches the access credential, renewing it first when it is about to expire."""

    def __init__(
        self,
        store: CredentialStore,
        coordinator: RenewalCoordinator,
        config: RenewalConfig,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._config = config

    def _should_renew(self, token: str) -> bool:
        return (
            self._config.proactive_enabled
            and not self._coordinator.is_renewing
            and self._store.refresh_token is not None
            and is_expiring_soon(token, self._config.proactive_horizon_ms)
        )

    async def __call__(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        token = self._store.access_token
        if token and self._should_renew(token):
            await self._coordinator.renew_proactively()
            # New credential on success, old one after a swallowed failure
            token = self._store.access_token or token

        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        request.extensions[CREDENTIAL_EXTENSION] = token
        return await call_next(request)


class CredentialRenewalMiddleware:
    """Recovers requests rejected with 401 by renewing and replaying them once."""

    def __init__(self, store: CredentialStore, coordinator: RenewalCoordinator) -> None:
        self._store = store
        self._coordinator = coordinator
        self._logger = get_logger()

    async def __call__(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        response = await call_next(request)
        if response.status_code != 401 or request.extensions.get(RETRIED_EXTENSION):
            return response

        if self._store.refresh_token is None:
            self._coordinator.terminate_session("Unauthenticated and no refresh token")
            return response

        await response.aclose()
        request.extensions[RETRIED_EXTENSION] = True

        if self._coordinator.is_renewing:
            self._logger.debug("Parking request behind renewal in flight", url=str(request.url))
            await self._coordinator.renew_reactively()
        elif self._credential_rotated(request):
            self._logger.debug("Credential rotated while request was in transit", url=str(request.url))
        else:
            await self._coordinator.renew_reactively()

        return await call_next(request)

    def _credential_rotated(self, request: httpx.Request) -> bool:
        sent_with = request.extensions.get(CREDENTIAL_EXTENSION)
        current = self._store.access_token
        return sent_with is not None and current is not None and current != sent_with


class ErrorEventMiddleware:
    """Announces forbidden, server and connectivity failures on the event bus."""

    def __init__(
        self,
        event_bus: SessionEventBus,
        messages: Mapping[ApiErrorKind, str] | None = None,
    ) -> None:
        self._events = event_bus
        self._messages = {**DEFAULT_ERROR_MESSAGES, **(messages or {})}

    async def __call__(self, request: httpx.Request, call_next: Handler) -> httpx.Response:
        url = request.url.path
        try:
            response = await call_next(request)
        except httpx.TransportError:
            self._publish(ApiErrorKind.CONNECTIVITY_ERROR, 0, url)
            raise

        status = response.status_code
        if status == 403:
            # Authorization failure; the session stays valid
            self._publish(ApiErrorKind.ACCESS_DENIED, status, url)
        elif status >= 500:
            self._publish(ApiErrorKind.SERVER_ERROR, status, url)
        return response

    def _publish(self, kind: ApiErrorKind, status: int, url: str) -> None:
        self._events.api_error(kind, status, self._messages[kind], url)


def default_middlewares(
    store: CredentialStore,
    coordinator: RenewalCoordinator,
    event_bus: SessionEventBus,
    *,
    renewal: RenewalConfig,
    default_locale: str = "uzl",
    messages: Mapping[ApiErrorKind, str] | None = None,
) -> list[Middleware]:
    """Build the standard chain, outermost first."""
    return [
        ErrorEventMiddleware(event_bus, messages),
        CredentialRenewalMiddleware(store, coordinator),
        BearerAuthMiddleware(store, coordinator, renewal),
        LocaleMiddleware(store, default_locale),
    ]
