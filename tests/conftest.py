"""
Shared test fixtures for Prava SDK tests.

Provides token generation, configuration, an in-memory credential store,
a recording event bus and a fake API server served through
httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest

from prava_sdk.client import AsyncPravaClient
from prava_sdk.config import PravaClientConfig, TelemetryConfig
from prava_sdk.events import SessionEvent, SessionEventBus
from prava_sdk.models import CredentialPair, User
from prava_sdk.store import CredentialStore, MemoryKeyValueStore

SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"
REFRESH_PATH = "/api/v1/auth/refresh"


def make_token(exp_in: float | None = 3600, **claims: Any) -> str:
    """Create a signed access token expiring ``exp_in`` seconds from now."""
    payload: dict[str, Any] = {"sub": "user-1", "jti": uuid.uuid4().hex, **claims}
    if exp_in is not None:
        payload["exp"] = int(time.time() + exp_in)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBus(SessionEventBus):
    """Event bus that keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[SessionEvent] = []

    def publish(self, event: SessionEvent) -> None:
        self.events.append(event)
        super().publish(event)

    def of_topic(self, topic: str) -> list[SessionEvent]:
        return [e for e in self.events if e.topic == topic]


class FakeApi:
    """Minimal Prava API.

    Protected routes accept only access tokens listed in ``valid_tokens``.
    The refresh endpoint issues a new access token per call unless
    ``refresh_status`` or ``refresh_error`` say otherwise.
    """

    def __init__(self) -> None:
        self.valid_tokens: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.refresh_calls = 0
        self.refresh_status = 200
        # Statuses for the next refresh calls, consumed in order
        self.refresh_outcomes: list[int] = []
        self.refresh_error: Exception | None = None
        self.refresh_body: Callable[[str], dict[str, Any]] | None = None
        self.refresh_delay = 0.05
        self.route_delay = 0.01
        self.rotate_refresh_token = True
        # Reject a refresh token presented a second time, like a rotating server
        self.single_use_refresh = False
        self.spent_refresh_tokens: set[str] = set()
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        # Replays reuse the request object, so keep what was actually sent
        self.requests.append(
            httpx.Request(
                request.method,
                request.url,
                headers=request.headers.copy(),
                content=request.content,
                extensions=dict(request.extensions),
            )
        )
        if request.url.path == REFRESH_PATH:
            return await self._refresh(request)

        await asyncio.sleep(self.route_delay)
        route = self.routes.get(request.url.path)
        if route is not None:
            return route(request)

        auth = request.headers.get("Authorization", "")
        token = auth.removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"message": "Token expired"})
        return httpx.Response(200, json={"success": True, "data": {"path": request.url.path}})

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        status = self.refresh_outcomes.pop(0) if self.refresh_outcomes else self.refresh_status
        await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        if status != 200:
            return httpx.Response(status, json={"message": "Refresh failed"})

        refresh_token = json.loads(request.content)["refreshToken"]
        if self.single_use_refresh:
            if refresh_token in self.spent_refresh_tokens:
                return httpx.Response(401, json={"message": "Refresh token reused"})
            self.spent_refresh_tokens.add(refresh_token)

        new_access = make_token(3600)
        self.valid_tokens.add(new_access)
        if self.refresh_body is not None:
            return httpx.Response(200, json=self.refresh_body(new_access))

        data: dict[str, Any] = {"accessToken": new_access}
        if self.rotate_refresh_token:
            data["refreshToken"] = f"{refresh_token}-r{self.refresh_calls}"
        return httpx.Response(200, json={"success": True, "data": data})


@pytest.fixture
def config() -> PravaClientConfig:
    """Provide a basic SDK configuration for testing."""
    return PravaClientConfig(
        base_url="https://api.prava.test",
        telemetry=TelemetryConfig(enabled=False),
    )


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Provide the signed access token factory."""
    return make_token


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> CredentialStore:
    """Provide an empty in-memory credential store."""
    return CredentialStore(MemoryKeyValueStore())


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def other_bus() -> RecordingBus:
    """A second bus, for clients that do not share one."""
    return RecordingBus()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def user() -> User:
    return User(id=7, full_name="Ali Valiyev", first_name="Ali", last_name="Valiyev")


@pytest.fixture
def signed_in(store: CredentialStore, user: User) -> Callable[..., str]:
    """Store a session whose access token expires in ``exp_in`` seconds."""

    def sign_in(exp_in: float | None = 3600, refresh_token: str | None = "refresh-1") -> str:
        access_token = make_token(exp_in)
        store.save_session(
            CredentialPair(access_token=access_token, refresh_token=refresh_token),
            user,
        )
        return access_token

    return sign_in


@pytest.fixture
def client(
    config: PravaClientConfig,
    store: CredentialStore,
    bus: RecordingBus,
    fake_api: FakeApi,
) -> AsyncPravaClient:
    """Provide a client wired to the fake API."""
    return AsyncPravaClient(
        config,
        store=store,
        event_bus=bus,
        transport=fake_api.transport(),
    )
