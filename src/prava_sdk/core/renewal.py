"""Single-flight credential renewal.

At most one renewal call is in flight per credential store: every client
sharing a store shares its coordinator (see ``coordinator_for``). Callers
that ask for a renewal while one is running are parked on that
operation's queue and settled with its outcome, in the order they arrived.

Two triggers exist:

- proactive: the access credential is about to expire. Failure is
  swallowed and the caller keeps using the old credential.
- reactive: a request came back 401. Failure destroys the stored session
  and publishes a forced logout.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..errors import InvalidConfigError, PravaSDKError
from ..models import RefreshResponse
from ..telemetry import get_logger, trace_operation
from .errors import ErrorFactory

if TYPE_CHECKING:
    from ..events import SessionEventBus
    from ..store import CredentialStore


class RenewalTrigger(StrEnum):
    """Why a renewal was requested."""

    PROACTIVE = "proactive"
    REACTIVE = "reactive"


class RenewalState(StrEnum):
    """Coordinator states. SUCCEEDED and FAILED are both settled."""

    IDLE = "idle"
    RENEWING = "renewing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RenewalOperation:
    """A renewal that is currently executing, plus the callers waiting on it."""

    def __init__(self, trigger: RenewalTrigger) -> None:
        self.trigger = trigger
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._settled = False

    @property
    def waiting(self) -> int:
        """Number of parked callers."""
        return len(self._waiters)

    @property
    def settled(self) -> bool:
        return self._settled

    def attach(self) -> asyncio.Future[str]:
        """Park a caller until the operation settles."""
        if self._settled:
            msg = "Cannot attach to a settled renewal"
            raise RuntimeError(msg)
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return waiter

    def resolve(self, access_token: str) -> None:
        """Hand the new access credential to every parked caller, FIFO."""
        self._settled = True
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(access_token)

    def reject(self, error: BaseException) -> None:
        """Fail every parked caller with the same error instance."""
        self._settled = True
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(error)


class RenewalCoordinator:
    """Performs credential renewal, one network call at a time."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        event_bus: SessionEventBus | None = None,
        *,
        refresh_endpoint: str = "/api/v1/auth/refresh",
    ) -> None:
        """Initialize renewal coordinator.

        Args:
            http: Client used for the renewal call. Must not route through
                the request pipeline.
            store: Credential store to read from and commit to.
            event_bus: Bus that always hears forced logouts. Clients
                sharing the coordinator add their own bus via ``acquire``.
            refresh_endpoint: Path of the renewal endpoint.
        """
        self._http = http
        self._store = store
        self._buses: list[SessionEventBus] = [event_bus] if event_bus is not None else []
        self._shares = 0
        self.refresh_endpoint = refresh_endpoint

        self._state = RenewalState.IDLE
        self._in_flight: RenewalOperation | None = None
        self._renewal_count = 0
        self._logger = get_logger()

    @property
    def store(self) -> CredentialStore:
        """The credential store this coordinator renews."""
        return self._store

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def in_flight(self) -> RenewalOperation | None:
        """The operation currently executing, if any."""
        return self._in_flight

    @property
    def is_renewing(self) -> bool:
        return self._in_flight is not None

    @property
    def renewal_count(self) -> int:
        """Renewal calls actually sent to the server."""
        return self._renewal_count

    @property
    def shares(self) -> int:
        """Clients currently holding a share of this coordinator."""
        return self._shares

    def acquire(self, event_bus: SessionEventBus) -> None:
        """Register a client; its bus hears forced logouts until it releases."""
        self._shares += 1
        self._buses.append(event_bus)

    async def release(self, event_bus: SessionEventBus) -> None:
        """Drop a client's share.

        The last share closes the renewal client and detaches the
        coordinator from its store, so the next client starts afresh.
        """
        self._shares -= 1
        self._buses.remove(event_bus)
        if self._shares > 0:
            return
        if self._store.coordinator is self:
            self._store.coordinator = None
        await self._http.aclose()

    async def renew(self, trigger: RenewalTrigger) -> str:
        """Renew the credential pair, or wait for the renewal in flight.

        Args:
            trigger: Why the renewal is needed.

        Returns:
            The new access credential.

        Raises:
            TokenRefreshError: If the renewal failed.
        """
        operation = self._in_flight
        if operation is None:
            return await self._run(trigger)

        self._logger.debug(
            "Waiting for renewal in flight",
            trigger=str(trigger),
            in_flight=str(operation.trigger),
            waiting=operation.waiting + 1,
        )
        try:
            return await operation.attach()
        except PravaSDKError:
            # A failed proactive attempt leaves the session intact, so a
            # 401'd request still gets its own reactive attempt.
            if trigger is RenewalTrigger.REACTIVE and operation.trigger is RenewalTrigger.PROACTIVE:
                return await self.renew(RenewalTrigger.REACTIVE)
            raise

    async def renew_proactively(self) -> str | None:
        """Renew ahead of expiry.

        Returns:
            The new access credential, or None if renewal failed.
        """
        try:
            return await self.renew(RenewalTrigger.PROACTIVE)
        except PravaSDKError as e:
            self._logger.warning(
                "Proactive renewal failed, continuing with current credential",
                error=e.message,
                status_code=e.status_code,
            )
            return None

    async def renew_reactively(self) -> str:
        """Renew after a 401; failure ends the session."""
        return await self.renew(RenewalTrigger.REACTIVE)

    def terminate_session(self, reason: str | None = None) -> bool:
        """Destroy the stored session and announce it.

        No-op when nothing is stored, so repeated calls publish at most once.

        Returns:
            True if a session was destroyed.
        """
        if not self._store.clear():
            return False
        self._logger.info("Session terminated", reason=reason)
        # One event per bus, however many clients share it.
        for bus in dict.fromkeys(self._buses):
            bus.forced_logout(reason)
        return True

    async def _run(self, trigger: RenewalTrigger) -> str:
        operation = RenewalOperation(trigger)
        self._in_flight = operation
        self._state = RenewalState.RENEWING

        try:
            access_token = await self._perform(trigger)
        except PravaSDKError as error:
            self._settle(RenewalState.FAILED)
            if trigger is RenewalTrigger.REACTIVE:
                self.terminate_session(error.message)
            operation.reject(error)
            raise
        except BaseException:
            # Cancelled or crashed initiator: nobody may keep waiting on it.
            self._settle(RenewalState.FAILED)
            operation.reject(ErrorFactory.refresh_failed("Renewal was interrupted"))
            raise

        self._settle(RenewalState.SUCCEEDED)
        operation.resolve(access_token)
        return access_token

    def _settle(self, state: RenewalState) -> None:
        self._in_flight = None
        self._state = state

    async def _perform(self, trigger: RenewalTrigger) -> str:
        refresh_token = self._store.refresh_token
        if not refresh_token:
            raise ErrorFactory.refresh_failed("No refresh token available")

        with trace_operation("renew_credentials", attributes={"renewal.trigger": str(trigger)}):
            self._renewal_count += 1
            try:
                response = await self._http.post(
                    self.refresh_endpoint,
                    json={"refreshToken": refresh_token},
                )
            except httpx.HTTPError as e:
                raise ErrorFactory.refresh_failed(f"Refresh request failed: {e}", cause=e) from e

            if not response.is_success:
                raise ErrorFactory.refresh_failed(
                    f"Refresh rejected with status {response.status_code}",
                    response=response,
                )

            try:
                tokens = RefreshResponse.from_payload(response.json())
            except (ValueError, PydanticValidationError):
                tokens = RefreshResponse()

            if not tokens.access_token:
                raise ErrorFactory.refresh_failed(
                    "No access token in refresh response",
                    response=response,
                )

            self._store.commit_renewal(tokens.access_token, tokens.refresh_token)

        self._logger.info(
            "Credentials renewed",
            trigger=str(trigger),
            refresh_rotated=tokens.refresh_token is not None,
        )
        return tokens.access_token


def coordinator_for(
    store: CredentialStore,
    factory: Callable[[], RenewalCoordinator],
) -> RenewalCoordinator:
    """Return the coordinator renewing ``store``, creating it on first use.

    Every client sharing a store must go through the same coordinator,
    otherwise two renewals could spend one refresh credential.

    Args:
        store: Credential store the caller will use.
        factory: Builds the coordinator when the store has none yet.

    Returns:
        The store's coordinator.

    Raises:
        InvalidConfigError: If ``factory`` builds a coordinator for another store.
    """
    if store.coordinator is None:
        coordinator = factory()
        if coordinator.store is not store:
            raise InvalidConfigError(
                "Renewal coordinator belongs to a different credential store",
                field="coordinator",
            )
        store.coordinator = coordinator
    return store.coordinator
