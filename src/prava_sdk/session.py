"""Session state for UI layers.

``SessionManager`` derives "is the user logged in" from the credential
store and the event bus. It stores new sessions after login/registration,
performs user-initiated logout, and drops its cached state when the
pipeline forces a logout.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from .core.token_codec import is_expired
from .errors import PravaSDKError
from .events import ApiErrorEvent, EventTopic, ForcedLogoutEvent, SessionEvent
from .telemetry import get_logger

if TYPE_CHECKING:
    from .client import AsyncPravaClient
    from .events import SessionEventBus
    from .models import AuthData, User
    from .store import CredentialStore


class SessionObserver(Protocol):
    """Consumer of session events, typically a UI layer."""

    def on_forced_logout(self, event: ForcedLogoutEvent) -> None:
        """The pipeline destroyed the session; send the user to sign in."""
        ...

    def on_api_error(self, event: ApiErrorEvent) -> None:
        """A request failed; show a notification."""
        ...


class SessionManager:
    """Tracks whether a user is signed in."""

    def __init__(
        self,
        store: CredentialStore,
        event_bus: SessionEventBus,
        *,
        client: AsyncPravaClient | None = None,
    ) -> None:
        """Initialize session manager.

        Args:
            store: Credential store shared with the client.
            event_bus: Bus the client publishes on.
            client: Client used for server-side logout.
        """
        self._store = store
        self._events = event_bus
        self._client = client
        self._logger = get_logger()

        self._authenticated = self.check_auth_status()
        self._user = self._store.user if self._authenticated else None
        self._unsubscribers: list[Callable[[], None]] = [
            event_bus.subscribe(EventTopic.FORCED_LOGOUT, self._handle_forced_logout),
        ]

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def user(self) -> User | None:
        return self._user

    def check_auth_status(self) -> bool:
        """Check whether the store holds a usable session.

        A session is usable when the access credential has not expired, or
        when it has but a refresh credential can renew it. Anything else is
        cleared from the store.
        """
        access_token = self._store.access_token
        if access_token is None:
            return False

        # Unknown expiry counts as not expired
        if not is_expired(access_token):
            return True

        if self._store.refresh_token is not None:
            return True

        self._store.clear()
        return False

    def sync(self) -> bool:
        """Reconcile cached state with the store.

        Returns:
            Current authentication state.
        """
        valid = self.check_auth_status()
        if self._authenticated and not valid:
            self._logger.info("Session no longer valid")
            self._authenticated = False
            self._user = None
        elif not self._authenticated and valid:
            self._authenticated = True
            self._user = self._store.user
        return self._authenticated

    def save_auth_data(self, auth_data: AuthData) -> None:
        """Store the session returned by login, registration or OAuth."""
        self._store.save_session(
            auth_data.credentials,
            auth_data.user,
            expires_in_ms=auth_data.expires_in,
        )
        self._authenticated = True
        self._user = auth_data.user

    login = save_auth_data
    register = save_auth_data

    async def logout(self) -> None:
        """Sign out locally, telling the server first when possible.

        Server errors are logged and ignored; local state is always cleared.
        """
        refresh_token = self._store.refresh_token
        try:
            if refresh_token and self._client is not None:
                await self._client.post(
                    self._client.config.logout_endpoint,
                    json={"refreshToken": refresh_token},
                )
        except PravaSDKError as e:
            self._logger.warning("Server logout failed", code=e.code, status_code=e.status_code)
        finally:
            self._store.clear()
            self._authenticated = False
            self._user = None

    def add_observer(self, observer: SessionObserver) -> Callable[[], None]:
        """Route bus events to an observer.

        Returns:
            Function that detaches the observer.
        """

        def on_logout(event: SessionEvent) -> None:
            if isinstance(event, ForcedLogoutEvent):
                observer.on_forced_logout(event)

        def on_error(event: SessionEvent) -> None:
            if isinstance(event, ApiErrorEvent):
                observer.on_api_error(event)

        unsubscribers = [
            self._events.subscribe(EventTopic.FORCED_LOGOUT, on_logout),
            self._events.subscribe(EventTopic.API_ERROR, on_error),
        ]

        def detach() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        self._unsubscribers.append(detach)
        return detach

    def close(self) -> None:
        """Stop listening to the event bus."""
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _handle_forced_logout(self, event: SessionEvent) -> None:
        self._authenticated = False
        self._user = None
