"""Session event bus.

Fire-and-forget publish/subscribe channel used by the request pipeline to
announce forced logouts and transport-level errors to UI observers. No
persistence, no replay, no acknowledgment; subscribers handle duplicates.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .telemetry import get_logger


class EventTopic(StrEnum):
    """Topics published on the session event bus."""

    FORCED_LOGOUT = "forced-logout"
    API_ERROR = "api-error"


class ApiErrorKind(StrEnum):
    """Classes of failure announced on the ``api-error`` topic."""

    ACCESS_DENIED = "access-denied"
    SERVER_ERROR = "server-error"
    CONNECTIVITY_ERROR = "connectivity-error"


@dataclass(frozen=True)
class ForcedLogoutEvent:
    """The pipeline destroyed the session."""

    reason: str | None = None
    topic: EventTopic = field(default=EventTopic.FORCED_LOGOUT, init=False)


@dataclass(frozen=True)
class ApiErrorEvent:
    """A request failed in a way the UI should hear about."""

    status: int
    message: str
    kind: ApiErrorKind
    url: str | None = None
    topic: EventTopic = field(default=EventTopic.API_ERROR, init=False)

    def to_dict(self) -> dict[str, Any]:
        """Payload shape consumed by notification layers."""
        payload: dict[str, Any] = {"status": self.status, "message": self.message}
        if self.url is not None:
            payload["url"] = self.url
        return payload


SessionEvent = ForcedLogoutEvent | ApiErrorEvent
Subscriber = Callable[[SessionEvent], None]


class SessionEventBus:
    """Synchronous observer list keyed by topic."""

    def __init__(self) -> None:
        self._subscribers: dict[EventTopic, list[Subscriber]] = {
            topic: [] for topic in EventTopic
        }
        self._lock = threading.Lock()
        self._logger = get_logger()

    def subscribe(
        self,
        topic: EventTopic | str,
        callback: Subscriber,
    ) -> Callable[[], None]:
        """Register a callback for a topic.

        Args:
            topic: Topic to listen on.
            callback: Called with each event published on the topic.

        Returns:
            Function that removes the subscription.
        """
        topic = EventTopic(topic)
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers[topic].remove(callback)
                except ValueError:
                    pass

        return unsubscribe

    def publish(self, event: SessionEvent) -> None:
        """Deliver an event to every subscriber of its topic.

        Never raises: a failing subscriber is logged and the remaining
        subscribers still receive the event.
        """
        with self._lock:
            subscribers = list(self._subscribers[event.topic])

        self._logger.debug("Session event", topic=str(event.topic), subscribers=len(subscribers))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                self._logger.exception("Session event subscriber failed", topic=str(event.topic))

    def forced_logout(self, reason: str | None = None) -> None:
        """Announce that the session was destroyed."""
        self.publish(ForcedLogoutEvent(reason=reason))

    def api_error(
        self,
        kind: ApiErrorKind,
        status: int,
        message: str,
        url: str | None = None,
    ) -> None:
        """Announce a failed request."""
        self.publish(ApiErrorEvent(status=status, message=message, kind=kind, url=url))

    def clear(self) -> None:
        """Drop every subscription."""
        with self._lock:
            for subscribers in self._subscribers.values():
                subscribers.clear()


_default_bus: SessionEventBus | None = None


def get_event_bus() -> SessionEventBus:
    """Get or create the process-wide event bus."""
    global _default_bus
    if _default_bus is None:
        _default_bus = SessionEventBus()
    return _default_bus
