"""Prava Python SDK."""

from .auth_api import AuthAPI
from .client import AsyncPravaClient
from .config import PravaClientConfig, RenewalConfig, StorageConfig, TelemetryConfig
from .errors import (
    AccessDeniedError,
    NetworkError,
    PravaSDKError,
    ServerError,
    TimeoutError,
    TokenRefreshError,
    UnauthorizedError,
)
from .events import ApiErrorEvent, ForcedLogoutEvent, SessionEventBus, get_event_bus
from .session import SessionManager, SessionObserver
from .store import CredentialStore, EncryptedFileKeyValueStore, MemoryKeyValueStore

__all__ = [
    "AuthAPI",
    "AsyncPravaClient",
    "PravaClientConfig",
    "RenewalConfig",
    "StorageConfig",
    "TelemetryConfig",
    "AccessDeniedError",
    "NetworkError",
    "PravaSDKError",
    "ServerError",
    "TimeoutError",
    "TokenRefreshError",
    "UnauthorizedError",
    "ApiErrorEvent",
    "ForcedLogoutEvent",
    "SessionEventBus",
    "get_event_bus",
    "SessionManager",
    "SessionObserver",
    "CredentialStore",
    "EncryptedFileKeyValueStore",
    "MemoryKeyValueStore",
]

__version__ = "0.1.0"
