"""Credential persistence for the Prava SDK.

A ``KeyValueStore`` holds string entries with a per-entry TTL. The
``CredentialStore`` on top of it owns the three session entries (access
credential, refresh credential, user snapshot) plus the user's locale,
and keeps the user snapshot's expiry in step with the access credential.
"""

from __future__ import annotations

import json
import os
import threading
import time
import weakref
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError as PydanticValidationError

from .config import StorageConfig
from .core.token_codec import decode_expiry
from .errors import InvalidConfigError
from .models import CredentialPair, StoredSession, User
from .telemetry import get_logger

if TYPE_CHECKING:
    from pydantic import SecretStr

    from .core.renewal import RenewalCoordinator

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_DATA_KEY = "userData"
LOCALE_KEY = "locale"

SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_DATA_KEY)

Clock = Callable[[], float]

# One CredentialStore per credential file, so clients sharing a file share
# its renewal coordinator.
_file_stores: weakref.WeakValueDictionary[Path, CredentialStore] = weakref.WeakValueDictionary()
_file_stores_lock = threading.Lock()


class KeyValueStore(Protocol):
    """Persistent string store with per-entry expiry."""

    def get(self, key: str) -> str | None:
        """Get a live entry, or None if absent or expired."""
        ...

    def set(self, key: str, value: str, ttl: float) -> None:
        """Write an entry that expires ``ttl`` seconds from now."""
        ...

    def set_many(self, entries: Mapping[str, str], ttl: float) -> None:
        """Write several entries sharing one expiry timestamp."""
        ...

    def remove(self, key: str) -> None:
        """Remove an entry; removing a missing key is a no-op."""
        ...

    def expires_at(self, key: str) -> float | None:
        """Expiry of a live entry as a Unix timestamp."""
        ...


class MemoryKeyValueStore:
    """In-process store, for tests and short-lived processes."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.RLock()

    def _live(self, key: str) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl: float) -> None:
        self.set_many({key: value}, ttl)

    def set_many(self, entries: Mapping[str, str], ttl: float) -> None:
        with self._lock:
            expires_at = self._clock() + ttl
            for key, value in entries.items():
                self._entries[key] = (value, expires_at)

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def expires_at(self, key: str) -> float | None:
        with self._lock:
            entry = self._live(key)
            return entry[1] if entry else None


class EncryptedFileKeyValueStore:
    """File-backed store, encrypted at rest with Fernet.

    The whole store is one encrypted JSON document mapping each key to
    ``{"value": ..., "expires_at": ...}``. A file that cannot be decrypted
    or parsed is treated as empty.

    The decoded document is kept in memory and the file is only read
    again when its stat signature changes, i.e. when another store or
    process replaced it.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        key: str | bytes,
        *,
        clock: Clock = time.time,
    ) -> None:
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise InvalidConfigError(
                "Storage encryption key must be a url-safe base64 32-byte key",
                field="encryption_key",
            ) from e
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.RLock()
        self._document: dict[str, dict[str, Any]] = {}
        self._signature: tuple[int, int, int] | None = None
        self._logger = get_logger()

    @staticmethod
    def generate_key() -> str:
        """Create a new encryption key for this store."""
        return Fernet.generate_key().decode("ascii")

    def _stat(self) -> tuple[int, int, int] | None:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)

    def _read(self) -> dict[str, dict[str, Any]]:
        try:
            token = self.path.read_bytes()
        except FileNotFoundError:
            return {}

        try:
            document = json.loads(self._fernet.decrypt(token))
        except (InvalidToken, ValueError):
            self._logger.warning("Discarding unreadable credential file", path=str(self.path))
            return {}

        if not isinstance(document, dict):
            return {}
        return {
            key: entry
            for key, entry in document.items()
            if isinstance(entry, dict)
            and isinstance(entry.get("value"), str)
            and isinstance(entry.get("expires_at"), int | float)
        }

    def _load(self) -> dict[str, dict[str, Any]]:
        signature = self._stat()
        if signature is None:
            self._document = {}
        elif signature != self._signature:
            self._document = self._read()
        self._signature = signature

        now = self._clock()
        return {key: entry for key, entry in self._document.items() if entry["expires_at"] > now}

    def _save(self, document: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        token = self._fernet.encrypt(json.dumps(document).encode("utf-8"))
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "wb") as f:
            f.write(token)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
        self._document = document
        self._signature = self._stat()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._load().get(key)
            return entry["value"] if entry else None

    def set(self, key: str, value: str, ttl: float) -> None:
        self.set_many({key: value}, ttl)

    def set_many(self, entries: Mapping[str, str], ttl: float) -> None:
        with self._lock:
            document = self._load()
            expires_at = self._clock() + ttl
            for key, value in entries.items():
                document[key] = {"value": value, "expires_at": expires_at}
            self._save(document)

    def remove(self, key: str) -> None:
        with self._lock:
            document = self._load()
            if document.pop(key, None) is not None:
                self._save(document)

    def expires_at(self, key: str) -> float | None:
        with self._lock:
            entry = self._load().get(key)
            return float(entry["expires_at"]) if entry else None


class CredentialStore:
    """Session credentials, user snapshot and locale on top of a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        config: StorageConfig | None = None,
    ) -> None:
        """Initialize credential store.

        Args:
            backend: Storage backend (in-memory if not provided).
            config: TTL configuration.
        """
        self.backend: KeyValueStore = backend or MemoryKeyValueStore()
        self.config = config or StorageConfig()
        # Set by coordinator_for; shared by every client using this store.
        self.coordinator: RenewalCoordinator | None = None
        self._logger = get_logger()

    @classmethod
    def from_config(cls, config: StorageConfig) -> CredentialStore:
        """Build a store with the backend the configuration asks for.

        File storage returns the store already open on the same file, if
        any, so that every client on one file renews through one coordinator.
        """
        if not config.path:
            return cls(MemoryKeyValueStore(), config)

        key: SecretStr | None = config.encryption_key
        if key is None:
            raise InvalidConfigError(
                "encryption_key is required for file storage",
                field="encryption_key",
            )

        path = Path(config.path).expanduser().resolve()
        with _file_stores_lock:
            store = _file_stores.get(path)
            if store is None:
                store = cls(EncryptedFileKeyValueStore(path, key.get_secret_value()), config)
                _file_stores[path] = store
        return store

    @property
    def access_token(self) -> str | None:
        """Current access credential."""
        return self.backend.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> str | None:
        """Current refresh credential."""
        return self.backend.get(REFRESH_TOKEN_KEY)

    @property
    def user(self) -> User | None:
        """Cached user snapshot, or None if absent or unreadable."""
        raw = self.backend.get(USER_DATA_KEY)
        if raw is None:
            return None
        try:
            return User.model_validate_json(raw)
        except PydanticValidationError:
            return None

    @property
    def locale(self) -> str | None:
        """Locale chosen by the user."""
        return self.backend.get(LOCALE_KEY)

    def set_locale(self, locale: str) -> None:
        """Remember the user's locale."""
        self.backend.set(LOCALE_KEY, locale, self.config.locale_ttl)

    def save_session(
        self,
        credentials: CredentialPair,
        user: User,
        *,
        expires_in_ms: int | None = None,
    ) -> None:
        """Store a new session after login, registration or OAuth completion.

        Args:
            credentials: Credential pair issued by the server.
            user: User snapshot to cache alongside it.
            expires_in_ms: Server-provided session lifetime in milliseconds.
        """
        ttl = expires_in_ms / 1000 if expires_in_ms else self.config.access_ttl
        self.backend.set_many(
            {
                ACCESS_TOKEN_KEY: credentials.access_token,
                USER_DATA_KEY: user.model_dump_json(by_alias=True),
            },
            ttl,
        )
        if credentials.refresh_token:
            self.backend.set(REFRESH_TOKEN_KEY, credentials.refresh_token, self.config.refresh_ttl)
        self._logger.info(
            "Session stored",
            user_id=user.id,
            has_refresh_token=credentials.refresh_token is not None,
        )

    def commit_renewal(self, access_token: str, refresh_token: str | None = None) -> None:
        """Store a renewed credential pair.

        The user snapshot is re-written with the access credential so the
        two expire together. The refresh credential is only replaced when
        the server rotated it.
        """
        entries = {ACCESS_TOKEN_KEY: access_token}
        existing_user = self.backend.get(USER_DATA_KEY)
        if existing_user is not None:
            entries[USER_DATA_KEY] = existing_user
        self.backend.set_many(entries, self.config.access_ttl)

        if refresh_token:
            self.backend.set(REFRESH_TOKEN_KEY, refresh_token, self.config.refresh_ttl)

    def clear(self) -> bool:
        """Destroy the stored session.

        Returns:
            True if there was anything to remove.
        """
        existed = any(self.backend.get(key) is not None for key in SESSION_KEYS)
        for key in SESSION_KEYS:
            self.backend.remove(key)
        return existed

    def snapshot(self) -> StoredSession | None:
        """Current stored session, or None without an access credential."""
        access_token = self.access_token
        if access_token is None:
            return None

        expiry_ms = decode_expiry(access_token)
        expires_at = None
        if expiry_ms is not None:
            try:
                expires_at = datetime.fromtimestamp(expiry_ms / 1000, tz=UTC)
            except (OverflowError, OSError, ValueError):
                expires_at = None

        return StoredSession(
            credentials=CredentialPair(
                access_token=access_token,
                refresh_token=self.refresh_token,
            ),
            user=self.user,
            expires_at=expires_at,
        )
