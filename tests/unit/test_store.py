"""Unit tests for credential persistence."""

import os
import stat

import pytest
from cryptography.fernet import Fernet

from prava_sdk.config import DAY_SECONDS, StorageConfig
from prava_sdk.errors import InvalidConfigError
from prava_sdk.models import CredentialPair, User
from prava_sdk.store import (
    ACCESS_TOKEN_KEY,
    LOCALE_KEY,
    REFRESH_TOKEN_KEY,
    USER_DATA_KEY,
    CredentialStore,
    EncryptedFileKeyValueStore,
    MemoryKeyValueStore,
)


class _CountingFernet:
    """Fernet wrapper counting decryptions."""

    def __init__(self, fernet: Fernet) -> None:
        self._fernet = fernet
        self.decrypts = 0

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, token: bytes) -> bytes:
        self.decrypts += 1
        return self._fernet.decrypt(token)


class TestMemoryKeyValueStore:
    """Tests for the in-memory backend."""

    def test_set_and_get(self, clock) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        backend.set("k", "v", 10)
        assert backend.get("k") == "v"
        assert backend.expires_at("k") == clock.now + 10

    def test_entry_expires(self, clock) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        backend.set("k", "v", 10)
        clock.advance(10)
        assert backend.get("k") is None
        assert backend.expires_at("k") is None

    def test_set_many_shares_expiry(self, clock) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        backend.set_many({"a": "1", "b": "2"}, 60)
        assert backend.expires_at("a") == backend.expires_at("b")

    def test_remove_missing_key(self) -> None:
        backend = MemoryKeyValueStore()
        backend.remove("missing")
        assert backend.get("missing") is None


class TestEncryptedFileKeyValueStore:
    """Tests for the encrypted file backend."""

    def test_persists_across_instances(self, tmp_path, clock) -> None:
        key = EncryptedFileKeyValueStore.generate_key()
        path = tmp_path / "session.bin"

        EncryptedFileKeyValueStore(path, key, clock=clock).set("k", "secret-value", 60)
        reopened = EncryptedFileKeyValueStore(path, key, clock=clock)

        assert reopened.get("k") == "secret-value"
        assert b"secret-value" not in path.read_bytes()

    def test_file_is_private(self, tmp_path) -> None:
        path = tmp_path / "session.bin"
        store = EncryptedFileKeyValueStore(path, EncryptedFileKeyValueStore.generate_key())
        store.set("k", "v", 60)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_expired_entries_are_dropped(self, tmp_path, clock) -> None:
        store = EncryptedFileKeyValueStore(
            tmp_path / "session.bin",
            EncryptedFileKeyValueStore.generate_key(),
            clock=clock,
        )
        store.set("short", "v", 5)
        store.set("long", "v", 50)
        clock.advance(10)
        assert store.get("short") is None
        assert store.get("long") == "v"

    def test_wrong_key_reads_as_empty(self, tmp_path) -> None:
        path = tmp_path / "session.bin"
        EncryptedFileKeyValueStore(path, EncryptedFileKeyValueStore.generate_key()).set("k", "v", 60)

        other = EncryptedFileKeyValueStore(path, EncryptedFileKeyValueStore.generate_key())
        assert other.get("k") is None

    def test_corrupt_file_reads_as_empty(self, tmp_path) -> None:
        path = tmp_path / "session.bin"
        path.write_bytes(b"definitely not fernet")
        store = EncryptedFileKeyValueStore(path, EncryptedFileKeyValueStore.generate_key())

        assert store.get("k") is None
        store.set("k", "v", 60)
        assert store.get("k") == "v"

    def test_reads_are_served_from_memory(self, tmp_path) -> None:
        path = tmp_path / "session.bin"
        key = EncryptedFileKeyValueStore.generate_key()
        EncryptedFileKeyValueStore(path, key).set("k", "v1", 60)
        store = EncryptedFileKeyValueStore(path, key)
        counting = _CountingFernet(store._fernet)
        store._fernet = counting

        assert store.get("k") == "v1"
        assert store.get("k") == "v1"
        assert store.expires_at("k") is not None
        store.set("other", "x", 60)
        assert store.get("other") == "x"

        assert counting.decrypts == 1

    def test_sees_writes_from_another_instance(self, tmp_path) -> None:
        path = tmp_path / "session.bin"
        key = EncryptedFileKeyValueStore.generate_key()
        first = EncryptedFileKeyValueStore(path, key)
        second = EncryptedFileKeyValueStore(path, key)

        first.set("k", "v1", 60)
        assert second.get("k") == "v1"
        second.set("k", "v2", 60)
        assert first.get("k") == "v2"
        path.unlink()
        assert first.get("k") is None

    def test_write_is_flushed_to_disk(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        synced: list[int] = []
        real_fsync = os.fsync

        def fsync(fd: int) -> None:
            synced.append(fd)
            real_fsync(fd)

        monkeypatch.setattr(os, "fsync", fsync)
        store = EncryptedFileKeyValueStore(tmp_path / "session.bin", EncryptedFileKeyValueStore.generate_key())
        store.set("k", "v", 60)

        assert len(synced) == 1
        assert not (tmp_path / "session.bin.tmp").exists()

    def test_invalid_key(self, tmp_path) -> None:
        with pytest.raises(InvalidConfigError) as exc_info:
            EncryptedFileKeyValueStore(tmp_path / "session.bin", "too-short")
        assert exc_info.value.details["field"] == "encryption_key"


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_save_session(self, store: CredentialStore, user: User) -> None:
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)

        assert store.access_token == "a1"
        assert store.refresh_token == "r1"
        assert store.user == user

    def test_save_session_ttls(self, clock, user: User) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        store = CredentialStore(backend)
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)

        assert backend.expires_at(ACCESS_TOKEN_KEY) == clock.now + DAY_SECONDS
        assert backend.expires_at(USER_DATA_KEY) == clock.now + DAY_SECONDS
        assert backend.expires_at(REFRESH_TOKEN_KEY) == clock.now + 30 * DAY_SECONDS

    def test_server_lifetime_overrides_access_ttl(self, clock, user: User) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        store = CredentialStore(backend)
        store.save_session(CredentialPair(access_token="a1"), user, expires_in_ms=3_600_000)

        assert backend.expires_at(ACCESS_TOKEN_KEY) == clock.now + 3600
        assert backend.expires_at(USER_DATA_KEY) == clock.now + 3600
        assert store.refresh_token is None

    def test_renewal_keeps_user_snapshot_in_step(self, clock, user: User) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        store = CredentialStore(backend)
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)

        clock.advance(1000)
        store.commit_renewal("a2", "r2")

        assert backend.expires_at(ACCESS_TOKEN_KEY) == clock.now + DAY_SECONDS
        assert backend.expires_at(USER_DATA_KEY) == backend.expires_at(ACCESS_TOKEN_KEY)
        assert store.refresh_token == "r2"
        assert store.user == user

    def test_renewal_without_rotation_keeps_refresh_token(self, store: CredentialStore, user: User) -> None:
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)
        store.commit_renewal("a2")

        assert store.access_token == "a2"
        assert store.refresh_token == "r1"

    def test_clear_is_idempotent(self, store: CredentialStore, user: User) -> None:
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)

        assert store.clear() is True
        assert store.clear() is False
        assert store.access_token is None
        assert store.refresh_token is None
        assert store.user is None

    def test_clear_keeps_locale(self, store: CredentialStore, user: User) -> None:
        store.set_locale("ru")
        store.save_session(CredentialPair(access_token="a1"), user)
        store.clear()
        assert store.locale == "ru"

    def test_locale_ttl(self, clock) -> None:
        backend = MemoryKeyValueStore(clock=clock)
        CredentialStore(backend).set_locale("en")
        assert backend.expires_at(LOCALE_KEY) == clock.now + 365 * DAY_SECONDS

    def test_unreadable_user_snapshot(self, store: CredentialStore) -> None:
        store.backend.set(USER_DATA_KEY, "{not json", 60)
        assert store.user is None

    def test_snapshot(self, store: CredentialStore, user: User, token_factory) -> None:
        assert store.snapshot() is None

        store.save_session(CredentialPair(access_token=token_factory(60), refresh_token="r1"), user)
        session = store.snapshot()

        assert session is not None
        assert session.credentials.refresh_token == "r1"
        assert session.user == user
        assert session.expires_at is not None
        assert not session.is_expired

    def test_snapshot_without_expiry(self, store: CredentialStore, user: User) -> None:
        store.save_session(CredentialPair(access_token="opaque"), user)
        session = store.snapshot()
        assert session is not None
        assert session.expires_at is None
        assert not session.is_expired

    def test_from_config_memory(self) -> None:
        store = CredentialStore.from_config(StorageConfig())
        assert isinstance(store.backend, MemoryKeyValueStore)

    def test_from_config_file(self, tmp_path, user: User) -> None:
        config = StorageConfig(
            path=str(tmp_path / "session.bin"),
            encryption_key=EncryptedFileKeyValueStore.generate_key(),
        )
        store = CredentialStore.from_config(config)
        store.save_session(CredentialPair(access_token="a1", refresh_token="r1"), user)

        reopened = CredentialStore.from_config(config)
        assert isinstance(reopened.backend, EncryptedFileKeyValueStore)
        assert reopened.access_token == "a1"
        assert reopened.user == user
        assert reopened is store

    def test_from_config_memory_stores_are_separate(self) -> None:
        assert CredentialStore.from_config(StorageConfig()) is not CredentialStore.from_config(StorageConfig())

    def test_from_config_same_file_same_store(self, tmp_path) -> None:
        key = EncryptedFileKeyValueStore.generate_key()
        first = CredentialStore.from_config(StorageConfig(path=str(tmp_path / "session.bin"), encryption_key=key))
        second = CredentialStore.from_config(
            StorageConfig(path=f"{tmp_path}/cache/../session.bin", encryption_key=key)
        )
        other = CredentialStore.from_config(StorageConfig(path=str(tmp_path / "other.bin"), encryption_key=key))

        assert first is second
        assert other is not first
