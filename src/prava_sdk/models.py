"""Pydantic models for the Prava SDK.

Wire payloads of the auth endpoints use camelCase; models expose
snake_case attributes and accept either form.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CredentialPair(_WireModel):
    """Access credential plus the optional refresh credential."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None


class User(_WireModel):
    """Snapshot of the signed-in user as returned by the auth endpoints."""

    model_config = ConfigDict(extra="allow")

    id: int
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    email: str | None = None
    preferred_language: str | None = None
    role: str | None = None


class AuthData(_WireModel):
    """Result of login, registration or OAuth completion."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    user: User
    # Milliseconds, as sent by the server
    expires_in: int | None = Field(default=None, gt=0)

    @property
    def credentials(self) -> CredentialPair:
        """Credential pair carried by this payload."""
        return CredentialPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
        )


class RefreshResponse(_WireModel):
    """Body of a successful renewal call.

    The server may wrap the pair in a ``data`` envelope or send it at the
    top level; ``from_payload`` accepts both.
    """

    access_token: str | None = None
    refresh_token: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        """Extract the credential pair from a renewal response body."""
        if not isinstance(payload, dict):
            return cls()
        data = payload.get("data")
        nested = cls.model_validate(data) if isinstance(data, dict) else cls()
        top = cls.model_validate(payload)
        return cls(
            access_token=nested.access_token or top.access_token,
            refresh_token=nested.refresh_token or top.refresh_token,
        )


class StoredSession(BaseModel):
    """Credentials and user snapshot currently held in the credential store."""

    model_config = ConfigDict(frozen=True)

    credentials: CredentialPair
    user: User | None = None
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        """Whether the access credential's own expiry has passed."""
        if self.expires_at is None:
            return False
        return datetime.now(UTC) >= self.expires_at


class ApiEnvelope(BaseModel):
    """Standard ``{success, message, data}`` response wrapper."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    success: bool = True
    message: str | None = None
    data: Any = None

    @classmethod
    def unwrap(cls, payload: Any) -> Any:
        """Return ``data`` when the payload is an envelope, else the payload."""
        if isinstance(payload, dict) and "data" in payload:
            return cls.model_validate(payload).data
        return payload
