"""Configuration for the Prava SDK.

Uses Pydantic v2 frozen models with defaults matching the web client:
10 second network timeout, 1 day access credential, 30 day refresh
credential and a 5 minute proactive renewal horizon.
"""

from __future__ import annotations

from typing import Annotated, Any, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    field_validator,
    model_validator,
)

DAY_SECONDS = 24 * 60 * 60


class StorageConfig(BaseModel):
    """Credential persistence configuration."""

    model_config = ConfigDict(frozen=True)

    access_ttl: Annotated[int, Field(gt=0)] = DAY_SECONDS
    refresh_ttl: Annotated[int, Field(gt=0)] = 30 * DAY_SECONDS
    locale_ttl: Annotated[int, Field(gt=0)] = 365 * DAY_SECONDS

    # Encrypted file backend (memory backend when path is unset)
    path: str | None = None
    encryption_key: SecretStr | None = None

    @model_validator(mode="after")
    def validate_file_backend(self) -> Self:
        """A persistent path needs a key to encrypt it with."""
        if self.path and self.encryption_key is None:
            msg = "encryption_key is required when storage path is set"
            raise ValueError(msg)
        return self


class RenewalConfig(BaseModel):
    """Credential renewal configuration."""

    model_config = ConfigDict(frozen=True)

    proactive_enabled: bool = True
    proactive_horizon: Annotated[int, Field(ge=0, le=DAY_SECONDS)] = 300  # 5 minutes

    @property
    def proactive_horizon_ms(self) -> int:
        """Horizon in milliseconds, the unit the token codec works in."""
        return self.proactive_horizon * 1000


class TelemetryConfig(BaseModel):
    """Logging and tracing configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "prava-sdk"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unsupported log level: {v}"
            raise ValueError(msg)
        return level


class PravaClientConfig(BaseModel):
    """Main configuration for the Prava SDK client."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    # Required
    base_url: HttpUrl

    # HTTP settings
    timeout: Annotated[float, Field(gt=0, le=300)] = 10.0
    connect_timeout: Annotated[float, Field(gt=0, le=60)] = 10.0

    # Auth endpoints, relative to base_url
    refresh_endpoint: str = "/api/v1/auth/refresh"
    logout_endpoint: str = "/api/v1/auth/logout"
    auth_prefix: str = "/api/v1/auth"

    # Localization
    default_locale: str = "uzl"
    supported_locales: tuple[str, ...] = ("uzl", "uzc", "ru", "en")

    # Sub-configurations
    storage: StorageConfig = Field(default_factory=StorageConfig)
    renewal: RenewalConfig = Field(default_factory=RenewalConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @field_validator("refresh_endpoint", "logout_endpoint", "auth_prefix")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Endpoints are paths on the API host."""
        if not v.startswith("/"):
            msg = f"Endpoint must be an absolute path: {v}"
            raise ValueError(msg)
        return v.rstrip("/") or "/"

    @model_validator(mode="after")
    def validate_default_locale(self) -> Self:
        """Default locale must be one of the supported ones."""
        if self.default_locale not in self.supported_locales:
            msg = (
                f"default_locale {self.default_locale!r} not in "
                f"supported_locales {self.supported_locales}"
            )
            raise ValueError(msg)
        return self

    @property
    def base_url_str(self) -> str:
        """Get base URL as string without trailing slash."""
        return str(self.base_url).rstrip("/")

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values."""
        data = self.model_dump()
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, prefix: str = "PRAVA_") -> Self:
        """Create config from environment variables."""
        import os

        def get_env(key: str, default: Any = None) -> Any:
            return os.environ.get(f"{prefix}{key}", default)

        base_url = get_env("BASE_URL")
        if not base_url:
            msg = f"{prefix}BASE_URL environment variable is required"
            raise ValueError(msg)

        storage: dict[str, Any] = {}
        if get_env("STORAGE_PATH"):
            storage["path"] = get_env("STORAGE_PATH")
            storage["encryption_key"] = get_env("STORAGE_KEY")

        return cls(
            base_url=base_url,
            timeout=float(get_env("TIMEOUT", "10.0")),
            default_locale=get_env("LOCALE", "uzl"),
            storage=StorageConfig(**storage),
            telemetry=TelemetryConfig(log_level=get_env("LOG_LEVEL", "INFO")),
        )
