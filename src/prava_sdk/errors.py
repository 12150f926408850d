"""Error classes for the Prava SDK.

Structured error hierarchy with error codes, HTTP status and correlation
IDs. Every request made through the client either returns a response or
raises one of these.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes for the Prava SDK."""

    # Authentication errors (1xxx)
    TOKEN_REFRESH_FAILED = "AUTH_1003"
    UNAUTHORIZED = "AUTH_1005"
    ACCESS_DENIED = "AUTH_1006"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    INVALID_CONFIG = "VAL_2002"
    NOT_FOUND = "VAL_2005"

    # Network errors (3xxx)
    NETWORK_ERROR = "NET_3001"
    TIMEOUT_ERROR = "NET_3002"
    CONNECTION_ERROR = "NET_3003"

    # Rate limiting (4xxx)
    RATE_LIMITED = "RATE_4001"

    # Server errors (5xxx)
    SERVER_ERROR = "SRV_5001"
    SERVICE_UNAVAILABLE = "SRV_5002"


class PravaSDKError(Exception):
    """Base error for the Prava SDK with structured error information."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.status_code = status_code
        self.correlation_id = correlation_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class UnauthorizedError(PravaSDKError):
    """Request was rejected as unauthenticated and could not be recovered."""

    def __init__(
        self,
        message: str = "Authentication required",
        *,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
            correlation_id=correlation_id,
            details=details,
        )


class TokenRefreshError(PravaSDKError):
    """Failed to renew the credential pair."""

    def __init__(
        self,
        message: str = "Failed to refresh token",
        *,
        status_code: int | None = 401,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TOKEN_REFRESH_FAILED,
            status_code=status_code,
            correlation_id=correlation_id,
            details=details,
        )


class AccessDeniedError(PravaSDKError):
    """Authenticated, but not allowed to perform this action."""

    def __init__(
        self,
        message: str = "Access denied",
        *,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.ACCESS_DENIED,
            status_code=403,
            correlation_id=correlation_id,
            details=details,
        )


class ValidationError(PravaSDKError):
    """Request was rejected as invalid."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 400,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=status_code,
            correlation_id=correlation_id,
            details=details,
        )


class NotFoundError(PravaSDKError):
    """Requested resource does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        *,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.NOT_FOUND,
            status_code=404,
            correlation_id=correlation_id,
            details=details,
        )


class NetworkError(PravaSDKError):
    """Network request failed before a response was received."""

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            code,
            correlation_id=correlation_id,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class TimeoutError(PravaSDKError):
    """Request timed out."""

    def __init__(
        self,
        message: str = "Request timed out",
        *,
        correlation_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TIMEOUT_ERROR,
            status_code=408,
            correlation_id=correlation_id,
            details={"timeout_seconds": timeout_seconds} if timeout_seconds else None,
        )


class RateLimitError(PravaSDKError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: int | None = None,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.RATE_LIMITED,
            status_code=429,
            correlation_id=correlation_id,
            details={"retry_after": retry_after} if retry_after else None,
        )
        self.retry_after = retry_after


class InvalidConfigError(PravaSDKError):
    """Invalid SDK configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIG,
            details={"field": field} if field else None,
        )


class ServerError(PravaSDKError):
    """Server-side error."""

    def __init__(
        self,
        message: str = "Server error",
        *,
        status_code: int = 500,
        correlation_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.SERVER_ERROR if status_code != 503 else ErrorCode.SERVICE_UNAVAILABLE,
            status_code=status_code,
            correlation_id=correlation_id,
        )
