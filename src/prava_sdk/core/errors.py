"""Centralized error factory for the Prava SDK.

Maps HTTP responses and transport exceptions onto the SDK error hierarchy
so every caller sees the same classification.
"""

from __future__ import annotations

import uuid
from typing import Any

import httpx

from ..errors import (
    AccessDeniedError,
    ErrorCode,
    NetworkError,
    NotFoundError,
    PravaSDKError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenRefreshError,
    UnauthorizedError,
    ValidationError,
)

CORRELATION_HEADER = "X-Request-ID"


class ErrorFactory:
    """Centralized error creation with consistent structure.

    All errors created through this factory include:
    - Standardized error codes
    - The HTTP status when one was received
    - A correlation ID (server-provided when available)
    """

    @staticmethod
    def generate_correlation_id() -> str:
        """Generate a unique correlation ID."""
        return str(uuid.uuid4())

    @staticmethod
    def _correlation_id(response: httpx.Response | None, explicit: str | None) -> str:
        if explicit:
            return explicit
        if response is not None and response.headers.get(CORRELATION_HEADER):
            return response.headers[CORRELATION_HEADER]
        return ErrorFactory.generate_correlation_id()

    @staticmethod
    def extract_message(response: httpx.Response) -> str | None:
        """Pull a human-readable message out of an error body."""
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        for key in ("message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @staticmethod
    def from_http_response(
        response: httpx.Response,
        *,
        correlation_id: str | None = None,
    ) -> PravaSDKError:
        """Create SDK error from HTTP response.

        Args:
            response: HTTP response object.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            Appropriate PravaSDKError subclass.
        """
        status = response.status_code
        correlation_id = ErrorFactory._correlation_id(response, correlation_id)
        message = ErrorFactory.extract_message(response)
        details: dict[str, Any] = {"url": str(response.request.url)} if _has_request(response) else {}

        if status == 401:
            return UnauthorizedError(
                message or "Authentication required",
                correlation_id=correlation_id,
                details=details,
            )

        if status == 403:
            return AccessDeniedError(
                message or "Access denied",
                correlation_id=correlation_id,
                details=details,
            )

        if status == 404:
            return NotFoundError(
                message or "Resource not found",
                correlation_id=correlation_id,
                details=details,
            )

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            return RateLimitError(
                message or "Rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                correlation_id=correlation_id,
            )

        if status >= 500:
            return ServerError(
                message or f"Server error: {status}",
                status_code=status,
                correlation_id=correlation_id,
            )

        return ValidationError(
            message or f"Request failed with status {status}",
            status_code=status,
            correlation_id=correlation_id,
            details=details,
        )

    @staticmethod
    def from_exception(
        exc: Exception,
        *,
        correlation_id: str | None = None,
    ) -> PravaSDKError:
        """Create SDK error from exception.

        Args:
            exc: Original exception.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            Appropriate PravaSDKError subclass.
        """
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()

        if isinstance(exc, PravaSDKError):
            # Already an SDK error, just ensure correlation ID
            if exc.correlation_id is None:
                exc.correlation_id = correlation_id
            return exc

        if isinstance(exc, httpx.TimeoutException):
            error: PravaSDKError = TimeoutError(
                f"Request timed out: {exc}",
                correlation_id=correlation_id,
            )
            error.__cause__ = exc
            return error

        if isinstance(exc, httpx.ConnectError):
            return NetworkError(
                f"Connection failed: {exc}",
                correlation_id=correlation_id,
                code=ErrorCode.CONNECTION_ERROR,
                cause=exc,
            )

        if isinstance(exc, httpx.HTTPStatusError):
            return ErrorFactory.from_http_response(
                exc.response,
                correlation_id=correlation_id,
            )

        if isinstance(exc, httpx.HTTPError):
            return NetworkError(
                f"HTTP error: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        return NetworkError(
            f"Unexpected error: {exc}",
            correlation_id=correlation_id,
            cause=exc,
        )

    @staticmethod
    def refresh_failed(
        message: str,
        *,
        response: httpx.Response | None = None,
        cause: Exception | None = None,
    ) -> TokenRefreshError:
        """Create the error shared by every waiter of a failed renewal.

        Args:
            message: Error message.
            response: Renewal response, when the server answered.
            cause: Underlying exception, when the call itself failed.

        Returns:
            TokenRefreshError carrying the renewal status when known.
        """
        details: dict[str, Any] = {}
        if cause is not None:
            details["cause"] = str(cause)
        error = TokenRefreshError(
            message,
            status_code=response.status_code if response is not None else 401,
            correlation_id=ErrorFactory._correlation_id(response, None),
            details=details,
        )
        if cause is not None:
            error.__cause__ = cause
        return error


def _has_request(response: httpx.Response) -> bool:
    try:
        response.request
    except RuntimeError:
        return False
    return True
