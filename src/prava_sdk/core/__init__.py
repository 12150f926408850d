"""Core components for the Prava SDK.

Credential codec, renewal coordinator, request pipeline and error factory.
"""

from __future__ import annotations

from .token_codec import decode_expiry, is_expired, is_expiring_soon
from .errors import ErrorFactory
from .renewal import (
    RenewalCoordinator,
    RenewalOperation,
    RenewalState,
    RenewalTrigger,
    coordinator_for,
)
from .pipeline import (
    BearerAuthMiddleware,
    CredentialRenewalMiddleware,
    ErrorEventMiddleware,
    LocaleMiddleware,
    MiddlewarePipeline,
    default_middlewares,
)

__all__ = [
    "decode_expiry",
    "is_expired",
    "is_expiring_soon",
    "ErrorFactory",
    "RenewalCoordinator",
    "RenewalOperation",
    "RenewalState",
    "RenewalTrigger",
    "coordinator_for",
    "BearerAuthMiddleware",
    "CredentialRenewalMiddleware",
    "ErrorEventMiddleware",
    "LocaleMiddleware",
    "MiddlewarePipeline",
    "default_middlewares",
]
