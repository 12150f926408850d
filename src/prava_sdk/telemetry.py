"""Logging and tracing for the Prava SDK.

Structured logging through structlog and spans through OpenTelemetry.
Credentials must never reach either: the ``redact_credentials`` processor
masks any credential-looking field that slips into a log call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator, MutableMapping

    from .config import TelemetryConfig

INSTRUMENTATION_NAME = "prava-sdk"
INSTRUMENTATION_VERSION = "0.1.0"

REDACTED = "[redacted]"
CREDENTIAL_FIELDS = frozenset(
    {"access_token", "refresh_token", "authorization", "password", "id_token", "token"}
)

_tracer: trace.Tracer | None = None
_logger: structlog.BoundLogger | None = None


def get_tracer() -> trace.Tracer:
    """Get or create the SDK tracer."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(INSTRUMENTATION_NAME, INSTRUMENTATION_VERSION)
    return _tracer


def get_logger() -> structlog.BoundLogger:
    """Get or create the SDK logger."""
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(INSTRUMENTATION_NAME)
    return _logger


def redact_credentials(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking credential values."""
    for key in event_dict.keys() & CREDENTIAL_FIELDS:
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def configure_telemetry(config: TelemetryConfig) -> None:
    """Configure SDK logging and tracing.

    With telemetry disabled no spans are recorded; logging stays on at the
    configured level.

    Args:
        config: Telemetry configuration.
    """
    global _tracer, _logger

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_credentials,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[config.log_level]
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger = structlog.get_logger(config.service_name)

    if config.enabled:
        _tracer = trace.get_tracer(config.service_name, INSTRUMENTATION_VERSION)
    else:
        _tracer = trace.NoOpTracer()


@contextmanager
def trace_operation(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Run a block inside a span.

    SDK errors leaving the block are tagged with their error code.

    Args:
        name: Span name.
        attributes: Optional span attributes.

    Yields:
        The active span.
    """
    with get_tracer().start_as_current_span(
        name,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            code = getattr(e, "code", None)
            if code is not None:
                span.set_attribute("prava.error.code", str(code))
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
