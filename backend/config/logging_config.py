"""
Structured logging for the triage backend.

Every entry carries an ISO 8601 timestamp, level, logger name and any
context bound for the current request. Passwords, tokens and image
payloads are masked by `redact_sensitive` before rendering; emails are
reduced to their domain at the call site with `email_domain`.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from config.config import Settings, get_settings

REDACTED = "***REDACTED***"

# Field names whose values never reach log output.
SENSITIVE_KEYS = frozenset({
    "password",
    "access_token",
    "api_key",
    "ai_gateway_api_key",
    "arango_password",
    "authorization",
    "image",
    "image_url",
})

NOISY_LOGGERS = ("uvicorn.access", "httpx", "openai", "urllib3", "arango")


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else _mask(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def redact_sensitive(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask sensitive fields, including ones nested in bound dicts."""
    return {
        key: REDACTED if key.lower() in SENSITIVE_KEYS else _mask(value)
        for key, value in event_dict.items()
    }


def _renderer(log_format: str) -> list[Processor]:
    """Exception formatting plus the final renderer for the chosen format."""
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(settings: Settings | None = None) -> None:
    """
    Route structlog and stdlib logging through one pipeline.

    `log_format="json"` emits one JSON object per line for aggregation;
    `"console"` prints human-readable lines.
    """
    settings = settings or get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_sensitive,
    ]
    rendering = _renderer(settings.log_format)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *rendering],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger named after the calling module."""
    return structlog.get_logger(name)


def log_request_context(
    request_id: str,
    method: str,
    path: str,
    **extra: Any,
) -> None:
    """
    Bind request context to all subsequent log entries in this context.

    Args:
        request_id: Unique request identifier.
        method: HTTP method.
        path: Request path.
        **extra: Additional context fields.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        http_method=method,
        http_path=path,
        **extra,
    )


def email_domain(email: str) -> str:
    """Reduce an email address to its domain for log output."""
    return email.rpartition("@")[2] or "unknown"
