"""Structured logging on top of structlog with correlation ID propagation.

Every component asks for its own logger via ``get_logger("COMPONENT")`` and logs
with keyword context, e.g. ``logger.info("Run completed", thread_id=..., run_id=...)``.
The correlation ID of the current request (if any) is attached to every line.
"""

import logging
import os
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, MutableMapping, Optional

import structlog
from pydantic import BaseModel, Field
from structlog.stdlib import BoundLogger

# Context variable to store correlation ID across async calls
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3", "google")


def get_stream() -> str:
    """Return the configured output stream name (stdout or stderr)."""
    return os.getenv("STREAM", "stdout")


def get_logging_level() -> str:
    """Return the configured logging level name."""
    return os.getenv("LOGGING_LEVEL", "INFO").upper()


class LoggingContext(BaseModel):
    """Fields bound into every log line."""

    stream: str = Field(default_factory=get_stream)
    logging_level: str = Field(default_factory=get_logging_level)


def set_context_fields(context: LoggingContext) -> None:
    structlog.contextvars.bind_contextvars(**context.model_dump())


def clear_context_fields() -> None:
    structlog.contextvars.clear_contextvars()


def _add_correlation_id(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def configure_structlog(context: Optional[LoggingContext] = None) -> None:
    """Configure structlog and the stdlib root logger.

    ``LOG_FORMAT=keyvalue`` switches the renderer from JSON to key=value pairs.
    """
    context = context or LoggingContext()
    level = logging.getLevelName(context.logging_level)
    if not isinstance(level, int):
        level = logging.INFO

    stream = sys.stderr if context.stream == "stderr" else sys.stdout
    logging.basicConfig(format="%(message)s", stream=stream, level=level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, level))

    if os.getenv("LOG_FORMAT", "json") == "keyvalue":
        renderer: Any = structlog.processors.KeyValueRenderer(key_order=["message"])
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_correlation_id,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    clear_context_fields()
    set_context_fields(context)


def get_logger(name: str) -> BoundLogger:
    return structlog.stdlib.get_logger(name)


def mask_secret(secret: Optional[str]) -> Optional[str]:
    """Reduce a secret to something safe to log: first 3 characters and its length."""
    if not secret:
        return None
    return f"{secret[:3]}...({len(secret)})"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def get_or_create_correlation_id() -> str:
    """Get existing correlation ID or create a new one."""
    correlation_id = get_correlation_id()
    if correlation_id is None:
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)
    return correlation_id


class CorrelationContext:
    """Context manager scoping a correlation ID to one request."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.token: Optional[Token[Optional[str]]] = None

    def __enter__(self) -> str:
        self.token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.token is not None:
            _correlation_id.reset(self.token)
