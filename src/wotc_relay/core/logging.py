"""Structured logging configuration for wotc-relay.

Provides structured JSON logging with job context propagation and
secret redaction using structlog.
"""
# ruff: noqa: ARG001  # Processor signatures required by structlog API

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

from wotc_relay.config.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

REDACTED = "[REDACTED]"

# Keys whose values never reach a log sink
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "secret",
        "mfa_secret",
        "token",
        "ssn",
        "answer",
        "backup_codes",
        "credentials",
    }
)


def redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask values of sensitive keys, including one level of nested dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else v)
                for k, v in value.items()
            }
    return event_dict


def add_environment_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add environment information to log entries."""
    event_dict["environment"] = get_settings().ENVIRONMENT
    return event_dict


def drop_color_message_key(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop the color_message key added by uvicorn."""
    event_dict.pop("color_message", None)
    return event_dict


def setup_logging(
    log_level: LogLevel | None = None,
    json_format: bool | None = None,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Override log level (default from settings)
        json_format: Use JSON output (default: True in production, False in dev)
        add_timestamp: Include timestamp in log entries
    """
    settings = get_settings()

    effective_level = log_level or settings.log_level
    effective_json = (
        json_format if json_format is not None else settings.ENVIRONMENT == "production"
    )
    numeric_level = getattr(logging, effective_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_environment_info,
        redact_secrets,
        drop_color_message_key,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if effective_json:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # Route standard library logging (uvicorn, sqlalchemy, asyncssh) through structlog
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "sqlalchemy", "asyncssh"]:
        logger = logging.getLogger(logger_name)
        logger.handlers = [handler]
        logger.propagate = False

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # asyncssh logs every channel open at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LogContext:
    """Context manager for adding temporary log context.

    Example:
        with LogContext(job_id=str(job.job_id), state_code="TX"):
            logger.info("submission_started")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
