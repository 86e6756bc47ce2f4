"""Structured logging for phase timing.

Library code logs through structlog. Until the host application opts in,
get_logger() only routes structlog events into stdlib logging (event name as
the message, fields as ``extra``), so whatever handlers the host installed
receive them untouched.

Applications that want this package's own output call configure_logging()
once at startup:
- ``current.jsonl`` in ``config.log_dir`` receives INFO and above as JSON,
  so every completion record lands there regardless of console verbosity
- stderr receives events at ``config.log_level``, pretty-printed or as JSON

Both outputs carry a UTC timestamp and a ``component`` field (last segment of
the logger name).
"""

from __future__ import annotations

import logging
import logging.handlers
import pathlib
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from phase_timing.config import TimingConfig

LOG_FILE_NAME = "current.jsonl"
_MAX_LOG_BYTES = 50 * 1024 * 1024
_BACKUP_COUNT = 5

# Transport chatter from the Elasticsearch sink's client stack
_QUIET_LOGGERS = {
    "elastic_transport": logging.ERROR,
    "elasticsearch": logging.ERROR,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Set ``component``: "phase_timing.intercept.interceptor" becomes "interceptor".

    structlog events carry the logger name in the event dict; records from
    plain stdlib loggers only have it on the logger object (which can be None
    for third-party libraries during interpreter shutdown).
    """
    name = event_dict.get("logger") or getattr(logger, "name", None)
    event_dict["component"] = name.split(".")[-1] if name else "unknown"
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _add_component,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _foreign_pre_chain() -> list[Any]:
    """Processors applied to records from stdlib loggers."""
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_timestamp,
        _add_component,
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_foreign_pre_chain(),
    )


def _configure_file_handler(log_dir: pathlib.Path) -> logging.handlers.RotatingFileHandler:
    """Rotating JSON-lines handler at INFO level.

    Args:
        log_dir: Directory for the log file; created when missing.

    Returns:
        Configured RotatingFileHandler.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_dir / LOG_FILE_NAME),
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handler.setLevel(logging.INFO)
    return handler


def _configure_console_handler(log_format: str, level: int) -> logging.StreamHandler[Any]:
    """Stderr handler.

    Args:
        log_format: "console" for pretty output, "json" for JSON lines.
        level: Minimum level shown.

    Returns:
        Configured StreamHandler.
    """
    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    handler.setFormatter(_formatter(renderer))
    handler.setLevel(level)
    return handler


def configure_logging(config: TimingConfig | None = None) -> None:
    """Install this package's handlers on the root logger and configure structlog.

    Replaces existing root handlers, so only applications that let this
    package own their logging should call it.

    Args:
        config: Source of log_dir, log_level and log_format; defaults to
            the settings singleton.
    """
    if config is None:
        from phase_timing.config import get_settings  # noqa: PLC0415

        config = get_settings()
    level = getattr(logging, config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    # Handlers gate output; the root logger passes everything through.
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(_configure_file_handler(config.log_dir))
    root_logger.addHandler(_configure_console_handler(config.log_format, level))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    structlog.configure(
        processors=[*_shared_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _configure_passthrough() -> None:
    """Route structlog events to stdlib logging without touching its handlers."""
    structlog.configure(
        processors=[*_shared_processors(), structlog.stdlib.render_to_log_kwargs],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Loggers pick up configure_logging() if the application calls it later
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:  # Returns structlog.stdlib.BoundLogger
    """Get a structured logger.

    If structlog is not configured yet, events are passed through to stdlib
    logging; root handlers and levels are left to the application.

    Args:
        name: Logger name, usually the calling module's ``__name__``.

    Returns:
        structlog BoundLogger.

    Example:
        >>> from phase_timing.telemetry import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("request_completed", request_id="abc", total_ms=40.0)
    """
    if not structlog.is_configured():
        _configure_passthrough()
    return structlog.get_logger(name)
