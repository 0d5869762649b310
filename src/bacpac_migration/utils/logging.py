"""Structured logging for BACPAC Bridge.

structlog builds every event; stdlib logging fans it out to two sinks, each
rendered by its own ``structlog.stdlib.ProcessorFormatter``:

- the console, through Rich, human-readable
- an optional log file, one JSON object per line (or plain text)

``configure_logging`` may be called again once the configuration file is
loaded; handlers from the previous call are closed and replaced.
"""

import json
import logging
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.typing import EventDict, Processor, WrappedLogger

from bacpac_migration import __version__

APP_NAME = "bacpac-bridge"

# Lowest level any sink accepts; payload logging only runs when this is DEBUG
_enabled_level = logging.WARNING

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp file records with the tool name and version."""
    event_dict["app"] = APP_NAME
    event_dict["version"] = __version__
    return event_dict


def _file_formatter(log_format: str) -> structlog.stdlib.ProcessorFormatter:
    if log_format == "json":
        renderer: list[Processor] = [
            add_app_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=False)]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderer],
    )


def configure_logging(
    level: str = "WARNING",
    log_format: str = "json",
    log_file: str | Path | None = None,
    file_level: str = "DEBUG",
) -> None:
    """Configure console and file logging.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log file format, 'json' or 'console'
        log_file: Log file path; None logs to the console only
        file_level: Log file level
    """
    global _enabled_level

    console_level = getattr(logging, level.upper(), logging.WARNING)
    file_log_level = getattr(logging, file_level.upper(), logging.DEBUG)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG)

    # RichHandler keeps log lines from tearing the progress tables
    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    rich_handler.setLevel(console_level)
    rich_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
        )
    )
    root_logger.addHandler(rich_handler)

    _enabled_level = console_level
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(_file_formatter(log_format))
        root_logger.addHandler(file_handler)
        _enabled_level = min(console_level, file_log_level)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(_enabled_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Loggers must follow a reconfiguration after the config file loads
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def log_arm_call(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
    request_id: str | None = None,
) -> None:
    """Log one Azure Resource Manager call.

    The query string is dropped from the URL (it only carries the API
    version). Throttling and server errors are warnings since the caller
    may retry them; other client errors are surfaced by the raised exception.
    """
    fields = {
        "method": method,
        "path": url.split("?", 1)[0],
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        "request_id": request_id,
    }
    if status_code == 429 or status_code >= 500:
        logger.warning("arm_call_retryable_error", **fields)
    elif status_code >= 400:
        logger.info("arm_call_rejected", **fields)
    else:
        logger.debug("arm_call", **fields)


def log_error(
    logger: structlog.stdlib.BoundLogger, error: BaseException, context: str, **extra: Any
) -> None:
    """Log an exception with its traceback and where it surfaced."""
    logger.error(
        "error_occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        context=context,
        exc_info=error,
        **extra,
    )


SENSITIVE_FIELDS = {
    "password",
    "secret",
    "storagekey",
    "storage_key",
    "accountkey",
    "account_key",
    "signature",
    "token",
    "authorization",
}


def sanitize_payload(payload: Any, max_depth: int = 10) -> Any:
    """Redact sensitive fields in a payload before it is logged or shown.

    Keys are matched case-insensitively as substrings, so both
    ``administratorLoginPassword`` and ``storageKey`` are caught.

    Args:
        payload: The payload to sanitize (dict, list, or primitive)
        max_depth: Maximum recursion depth

    Returns:
        Sanitized copy of the payload with sensitive values redacted
    """
    if max_depth <= 0 and isinstance(payload, (dict, list)):
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(payload, dict):
        return {
            key: (
                "[REDACTED]"
                if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS)
                else sanitize_payload(value, max_depth - 1)
            )
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item, max_depth - 1) for item in payload]
    return payload


def truncate_payload(payload: Any, max_size: int = 10000) -> str:
    """Serialize a payload as JSON, cut to ``max_size`` characters."""
    text = json.dumps(payload, indent=2, default=str)
    if len(text) > max_size:
        return f"{text[:max_size]}\n... [TRUNCATED - {len(text)} total chars]"
    return text


def should_log_payloads(enabled: bool) -> bool:
    """Payloads are logged only when requested and some sink accepts DEBUG."""
    return enabled and _enabled_level <= logging.DEBUG
