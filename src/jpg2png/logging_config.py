"""Logging for the converter, its CLI and its HTTP service.

Everything logs under the ``jpg2png`` namespace. The CLI and the service
call :func:`setup_logging` once at start-up; library users who never call
it get the standard library's default behaviour. Pipeline stages report
through the ``log_operation_*`` helpers so every stage produces the same
start/complete/error lines.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

LOGGER_NAMESPACE = "jpg2png"

STANDARD_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
VERBOSE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers uvicorn creates for the service
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class PlatformIndependentFormatter(logging.Formatter):
    """Formatter that normalizes line endings to LF regardless of platform."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the record, rewriting CRLF and lone CR to LF.

        Args:
            record: The log record to format

        Returns:
            Formatted message with LF line endings only
        """
        formatted = super().format(record)
        return formatted.replace("\r\n", "\n").replace("\r", "\n")


def _build_formatter(verbose: bool) -> PlatformIndependentFormatter:
    return PlatformIndependentFormatter(
        VERBOSE_FORMAT if verbose else STANDARD_FORMAT, datefmt=DATE_FORMAT
    )


def _open_log_file(log_file: Path) -> logging.FileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_file, mode="a", encoding="utf-8")


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure the ``jpg2png`` logger.

    Output goes to stdout and, when ``log_file`` is given, to that file as
    well. Each call replaces the handlers installed by the previous one. An
    unwritable log file is reported as a warning and console logging carries
    on.

    Args:
        level: Base logging level (default: INFO)
        verbose: Log at DEBUG with logger name and source location
        log_file: Optional file that receives a copy of every record

    Returns:
        The configured package logger
    """
    effective_level = logging.DEBUG if verbose else level
    formatter = _build_formatter(verbose)

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(effective_level)
    logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error: OSError | None = None
    if log_file:
        try:
            handlers.append(_open_log_file(log_file))
        except OSError as e:
            file_error = e

    for handler in handlers:
        handler.setLevel(effective_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if file_error is not None:
        logger.warning(f"Failed to set up file logging: {file_error}")

    logger.debug(
        f"Logging configured: level={logging.getLevelName(effective_level)}, "
        f"verbose={verbose}, log_file={log_file if file_error is None else None}"
    )

    return logger


def uvicorn_log_config(verbose: bool = False) -> dict[str, Any]:
    """Build a ``logging.config.dictConfig`` mapping for uvicorn.

    The server's own loggers then share the package's format and line-ending
    handling instead of uvicorn's coloured defaults.

    Args:
        verbose: Use the verbose format and DEBUG level

    Returns:
        A mapping suitable for ``uvicorn.run(log_config=...)``
    """
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": PlatformIndependentFormatter,
                "fmt": VERBOSE_FORMAT if verbose else STANDARD_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: {"handlers": ["default"], "level": level, "propagate": False}
            for name in SERVER_LOGGERS
        },
    }


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``jpg2png`` namespace.

    Args:
        name: Module name, usually ``__name__``

    Returns:
        The namespaced logger
    """
    if not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"

    return logging.getLogger(name)


def set_log_level(level: int | str) -> None:
    """Change the level of the package logger and its handlers.

    Args:
        level: New logging level (int or a name such as 'DEBUG')

    Raises:
        ValueError: If the level name is unknown
    """
    if isinstance(level, str):
        numeric_level = getattr(logging, level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f"Invalid log level: {level}")
        level = numeric_level

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)

    logger.debug(f"Log level changed to {logging.getLevelName(level)}")


def _format_context(context: dict[str, object]) -> str:
    return ", ".join(f"{key}={value}" for key, value in context.items())


def log_operation_start(logger: logging.Logger, operation: str, **context: object) -> None:
    """Log that a stage or request has started.

    Args:
        logger: Logger instance to use
        operation: Stage or step name (e.g., "reduce-noise", "encode")
        **context: Sizes, dimensions and similar details
    """
    logger.info(f"Starting {operation}: {_format_context(context)}")


def log_operation_complete(
    logger: logging.Logger,
    operation: str,
    success: bool,
    duration: float | None = None,
    **context: object,
) -> None:
    """Log the outcome of a stage or request.

    Successful outcomes are logged at INFO and failures at ERROR.

    Args:
        logger: Logger instance to use
        operation: Stage or step name
        success: Whether the operation succeeded
        duration: Elapsed seconds, when measured
        **context: Sizes, dimensions and similar details
    """
    status = "completed successfully" if success else "failed"
    timing = f" in {duration:.2f}s" if duration is not None else ""
    logger.log(
        logging.INFO if success else logging.ERROR,
        f"{operation.capitalize()} {status}{timing}: {_format_context(context)}",
    )


def log_operation_error(
    logger: logging.Logger, operation: str, error: Exception, **context: object
) -> None:
    """Log the exception that ended a stage or request.

    The traceback follows at DEBUG level.

    Args:
        logger: Logger instance to use
        operation: Stage or step that failed
        error: The exception that occurred
        **context: Sizes, dimensions and similar details
    """
    logger.error(
        f"Error during {operation}: {type(error).__name__}: {error} - {_format_context(context)}"
    )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Stack trace for {operation} error:", exc_info=error)
