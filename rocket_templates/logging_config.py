"""
Structured logging for the rocket_templates package.

Provides:
- JSONFormatter: one JSON object per line, for log shippers
- ConsoleFormatter: compact human-readable lines with inline extra fields
- setup_logging / configure_default_logging: handler wiring for the package logger
- log_timing / timed: duration logging around exports and store calls
- LogContext: request-scoped fields (design_id, user_id, ...) on every record

Usage:
    from rocket_templates.logging_config import setup_logging, get_logger

    setup_logging(level=logging.INFO, json_file="rokit.log.json")

    logger = get_logger(__name__)
    logger.info("Template exported", extra={"design_id": "abc", "format": "pdf"})
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union

F = TypeVar('F', bound=Callable[..., Any])

PACKAGE_LOGGER = "rocket_templates"

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_KEYS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'asctime', 'taskName',
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the user-supplied fields of a log record."""
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_KEYS}


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...", ...}

    Warnings, errors and debug records also carry a ``location`` object.
    Values that are not JSON serializable are stringified.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.levelno >= logging.WARNING or record.levelno <= logging.DEBUG:
            entry["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in _extra_fields(record).items():
                try:
                    json.dumps(value)
                except (TypeError, ValueError):
                    value = str(value)
                entry[key] = value

        return json.dumps(entry, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable single-line formatter.

    Format: [HH:MM:SS] LEVEL    logger: message [key=value, ...]
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, show_extra: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.show_extra = show_extra

    @staticmethod
    def _compact(key: str, value: Any) -> str:
        if isinstance(value, float):
            return f"{key}={value:.3g}"
        if isinstance(value, (list, tuple)) and len(value) > 3:
            return f"{key}=[...{len(value)} items]"
        return f"{key}={value}"

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = f"{record.levelname:8}"
        if self.use_colors and record.levelname in self.COLORS:
            level = f"{self.COLORS[record.levelname]}{level}{self.RESET}"

        name = record.name
        prefix = PACKAGE_LOGGER + "."
        if name.startswith(prefix):
            name = name[len(prefix):]

        line = f"[{clock}] {level} {name}: {record.getMessage()}"

        if self.show_extra:
            extras = [self._compact(k, v) for k, v in _extra_fields(record).items()]
            if extras:
                line += " [" + ", ".join(extras) + "]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def setup_logging(
    level: int = logging.INFO,
    json_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    use_colors: bool = True,
    root_logger: bool = False,
) -> logging.Logger:
    """Configure handlers for the package logger (or the root logger).

    Existing handlers on the target logger are replaced, so calling this
    twice does not duplicate output.

    Args:
        level: Minimum log level
        json_file: Optional path of a JSON-lines log file
        console: Write human-readable lines to stderr
        use_colors: Colorize the console level column
        root_logger: Configure the root logger instead of the package logger

    Returns:
        The configured logger
    """
    logger = logging.getLogger("" if root_logger else PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(ConsoleFormatter(use_colors=use_colors))
        logger.addHandler(stream_handler)

    if json_file:
        file_handler = logging.FileHandler(Path(json_file), encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    if not root_logger:
        logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    **extra_fields: Any
) -> Iterator[Dict[str, Any]]:
    """Log start, completion and failure of an operation with its duration.

    The yielded dict can be filled with additional fields that are attached
    to the completion record.

    Example:
        with log_timing(logger, "Encoding template", format="pdf") as info:
            data = encoder.encode(document)
            info["bytes"] = len(data)
    """
    timing_info: Dict[str, Any] = {}
    started = time.perf_counter()

    logger.log(level, "Starting: %s", operation, extra={
        "event": "start", "operation": operation, **extra_fields,
    })

    try:
        yield timing_info
    except Exception as exc:
        elapsed = time.perf_counter() - started
        logger.error("Failed: %s (%.3fs) - %s", operation, elapsed, exc, extra={
            "event": "error",
            "operation": operation,
            "elapsed_seconds": elapsed,
            "error": str(exc),
            **extra_fields,
        })
        raise

    elapsed = time.perf_counter() - started
    timing_info['elapsed_seconds'] = elapsed
    logger.log(level, "Completed: %s (%.3fs)", operation, elapsed, extra={
        "event": "complete",
        "operation": operation,
        **extra_fields,
        **timing_info,
    })


def timed(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    operation: Optional[str] = None,
) -> Callable[[F], F]:
    """Decorator form of log_timing.

    Uses the decorated function's module logger and name when not given.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_logger = logger or logging.getLogger(func.__module__)
            with log_timing(func_logger, operation or func.__name__, level):
                return func(*args, **kwargs)

        return wrapper  # type: ignore
    return decorator


class _ContextFilter(logging.Filter):
    """Copies the fields of every active LogContext onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for context in LogContext._stack:
            for key, value in context.fields.items():
                setattr(record, key, value)
        return True


class LogContext:
    """Attach common fields to every package log record inside a scope.

    Contexts nest; inner fields override outer ones with the same name.

    Example:
        with LogContext(design_id=design.id, user_id=identity.user_id):
            logger.info("Updating design")  # carries design_id and user_id
    """

    _stack: List['LogContext'] = []
    _filter = _ContextFilter()

    def __init__(self, **fields: Any):
        self.fields = fields

    def __enter__(self) -> 'LogContext':
        if not LogContext._stack:
            # Handler-level so records from child loggers are covered too
            for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
                handler.addFilter(LogContext._filter)
        LogContext._stack.append(self)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self in LogContext._stack:
            LogContext._stack.remove(self)
        if not LogContext._stack:
            for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
                handler.removeFilter(LogContext._filter)

    @classmethod
    def current(cls) -> Optional['LogContext']:
        """Innermost active context, if any."""
        return cls._stack[-1] if cls._stack else None


def configure_default_logging(verbose: bool = False) -> logging.Logger:
    """Console logging at INFO, or DEBUG when verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    return setup_logging(level=level, console=True, use_colors=True)
