"""Structured logging setup shared by the CLI and the sync service.

Sync callbacks run on the watchdog observer, the poll thread and debounce
timer threads, so every record carries the emitting thread's name next to
any context bound with :mod:`structlog.contextvars` (such as ``sync_pass``).
"""

from __future__ import annotations

import gzip
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
import shutil
from typing import Any, Iterable

from rich.console import Console
from rich.logging import RichHandler
import structlog

Logger = structlog.stdlib.BoundLogger

LOG_FILENAME = "notesync.log"
_ROTATION_BACKUP_COUNT = 7

# Third-party loggers capped at WARNING unless running at DEBUG.
_NOISY_LOGGERS = ("watchdog", "httpx", "httpcore", "openai", "faiss")

_PRE_CHAIN: list[structlog.typing.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.CallsiteParameterAdder(
        [structlog.processors.CallsiteParameter.THREAD_NAME],
    ),
]


def _level_number(level: str) -> int:
    """Map a level name such as ``"debug"`` to its :mod:`logging` constant.

    Raises:
        ValueError: If the level name is not recognized.
    """

    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unsupported log level: {level!r}")
    return value


def _install_handlers(root: logging.Logger, handlers: Iterable[logging.Handler]) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)


def _quiet_noisy_loggers(level: int) -> None:
    floor = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)


def _formatter(renderer: structlog.typing.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_PRE_CHAIN,
    )


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as target:
        shutil.copyfileobj(src, target)
    Path(source).unlink(missing_ok=True)


def _file_handler(log_file: Path, level: int) -> TimedRotatingFileHandler:
    """JSON lines, rotated at UTC midnight and gzipped, one week retained."""

    handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=_ROTATION_BACKUP_COUNT,
        utc=True,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.suffix = "%Y-%m-%d"
    handler.namer = lambda name: f"{name}.gz"
    handler.rotator = _gzip_rotator
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer(sort_keys=True)))
    return handler


def _console_handler(level: int, console: Console | None) -> RichHandler:
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        log_time_format="%H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=False)))
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    workspace_path: str | Path | None = None,
    console: Console | None = None,
) -> None:
    """Route structlog and stdlib logging to the console and the workspace.

    Args:
        level: Log level name to apply to the root logger (case-insensitive).
        workspace_path: Workspace root; logs go to ``<workspace>/logs``.
            Without it only the console handler is installed.
        console: Rich console override, used by tests.

    Raises:
        ValueError: If ``level`` is not a recognized log level name.

    Example:
        >>> from pathlib import Path
        >>> path = Path("/tmp/notesync-log-example")
        >>> configure_logging(level="debug", workspace_path=path)
        >>> get_logger(__name__).info("configured", example=True)
        >>> (path / "logs" / "notesync.log").exists()
        True
    """

    log_level = _level_number(level)

    structlog.reset_defaults()
    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [_console_handler(log_level, console)]
    if workspace_path is not None:
        log_dir = Path(workspace_path).expanduser().resolve(strict=False) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(log_dir / LOG_FILENAME, log_level))

    root = logging.getLogger()
    root.setLevel(log_level)
    _install_handlers(root, handlers)
    _quiet_noisy_loggers(log_level)
    logging.captureWarnings(True)


def get_logger(name: str | None = None, **initial_context: Any) -> Logger:
    """Return a structured logger bound to ``initial_context``.

    Example:
        >>> logger = get_logger(__name__, component="scheduler")
        >>> isinstance(logger, structlog.stdlib.BoundLogger)
        True
    """

    return structlog.get_logger(name).bind(**initial_context)


__all__ = ["LOG_FILENAME", "Logger", "configure_logging", "get_logger"]
