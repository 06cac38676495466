"""
elfscope Structured Logger
===========================

:class:`ScopeLogger` wraps a stdlib :class:`logging.Logger` named
``elfscope.<component>``.  Console output goes through Rich on stderr so it
never mixes with report output on stdout; an optional rotating file handler
writes plain text or JSON lines.

Every record carries the ``component`` and the current ``operation`` (set
with :meth:`ScopeLogger.operation`), and extra keyword arguments passed to a
log call are kept as structured fields.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
        "log.level.critical": "bold white on red",
    }
)

_STANDARD_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})


class _JSONFormatter(logging.Formatter):
    """One JSON object per record::

        {"timestamp": "...", "level": "INFO", "logger": "elfscope.engine",
         "message": "...", "component": "engine", "operation": "inspect",
         "fields": {...}, "exc_info": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in ("component", "operation"):
            val = getattr(record, attr, None)
            if val is not None:
                entry[attr] = val

        fields = getattr(record, "scope_fields", None)
        if fields:
            entry["fields"] = fields

        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class _ColorConsoleHandler(RichHandler):
    """:class:`RichHandler` on stderr with the elfscope log theme."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            console=Console(theme=_LOG_THEME, stderr=True),
            show_path=False,
            show_time=True,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
            **kwargs,
        )


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


class ScopeLogger:
    """Context-aware logger for one elfscope component.

    Usage::

        log = ScopeLogger("engine", log_level="DEBUG")
        with log.operation("inspect"):
            log.info("decoded %d sections", count, target=path)

    Args:
        component:      Suffix of the logger name (``elfscope.<component>``).
        log_level:      Minimum severity name.
        log_file:       Rotating log file; ``None`` or ``""`` disables it.
        json_logs:      Write JSON lines instead of plain text to the file.
        max_bytes:      Rotation threshold of the log file.
        backup_count:   Rotated files to keep.
        console_output: Attach the Rich stderr handler.
    """

    def __init__(
        self,
        component: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 3,
        console_output: bool = True,
    ) -> None:
        self._component = component
        self._operation: str | None = None

        self._logger = logging.getLogger(f"elfscope.{component}")
        self._logger.setLevel(_level(log_level))
        self._logger.propagate = False
        self._logger.handlers.clear()

        if console_output:
            self._logger.addHandler(_ColorConsoleHandler(level=_level(log_level)))

        if log_file:
            file_path = Path(log_file)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(
                filename=str(file_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            fh.setLevel(_level(log_level))
            if json_logs:
                fh.setFormatter(_JSONFormatter())
            else:
                fh.setFormatter(logging.Formatter(
                    fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S%z",
                ))
            self._logger.addHandler(fh)

    # ------------------------------------------------------------------ #
    #  Context
    # ------------------------------------------------------------------ #

    @contextmanager
    def operation(self, name: str) -> Iterator[ScopeLogger]:
        """Tag every record logged inside the block with ``operation=name``."""
        previous, self._operation = self._operation, name
        try:
            yield self
        finally:
            self._operation = previous

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log the start (DEBUG) and duration (INFO) of the block."""
        start = time.perf_counter()
        self.debug("started: %s", label)
        try:
            yield
        finally:
            self.info("completed: %s (%.3f sec)", label,
                      time.perf_counter() - start)

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...],
             kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = dict(kwargs.pop("extra", None) or {})
        fields = {k: kwargs.pop(k) for k in list(kwargs)
                  if k not in _STANDARD_KWARGS}
        extra["component"] = self._component
        extra["operation"] = self._operation
        if fields:
            extra["scope_fields"] = fields
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, args, kwargs)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def component(self) -> str:
        return self._component

    @property
    def underlying(self) -> logging.Logger:
        """The wrapped stdlib logger."""
        return self._logger
