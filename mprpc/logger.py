"""Asynchronous daily log files written by a background thread."""

from __future__ import annotations

import enum
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable

from mprpc.lockqueue import LockQueue

_MAX_MESSAGE = 1023


class LogLevel(enum.Enum):
    INFO = 0
    ERROR = 1

    @property
    def label(self) -> str:
        return "info" if self is LogLevel.INFO else "error"


def log_file_name(when: datetime) -> str:
    """Name of the log file for the day of ``when``, e.g. ``2023-5-30-log.txt``."""
    return f"{when.year}-{when.month}-{when.day}-log.txt"


def format_record(level: LogLevel, msg: str, when: datetime) -> str:
    """One log line: ``H-M-S => [level]message`` followed by a newline."""
    return f"{when.hour}-{when.minute}-{when.second} => [{LogLevel(level).label}]{msg}\n"


class Logger:
    """Queues messages and appends them to a file named after the current day."""

    def __init__(
        self,
        directory: str | os.PathLike[str] | None = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
        start: bool = True,
    ) -> None:
        self.directory = Path(directory) if directory is not None else Path.cwd()
        self.level = LogLevel.INFO
        self._clock = clock
        self._queue = LockQueue()
        if start:
            threading.Thread(target=self._run, name="mprpc-logger", daemon=True).start()

    def set_level(self, level: LogLevel) -> None:
        """Set the level attached to subsequently logged messages."""
        self.level = LogLevel(level)

    def log(self, msg: str) -> None:
        """Queue ``msg`` for writing at the current level."""
        self._queue.push((self.level, msg))

    def write_next(self) -> Path:
        """Wait for the next queued message, append it to today's file and return its path."""
        level, msg = self._queue.pop()
        when = self._clock()
        path = self.directory / log_file_name(when)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(format_record(level, msg, when))
        return path

    def _run(self) -> None:
        while True:
            self.write_next()


_instance: Logger | None = None
_instance_lock = threading.Lock()


def get_logger() -> Logger:
    """Return the process-wide logger, starting its writer thread on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Logger()
        return _instance


def _emit(level: LogLevel, fmt: str, args: tuple) -> None:
    logger = get_logger()
    logger.set_level(level)
    logger.log((fmt % args)[:_MAX_MESSAGE])


def log_info(fmt: str, *args: object) -> None:
    """Log a %-formatted message at INFO level."""
    _emit(LogLevel.INFO, fmt, args)


def log_err(fmt: str, *args: object) -> None:
    """Log a %-formatted message at ERROR level."""
    _emit(LogLevel.ERROR, fmt, args)