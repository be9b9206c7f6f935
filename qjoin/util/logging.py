"""Contains utilities to conveniently log the progress of training sessions and policy runs."""
from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime
from typing import IO

Logger = Callable[..., None]
"""Type alias for the print-like loggers produced by `make_logger`."""


def timestamp() -> str:
    """Provides the current time in a short, sortable format, e.g. *24-05-17 13:02:11*."""
    return datetime.now().strftime("%y-%m-%d %H:%M:%S")


def _silent(*args, **kwargs) -> None:
    pass


def make_logger(enabled: bool = True, *, file: IO[str] = sys.stderr, prefix: str | Callable[[], str] = "") -> Logger:
    """Creates a logging function that behaves like `print`, but writes to `file`.

    A disabled logger accepts the same arguments but does nothing. Components therefore obtain their logger once and call
    it unconditionally, e.g. after each training step, instead of checking a verbosity flag every time.

    Parameters
    ----------
    enabled : bool, optional
        Whether log entries should actually be written, by default *True*
    file : IO[str], optional
        Where the log entries are written, by default ``sys.stderr``
    prefix : str | Callable[[], str], optional
        Text that precedes each log entry. If this is a callable (such as `timestamp`), it is invoked anew for every entry.

    Returns
    -------
    Logger
        The logging function
    """
    if not enabled:
        return _silent

    def _log(*args, **kwargs) -> None:
        entry_prefix = prefix() if callable(prefix) else prefix
        if entry_prefix:
            args = (entry_prefix, *args)
        print(*args, file=file, **kwargs)

    return _log


def standard_logger(enabled: bool = True, *, file: IO[str] = sys.stderr) -> Logger:
    """Creates the logger that QJoin components use by default: entries on stderr, prefixed with a bracketed timestamp."""
    return make_logger(enabled, file=file, prefix=lambda: f"[{timestamp()}]")
