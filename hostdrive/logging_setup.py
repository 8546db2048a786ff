"""Logging configuration for hostdrive.

All modules log through ``logging.getLogger(__name__)``.  This module wires
the root ``hostdrive`` logger to a rotating log file under the home
directory (and optionally stderr) and tags every record with the current
*caller*: the session that was being driven when the record was emitted.

Usage::

    configure_logging(hc_home, console=True)
    token = log_caller.set("session:farm-1")
    try:
        ...
    finally:
        log_caller.reset(token)
"""

import contextvars
import logging
import logging.handlers
from pathlib import Path

from hostdrive.paths import log_path

# Label of the session currently being driven ("-" outside any session)
log_caller: contextvars.ContextVar[str] = contextvars.ContextVar("log_caller", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(caller)s] %(name)s: %(message)s"

_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3


class CallerFilter(logging.Filter):
    """Copy the ``log_caller`` context value onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.caller = log_caller.get()
        return True


def log_file_path(hc_home: Path) -> Path:
    return log_path(hc_home)


def configure_logging(
    hc_home: Path | None = None,
    *,
    console: bool = False,
    level: int | str = logging.INFO,
) -> logging.Logger:
    """Configure the ``hostdrive`` logger.

    Safe to call more than once: handlers installed by a previous call are
    replaced, not duplicated.
    """
    root = logging.getLogger("hostdrive")
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_hostdrive", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    if hc_home is not None:
        fp = log_file_path(hc_home)
        fp.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(fp, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        )
    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(CallerFilter())
        handler._hostdrive = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    return root
