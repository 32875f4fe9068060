"""Logging setup for crudforge.

Modules log through ``logging.getLogger(__name__)``.  Records emitted while a
session is running carry ``session_id`` and ``state`` attributes; records
from elsewhere get ``-`` for both so a single format string works everywhere.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "[session=%(session_id)s state=%(state)s] %(message)s"


class SessionContextFilter(logging.Filter):
    """Fill in default ``session_id`` and ``state`` values on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = "-"
        if not hasattr(record, "state"):
            record.state = "-"
        return True


def configure_logging(level: int | str = logging.INFO, console: Console | None = None) -> None:
    """Install a Rich handler on the ``crudforge`` logger.

    Calling this more than once replaces the previously installed handler.
    """
    logger = logging.getLogger("crudforge")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.addFilter(SessionContextFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
