"""Console logging with Rich.

``setup_logging()`` is called once by the CLI entry point. Library modules only
ever do ``logger = logging.getLogger(__name__)``.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Chatty third-party loggers that drown out request handling at INFO
_QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "httpx")


def setup_logging(level: str = "INFO") -> None:
    """Install a RichHandler on the root logger."""
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
