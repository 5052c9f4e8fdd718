"""Logging setup for hosts embedding cachelane.

Every module logs through ``logging.getLogger(__name__)`` under the
``cachelane`` namespace and never configures handlers itself. Hosts call
:func:`configure_logging` once at startup to route those records to stderr,
through :class:`rich.logging.RichHandler` by default.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from cachelane.models import LoggingConfig

LOGGER_NAME = "cachelane"


def configure_logging(
    config: Optional[LoggingConfig] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Attach a single handler to the ``cachelane`` logger.

    Calling this again replaces the previously installed handler, so it
    is safe to re-run after the configuration changes.

    Args:
        config: Level and handler style; defaults to :class:`LoggingConfig`.
        console: Console for the rich handler (stderr when omitted).

    Returns:
        The configured ``cachelane`` logger.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(LOGGER_NAME)

    handler: logging.Handler
    if config.rich:
        handler = RichHandler(
            console=console or Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(config.level.upper())
    logger.propagate = False
    return logger
