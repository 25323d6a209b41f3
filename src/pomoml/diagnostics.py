"""
Logging setup for pomoml.

Modules log through ``logging.getLogger(__name__)``; the verbosity of a
run is chosen explicitly with :func:`configure_logging` instead of being
read from global state.
"""

import logging
import sys
from typing import TextIO

from .config import Verbosity

LOGGER_NAME = "pomoml"

_LEVELS = {
    Verbosity.SILENT: logging.ERROR,
    Verbosity.NORMAL: logging.INFO,
    Verbosity.VERBOSE: logging.DEBUG,
}


def verbosity_level(verbosity: Verbosity | str) -> int:
    """Logging level corresponding to a verbosity."""
    return _LEVELS[Verbosity(verbosity)]


def configure_logging(
    verbosity: Verbosity | str = Verbosity.NORMAL,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the ``pomoml`` logger.

    Parameters
    ----------
    verbosity : Verbosity or str
        ``silent`` (errors only), ``normal`` (progress) or ``verbose``
        (numeric diagnostics)
    stream : file-like, optional
        Destination of log records (default: stderr)

    Returns
    -------
    logging.Logger
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(verbosity_level(verbosity))

    # Replace handlers installed by an earlier call
    for handler in list(logger.handlers):
        if getattr(handler, "_pomoml_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handler._pomoml_handler = True
    logger.addHandler(handler)
    logger.propagate = False
    return logger
