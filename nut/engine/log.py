"""stderr logging for the ``nut`` CLI.

Engine code logs through loguru.  Records emitted by libraries on the stdlib
``logging`` module (httpx when talking to GitHub) are forwarded to the same
sink, so ``-v``/``-vv`` controls everything.  stdout carries command output
only.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{name}:{line}</cyan> "
    "<level>{message}</level>"
)


class _StdlibForwarder(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # skip logging's own frames
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def verbosity_to_level(verbose: int, default: str = "WARNING") -> str:
    """Level for a ``-v`` count: none keeps ``default``, one is INFO, more is DEBUG."""
    if verbose <= 0:
        return default
    return "INFO" if verbose == 1 else "DEBUG"


def setup_logging(level: str = "WARNING") -> None:
    """Send loguru and stdlib records to stderr at ``level``.  Safe to call more than once."""
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)

    logging.basicConfig(handlers=[_StdlibForwarder()], level=0, force=True)
    # request lines from httpx are only interesting when something breaks
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging to stderr at {}", level)
