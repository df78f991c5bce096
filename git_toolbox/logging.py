"""Logging utilities for git-toolbox commands."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "git_toolbox"
_CONSOLE_FORMAT = "[git-toolbox] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger below ``git_toolbox``, e.g. ``git_toolbox.synchronizer``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Attach console and optional file handlers to the git_toolbox logger.

    ``quiet`` limits the console to warnings; git hooks use it so a checkout
    only prints when something needs attention. ``verbose`` wins over it.
    The file handler, when given, always records at the console level or
    more detail.
    """
    console_level = _console_level(verbose=verbose, quiet=quiet)
    file_level = logging.DEBUG if verbose else logging.INFO

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(min(console_level, file_level) if log_file else console_level)
    logger.propagate = False

    # Hooks may invoke the CLI repeatedly within one interpreter.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler(console_level))
    if log_file is not None:
        logger.addHandler(_file_handler(log_file, file_level))
    return logger


def _console_level(*, verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    return handler


__all__ = ["configure_logging", "get_logger"]
