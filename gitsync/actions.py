"""GitHub Actions runner integration: failure signalling and log setup."""

import logging

import typer
from rich.logging import RichHandler

from gitsync.settings import LOG_LEVELS

ROOT_LOGGER = "gitsync"


class JobReporter:
    """Collects fatal conditions and emits them as ::error:: workflow commands.

    The CLI exits non-zero when `failed` is set, which marks the workflow run failed.
    """

    def __init__(self) -> None:
        self.errors: list[str] = []

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def set_failed(self, message: object) -> None:
        text = str(message) or "gitsync failed"
        self.errors.append(text)
        # workflow commands are single-line
        line = text.replace("\n", "%0A")
        typer.echo(f"::error::{line}")


def configure_logging(level: str) -> logging.Logger:
    """Attach a RichHandler to the package logger at the resolved verbosity."""
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = False

    stdlib_level = LOG_LEVELS.get(level, logging.DEBUG)
    if stdlib_level is None:
        logger.disabled = True
        return logger

    logger.disabled = False
    logger.setLevel(stdlib_level)
    handler = RichHandler(show_path=False, markup=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger
