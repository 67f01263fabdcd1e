"""Logging setup shared by the CLI and the MCP server.

Modules only create loggers; handlers are installed here by the entry points.
Everything goes to stderr so stdout stays clean for command output and for the
MCP stdio transport.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "foursquare_cli"


def setup_logging(debug: bool = False) -> None:
    """Install a Rich handler on the package logger.

    Args:
        debug: Log at DEBUG level instead of WARNING
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
