"""Logging setup for the phylactery package and the phx CLI.

Library modules log through ``logging.getLogger(__name__)`` and never add
handlers themselves. The CLI calls :func:`configure_logging` once, which
attaches a single stderr handler to the ``phylactery`` logger.

PHYLACTERY_LOG_LEVEL picks the level (INFO by default). Cache hits and
confidence upgrades go to DEBUG and analysis timeouts to WARNING. Failed
queue or batch jobs are logged with their traceback at ERROR. ``--quiet`` (or
PHYLACTERY_QUIET) raises the level to ERROR through :func:`set_quiet_mode`.
"""

import logging
import os
import sys

PACKAGE_LOGGER = "phylactery"


def configure_logging() -> None:
    """Configure logging for the phylactery package.

    Call this once at application startup (e.g., in cli.py).
    Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger(PACKAGE_LOGGER)

    # Skip if already configured (has handlers)
    if root_logger.handlers:
        return

    level_name = os.environ.get("PHYLACTERY_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    # Use a clean format: [level] logger: message
    formatter = logging.Formatter(
        fmt="[%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Raise the package log level to ERROR when quiet output is requested."""
    root_logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.ERROR if quiet else logging.INFO
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)

