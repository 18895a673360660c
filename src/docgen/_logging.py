"""Logging configuration for docgen.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the DOCGEN_LOG_LEVEL environment variable
(DEBUG, INFO, WARNING, ERROR). INFO is the default.
"""

import logging
import os
import sys


def configure_logging(level_name: str | None = None) -> None:
    """Configure logging for the docgen package.

    Call this once at application startup (the CLI does). Subsequent calls
    only adjust the level.

    Args:
        level_name: Explicit level name; overrides DOCGEN_LOG_LEVEL.
    """
    root_logger = logging.getLogger("docgen")

    level_name = (level_name or os.environ.get("DOCGEN_LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False
