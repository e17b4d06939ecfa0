"""Logging configuration for the MCP server and CLI."""

import logging
import os
import sys
import time
from contextlib import contextmanager
from typing import Generator

from nvim_lsp_mcp.config.constants import CONSTANTS

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOGGER_NAME = "nvim-lsp-mcp"

# mcp.log in the project root unless overridden
DEFAULT_LOG_FILE = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "mcp.log"
)

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(log_file: str | None = None, level: str | None = None) -> str | None:
    """Configure the ``nvim-lsp-mcp`` logger.

    Writes INFO and above to a log file and only warnings and errors to
    stderr, leaving stdout free for the MCP stdio transport. Calling it again
    replaces the previous handlers.

    Args:
        log_file: Log destination override. Defaults to ``mcp.log`` in the
            project root.
        level: Level name override. Defaults to ``$LOG_LEVEL`` or INFO.

    Returns:
        Path of the log file in use, or None if it could not be opened.
    """
    level_name = (level or os.environ.get(CONSTANTS.ENV_LOG_LEVEL, "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT)

    # Stderr handler (for MCP stdio compatibility)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    path = log_file or DEFAULT_LOG_FILE
    try:
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Cannot open log file {path}: {e}")
        return None
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return path


@contextmanager
def log_timing(
    log: logging.Logger, operation: str, level: int = logging.INFO
) -> Generator[None, None, None]:
    """Log how long the wrapped block took.

    Example:
        with log_timing(logger, "collect"):
            results = collector.collect(client)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        log.log(level, f"{operation} completed in {duration_ms:.1f}ms")
