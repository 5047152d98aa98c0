"""
Logging configuration shared by the CLI and the HTTP server.
"""

from __future__ import annotations

import logging
import os
import sys


ENV_LOG_LEVEL = "KB_RETRIEVAL_LOG_LEVEL"

_handler: logging.Handler | None = None


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Calling it again replaces the handler installed by the previous call and
    leaves handlers added by other code alone.
    """
    global _handler
    root_logger = logging.getLogger()
    if _handler is not None:
        root_logger.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    resolved = (level or os.getenv(ENV_LOG_LEVEL) or "INFO").upper()
    root_logger.setLevel(resolved)
    root_logger.addHandler(_handler)

    # uvicorn installs its own access logger; keep ours for request events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
