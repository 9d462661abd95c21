"""
Logging helpers shared by every module.

Usage:
    from app.utils import get_logger

    log = get_logger(__name__)
"""
import logging

from app.core import config


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(level=config.LOG_LEVEL, format=_LOG_FORMAT)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    _configure_root()
    return logging.getLogger(name)
