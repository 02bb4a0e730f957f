"""
Shared helpers.
"""
import logging

from crm_admin.core import config


_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    The root handler is configured on first use from LOG_LEVEL.
    """
    _configure_root()
    return logging.getLogger(name)
