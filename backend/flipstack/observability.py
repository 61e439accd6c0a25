"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from flipstack import __version__
from flipstack.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire and bridge Python logging into it.

    Must be called ONCE at startup, before any wager is opened.

    Instruments:
    - HTTPX clients (Crossbar resolve calls)
    - Python logging (engine, ledger and event records)

    Args:
        settings: Application settings containing the Logfire token

    Returns:
        True if Logfire was configured, False if it stays disabled.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="flipstack",
            service_version=__version__,
            environment="paper" if settings.gateway.paper_mode else "live",
        )

        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
