"""Logging setup for the network controller."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty per-request loggers, kept at WARNING so the [NC] trace stays readable
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def configure_logging(level: str) -> logging.Logger:
    """Send every record to stdout at the requested level.

    Unknown level names fall back to INFO.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("netcontroller")
