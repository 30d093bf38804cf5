#!/usr/bin/env python3
import logging
import sys

from constants import C_GREEN, C_RED, C_RESET, C_YELLOW

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_LEVEL_COLORS = {
    logging.ERROR: C_RED,
    logging.CRITICAL: C_RED,
    logging.WARNING: C_YELLOW,
    SUCCESS: C_GREEN,
}


class ColorFormatter(logging.Formatter):
    """Wraps console records in the bot's ANSI palette."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if color:
            return f"{color}{message}{C_RESET}"
        return message


def configure_logging(verbose: bool = False) -> None:
    """Installs a single colored console handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # The radio and RPC libraries are chatty at DEBUG.
    for noisy in ("meshcore", "web3", "urllib3", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
