"""Logging configuration for the Cheese Cave agent."""

import logging
import sys

_configured = False

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"

# ANSI colours for console output, keyed by log level
_LEVEL_COLORS = {
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[31m",
}
_RESET = "\033[0m"


class ColorFormatter(logging.Formatter):
    """Formatter that colours the whole line by level.

    Successes are logged at INFO (green), failures at ERROR (red).
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if color is None:
            return message
        return f"{color}{message}{_RESET}"


def configure(level: int | str = logging.INFO) -> None:
    """Configure logging for the application.

    Safe to call multiple times - only configures once. Colours are only
    used when stderr is attached to a terminal.
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    if sys.stderr.isatty():
        handler.setFormatter(ColorFormatter(LOG_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger("cave")
    root.setLevel(level)
    root.addHandler(handler)

    # Route paho-mqtt and uvicorn through the same handler
    for name in ("paho", "uvicorn"):
        lib_log = logging.getLogger(name)
        lib_log.handlers.clear()
        lib_log.addHandler(handler)
        lib_log.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the 'cave' namespace.

    Args:
        name: Logger name (will be prefixed with 'cave.')

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(f"cave.{name}")
