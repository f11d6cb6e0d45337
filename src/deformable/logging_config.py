"""
Logging for the 'deformable' namespace.

The demo logs from two processes (the pygame loop and the physics worker), so
records carry the process name.
"""
import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(processName)s] %(name)s %(levelname)s: %(message)s"


def resolve_level(level: Union[int, str]) -> int:
    """Accepts ``logging.DEBUG`` as well as ``"debug"``; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    value = getattr(logging, level.upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("deformable")
    logger.setLevel(resolve_level(level))

    # a reset rebuilds the scene and calls this again
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
