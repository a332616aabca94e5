"""
Logging configuration.

All modules log through the ``audit_engine`` logger or one of its children,
so a single handler formats every line.
"""
import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Root logger for the engine
logger = logging.getLogger("audit_engine")
logger.setLevel(LOG_LEVEL)

# Console handler
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(LOG_LEVEL)

formatter = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
console_handler.setFormatter(formatter)

if not logger.handlers:
    logger.addHandler(console_handler)


def get_logger(component: str) -> logging.Logger:
    """Child logger for one component, e.g. ``audit_engine.state_machine``."""
    return logger.getChild(component)
