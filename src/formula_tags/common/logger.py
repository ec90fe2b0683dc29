"""Shared logger for the formula_tags package."""
import logging
import sys

LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(message)s"

logger: logging.Logger = logging.getLogger("formula_tags")

# Configure the handler only once, even if the module is reloaded
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
