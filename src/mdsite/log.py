"""Logging setup shared by the CLI and the dev server"""

import logging


LOG_FORMAT = "%(levelname)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the mdsite logger; safe to call twice."""
    logger = logging.getLogger("mdsite")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
