from __future__ import annotations

import logging

from ledger_engine.settings import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "ledger_engine.console"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach a console handler to the ``ledger_engine`` logger.

    Falls back to the configured ``LEDGER_LOG_LEVEL`` when no level is given.
    Idempotent: safe to call multiple times.
    """
    if level is None:
        level = get_settings().log_level
    logger = logging.getLogger("ledger_engine")
    logger.setLevel(level if isinstance(level, int) else level.upper())

    if not any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
